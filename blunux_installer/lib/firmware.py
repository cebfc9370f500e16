from __future__ import annotations

from pathlib import Path

EFI_SYSFS_PATH = "/sys/firmware/efi"


def detect_firmware() -> str:
    """Detect firmware type for the *currently running* environment.

    Returns: 'efi' or 'bios'.

    The live environment is the installation target's firmware, so this is
    also the mode the installed system will boot in.
    """

    if Path(EFI_SYSFS_PATH).exists():
        return "efi"
    return "bios"


def is_uefi() -> bool:
    return detect_firmware() == "efi"
