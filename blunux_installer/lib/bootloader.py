"""Boot path configuration.

Two ways to make the installed system bootable:

* direct boot (EFISTUB): kernel and initramfs are copied onto the ESP and a
  firmware boot entry loads the kernel directly. UEFI only.
* conventional: GRUB, for either UEFI or legacy BIOS.

:func:`plan_boot` decides once which of the two applies and returns a plan;
:class:`BootConfigurator` interprets that plan. Nothing else in the installer
looks at firmware mode to decide how to boot.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Union

from ..errors import BootRegistrationError, CommandError, ConfigWriteError, PlanningError
from .crypt import MAPPED_DEVICE, MAPPER_NAME, resolve_root_device
from .disk import PartitionLayout, parse_partition_path
from .packages import effective_kernel
from .sysconfig import target_path, write_target_file

if TYPE_CHECKING:
    from .ops import SystemOps

logger = logging.getLogger(__name__)

BOOT_LABEL = "Blunux"
ESP_MOUNTPOINT = "/boot/efi"
ESP_BOOT_DIR = "EFI/Blunux"
BASE_KERNEL_FLAGS = "rw quiet loglevel=3"

KERNEL_HOOK_PATH = "/etc/pacman.d/hooks/99-nmbl-kernel-update.hook"
REFRESH_SCRIPT_PATH = "/usr/local/bin/nmbl-update"

GRUB_DEFAULTS_PATH = "/etc/default/grub"
GRUB_CONFIG_PATH = "/boot/grub/grub.cfg"
MKINITCPIO_CONF_PATH = "/etc/mkinitcpio.conf"

_HOOKS_LINE = re.compile(r"^HOOKS=\((?P<hooks>[^)]*)\)", re.MULTILINE)


class BootState(enum.Enum):
    SELECT_PATH = "select_path"
    DIRECT_BOOT = "direct_boot"
    CONVENTIONAL_BOOT = "conventional_boot"
    FAILED = "failed"
    DONE = "done"


@dataclass(frozen=True)
class BootEntry:
    disk: str
    part: int
    label: str
    loader: str
    params: str


@dataclass(frozen=True)
class DirectBootPlan:
    kernel: str
    efi_partition: str
    encrypted: bool


@dataclass(frozen=True)
class ConventionalBootPlan:
    kernel: str
    uefi: bool
    disk: str
    encrypted: bool


BootPlan = Union[DirectBootPlan, ConventionalBootPlan]


def select_boot_path(direct_requested: bool, firmware_uefi: bool) -> BootState:
    """Pick the boot state; direct boot on legacy firmware degrades to GRUB."""
    if direct_requested and firmware_uefi:
        return BootState.DIRECT_BOOT
    if direct_requested:
        logger.warning("Direct boot (EFISTUB) requires UEFI firmware; falling back to GRUB")
    return BootState.CONVENTIONAL_BOOT


def plan_boot(
    *,
    direct_requested: bool,
    firmware_uefi: bool,
    kernel_type: str,
    disk: str,
    layout: PartitionLayout,
    encrypted: bool,
) -> BootPlan:
    kernel = effective_kernel(kernel_type)
    if select_boot_path(direct_requested, firmware_uefi) is BootState.DIRECT_BOOT:
        if not layout.efi_partition:
            raise PlanningError("Direct boot needs an EFI system partition")
        return DirectBootPlan(kernel=kernel, efi_partition=layout.efi_partition, encrypted=encrypted)
    return ConventionalBootPlan(kernel=kernel, uefi=firmware_uefi, disk=disk, encrypted=encrypted)


def root_kernel_parameter(ops: "SystemOps", layout: PartitionLayout) -> str:
    """Kernel command-line reference to the root filesystem.

    For an encrypted root this names the LUKS container (by the UUID of the
    raw partition) and the mapped device it unlocks to.
    """
    root_device = resolve_root_device(ops, layout)
    if root_device == MAPPED_DEVICE:
        luks_uuid = ops.block_uuid(layout.root_partition)
        return f"cryptdevice=UUID={luks_uuid}:{MAPPER_NAME} root={MAPPED_DEVICE}"
    return f"root=UUID={ops.block_uuid(root_device)}"


def efi_loader_path(filename: str) -> str:
    return "\\" + "\\".join([*ESP_BOOT_DIR.split("/"), filename])


def kernel_image(kernel: str) -> str:
    return f"vmlinuz-{kernel}"


def initramfs_image(kernel: str) -> str:
    return f"initramfs-{kernel}.img"


def build_boot_entry(plan: DirectBootPlan, root_param: str) -> BootEntry:
    disk, part = parse_partition_path(plan.efi_partition)
    params = f"{root_param} {BASE_KERNEL_FLAGS} initrd={efi_loader_path(initramfs_image(plan.kernel))}"
    return BootEntry(
        disk=disk,
        part=part,
        label=BOOT_LABEL,
        loader=efi_loader_path(kernel_image(plan.kernel)),
        params=params,
    )


def render_kernel_hook(kernel: str) -> str:
    return (
        "[Trigger]\n"
        "Type = Package\n"
        "Operation = Upgrade\n"
        f"Target = {kernel}\n"
        "\n"
        "[Action]\n"
        "Description = Updating kernel in ESP for EFISTUB boot...\n"
        "When = PostTransaction\n"
        f"Exec = {REFRESH_SCRIPT_PATH}\n"
        "Depends = coreutils\n"
    )


def render_refresh_script(kernel: str) -> str:
    esp_dir = f"{ESP_MOUNTPOINT}/{ESP_BOOT_DIR}"
    return (
        "#!/bin/bash\n"
        "# Copy the current kernel and initramfs onto the ESP for direct boot\n"
        "set -e\n"
        f'KERNEL="${{1:-{kernel}}}"\n'
        f'mkdir -p "{esp_dir}"\n'
        f'cp "/boot/vmlinuz-$KERNEL" "{esp_dir}/vmlinuz-$KERNEL"\n'
        f'cp "/boot/initramfs-$KERNEL.img" "{esp_dir}/initramfs-$KERNEL.img"\n'
    )


def set_shell_var(text: str, key: str, value: str) -> str:
    """Replace ``KEY=...`` lines in a shell-style config, or append one."""
    line = f"{key}={value}"
    pattern = re.compile(rf"^{re.escape(key)}=.*$", re.MULTILINE)
    if pattern.search(text):
        return pattern.sub(lambda _m: line, text)
    if text and not text.endswith("\n"):
        text += "\n"
    return text + line + "\n"


def add_encrypt_hook(text: str) -> str:
    """Insert ``encrypt`` before ``filesystems`` in the mkinitcpio HOOKS array."""
    m = _HOOKS_LINE.search(text)
    if m is None:
        raise ValueError("no HOOKS=(...) line found")
    hooks = m.group("hooks").split()
    if "encrypt" in hooks:
        return text
    if "filesystems" in hooks:
        hooks.insert(hooks.index("filesystems"), "encrypt")
    else:
        hooks.append("encrypt")
    return text[: m.start()] + f"HOOKS=({' '.join(hooks)})" + text[m.end():]


class BootConfigurator:
    """Interprets a :data:`BootPlan` against the mounted target."""

    def __init__(self, ops: "SystemOps", staging_root: str, layout: PartitionLayout) -> None:
        self.ops = ops
        self.staging_root = staging_root
        self.layout = layout
        self.state = BootState.SELECT_PATH
        self.entry: Optional[BootEntry] = None

    @property
    def dry_run(self) -> bool:
        return bool(getattr(self.ops, "dry_run", False))

    def configure(self, plan: BootPlan) -> BootState:
        self.state = BootState.DIRECT_BOOT if isinstance(plan, DirectBootPlan) else BootState.CONVENTIONAL_BOOT
        logger.info("Boot path: %s (kernel=%s)", self.state.value, plan.kernel)
        try:
            if plan.encrypted:
                self._prepare_encrypted_initramfs()
            if isinstance(plan, DirectBootPlan):
                self._direct_boot(plan)
            else:
                self._conventional_boot(plan)
        except BootRegistrationError:
            self.state = BootState.FAILED
            raise
        self.state = BootState.DONE
        return self.state

    def _chroot(self, what: str, argv: list) -> None:
        try:
            self.ops.chroot(self.staging_root, argv)
        except CommandError as e:
            raise BootRegistrationError(f"{what} failed: {e}") from e

    def _edit_target_file(self, rel: str, transform: Callable[[str], str]) -> None:
        p = target_path(self.staging_root, rel)
        if self.dry_run:
            logger.info("Would edit %s", str(p))
            return
        try:
            p.write_text(transform(p.read_text(encoding="utf-8")), encoding="utf-8")
        except (OSError, ValueError) as e:
            raise BootRegistrationError(f"Failed to update {rel}: {e}") from e

    def _write(self, rel: str, contents: str, *, mode: Optional[int] = None) -> None:
        try:
            write_target_file(self.staging_root, rel, contents, mode=mode, dry_run=self.dry_run)
        except ConfigWriteError as e:
            raise BootRegistrationError(str(e)) from e

    def _prepare_encrypted_initramfs(self) -> None:
        logger.info("Adding encrypt hook to initramfs")
        self._edit_target_file(MKINITCPIO_CONF_PATH, add_encrypt_hook)
        self._chroot("mkinitcpio", ["mkinitcpio", "-P"])

    # -- direct boot ---------------------------------------------------------

    def _direct_boot(self, plan: DirectBootPlan) -> None:
        esp_dir = f"{ESP_MOUNTPOINT}/{ESP_BOOT_DIR}"
        self._chroot("Creating ESP boot directory", ["mkdir", "-p", esp_dir])
        for image in (kernel_image(plan.kernel), initramfs_image(plan.kernel)):
            self._chroot(f"Copying {image} to ESP", ["cp", f"/boot/{image}", f"{esp_dir}/{image}"])

        try:
            entry = build_boot_entry(plan, root_kernel_parameter(self.ops, self.layout))
        except (PlanningError, CommandError) as e:
            raise BootRegistrationError(f"Cannot build boot entry: {e}") from e

        logger.info("Registering firmware boot entry %s on %s partition %d", entry.label, entry.disk, entry.part)
        try:
            self.ops.register_boot_entry(
                self.staging_root,
                disk=entry.disk,
                part=entry.part,
                label=entry.label,
                loader=entry.loader,
                params=entry.params,
            )
        except CommandError as e:
            raise BootRegistrationError(f"Failed to create UEFI boot entry: {e}") from e
        self.entry = entry

        self._write(KERNEL_HOOK_PATH, render_kernel_hook(plan.kernel))
        self._write(REFRESH_SCRIPT_PATH, render_refresh_script(plan.kernel), mode=0o755)
        logger.info("Direct boot configured, no bootloader installed")

    # -- conventional boot ---------------------------------------------------

    def _grub_defaults(self, plan: ConventionalBootPlan) -> Callable[[str], str]:
        cmdline = root_kernel_parameter(self.ops, self.layout) if plan.encrypted else None

        def transform(text: str) -> str:
            # boot straight into the default entry; holding Shift still shows the menu
            text = set_shell_var(text, "GRUB_TIMEOUT", "0")
            text = set_shell_var(text, "GRUB_TIMEOUT_STYLE", "hidden")
            if cmdline:
                text = set_shell_var(text, "GRUB_CMDLINE_LINUX", f'"{cmdline}"')
                text = set_shell_var(text, "GRUB_ENABLE_CRYPTODISK", "y")
            return text

        return transform

    def _conventional_boot(self, plan: ConventionalBootPlan) -> None:
        if plan.uefi:
            argv = [
                "grub-install",
                "--target=x86_64-efi",
                f"--efi-directory={ESP_MOUNTPOINT}",
                f"--bootloader-id={BOOT_LABEL}",
            ]
        else:
            argv = ["grub-install", "--target=i386-pc", plan.disk]

        try:
            transform = self._grub_defaults(plan)
        except CommandError as e:
            raise BootRegistrationError(f"Cannot determine root device UUID: {e}") from e

        self._edit_target_file(GRUB_DEFAULTS_PATH, transform)
        self._chroot("grub-install", argv)
        self._chroot("grub-mkconfig", ["grub-mkconfig", "-o", GRUB_CONFIG_PATH])
        logger.info("GRUB installed (%s)", "x86_64-efi" if plan.uefi else "i386-pc")
