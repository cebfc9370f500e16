"""Disk layout planning.

Pure decision logic: partition scheme from firmware mode, and the mapping
between a disk and its partition device paths. ``partition_path`` and
``parse_partition_path`` are inverses of each other; partitioning, mounting
and firmware boot-entry registration all go through them so the numbers
handed to firmware always match the partitions actually created.
"""

from __future__ import annotations

import enum
import logging
import os
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Tuple

from ..errors import PlanningError

if TYPE_CHECKING:
    from .ops import SystemOps

logger = logging.getLogger(__name__)

ESP_SIZE_MIB = 512
ESP_START_MIB = 1
ESP_END_MIB = ESP_START_MIB + ESP_SIZE_MIB

_P_SEPARATED_PART = re.compile(r"^(?P<disk>.*\d)p(?P<num>[1-9]\d*)$")
_PLAIN_PART = re.compile(r"^(?P<disk>.*\D)(?P<num>[1-9]\d*)$")


class PartitionScheme(enum.Enum):
    GPT_UEFI = "gpt_uefi"
    MBR_BIOS = "mbr_bios"

    @property
    def label(self) -> str:
        """parted disk label name."""
        return "gpt" if self is PartitionScheme.GPT_UEFI else "msdos"


@dataclass(frozen=True)
class TargetDisk:
    device: str
    size: str = ""
    model: str = "Unknown"
    type: str = "disk"

    @property
    def family(self) -> str:
        return disk_family(self.device)


@dataclass(frozen=True)
class PartitionLayout:
    root_partition: str
    scheme: PartitionScheme
    efi_partition: Optional[str] = None

    @property
    def has_esp(self) -> bool:
        return self.scheme is PartitionScheme.GPT_UEFI


def decide_scheme(firmware_is_uefi: bool) -> PartitionScheme:
    if firmware_is_uefi:
        return PartitionScheme.GPT_UEFI
    return PartitionScheme.MBR_BIOS


def _validate_disk(disk: str) -> str:
    disk = (disk or "").strip()
    if not disk:
        raise PlanningError("No target disk given")
    if not disk.startswith("/dev/") or disk.endswith("/"):
        raise PlanningError(f"Target disk must be a /dev block device path, got: {disk!r}")
    return disk


def uses_p_separator(disk: str) -> bool:
    """True for disks whose name ends in a numeric namespace token.

    nvme0n1, mmcblk0, loop0, nbd0 and md0 name their partitions
    ``<disk>p<N>``; sda, vda, hdb and xvda append ``<N>`` directly.
    """
    return _validate_disk(disk)[-1].isdigit()


def disk_family(disk: str) -> str:
    return "p-separated" if uses_p_separator(disk) else "plain"


def partition_path(disk: str, number: int) -> str:
    disk = _validate_disk(disk)
    if number < 1:
        raise PlanningError(f"Partition numbers start at 1, got {number}")
    if uses_p_separator(disk):
        return f"{disk}p{number}"
    return f"{disk}{number}"


def parse_partition_path(partition: str) -> Tuple[str, int]:
    """Split a partition device path into (owning disk, partition index)."""
    partition = (partition or "").strip()
    m = _P_SEPARATED_PART.match(partition)
    if m is None:
        m = _PLAIN_PART.match(partition)
        # plain disk names (sda, vda, xvda) carry no digits; nvme0n1 or mmcblk1 is a whole disk
        if m is not None and any(c.isdigit() for c in os.path.basename(m.group("disk"))):
            m = None
    if m is None or not partition.startswith("/dev/"):
        raise PlanningError(f"Cannot determine disk and partition number from {partition!r}")
    disk, number = m.group("disk"), int(m.group("num"))
    # a p-separated disk name never takes a bare suffix and vice versa
    if partition_path(disk, number) != partition:
        raise PlanningError(f"Cannot determine disk and partition number from {partition!r}")
    return disk, number


def derive_partition_paths(disk: str, scheme: PartitionScheme) -> PartitionLayout:
    """GPT_UEFI: 1 = ESP, 2 = root. MBR_BIOS: 1 = root (boot flag)."""
    if scheme is PartitionScheme.GPT_UEFI:
        return PartitionLayout(
            efi_partition=partition_path(disk, 1),
            root_partition=partition_path(disk, 2),
            scheme=scheme,
        )
    if scheme is PartitionScheme.MBR_BIOS:
        return PartitionLayout(root_partition=partition_path(disk, 1), scheme=scheme)
    raise PlanningError(f"Unknown partition scheme: {scheme!r}")


def parse_lsblk_disks(output: str) -> List[TargetDisk]:
    """Parse ``lsblk -d -n -o NAME,SIZE,MODEL,TYPE`` output.

    MODEL may contain spaces (or be empty); TYPE is always the last column.
    """
    disks: List[TargetDisk] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        name, size, dev_type = parts[0], parts[1], parts[-1]
        if dev_type != "disk":
            continue
        model = " ".join(parts[2:-1]) if len(parts) > 3 else "Unknown"
        disks.append(TargetDisk(device=f"/dev/{name}", size=size, model=model, type=dev_type))
    return disks


def list_disks(ops: "SystemOps") -> List[TargetDisk]:
    r = ops.run(["lsblk", "-d", "-n", "-o", "NAME,SIZE,MODEL,TYPE"], check=False)
    disks = parse_lsblk_disks(r.stdout or "")
    logger.debug("Found %d disk(s): %s", len(disks), [d.device for d in disks])
    return disks
