from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional

from ..errors import CommandError, DestructiveOperationError, PartitionError
from .crypt import MAPPED_DEVICE, EncryptionSpec, close_mapping, resolve_root_device, setup_encrypted_root
from .disk import ESP_END_MIB, ESP_START_MIB, PartitionLayout, PartitionScheme, derive_partition_paths

if TYPE_CHECKING:
    from .ops import SystemOps

logger = logging.getLogger(__name__)


class PartitionExecutor:
    """Destructive disk operations: wipe, partition table, partitions, filesystems.

    Callers must have confirmed destructive intent before calling
    :meth:`partition`; nothing here asks.
    """

    def __init__(self, ops: "SystemOps") -> None:
        self.ops = ops

    def _substep(self, name: str, fn: Callable[[], object]) -> None:
        try:
            fn()
        except CommandError as e:
            logger.error("Partitioning sub-step failed: %s", name)
            raise PartitionError(name, e.stderr.strip() or None) from e

    def release_disk(self, disk: str, staging_root: Optional[str] = None) -> None:
        """Unmount/swapoff everything on ``disk`` and close our encrypted mapping.

        A previous failed run may have left ``staging_root`` mounted (root on
        the mapped device, ESP below it), so that tree goes first.
        """
        logger.info("Checking for mounted partitions on %s", disk)
        if staging_root:
            self.ops.umount(staging_root, recursive=True, check=False)
        # lsblk lists parents before children; release the deepest first
        for part in reversed(self.ops.list_partitions(disk)):
            self.ops.umount(part, force=True, check=False)
            self.ops.swapoff(part)
        close_mapping(self.ops)
        self.ops.settle(1)

    def partition(self, disk: str, scheme: PartitionScheme, staging_root: Optional[str] = None) -> PartitionLayout:
        """Wipe ``disk`` and create the layout for ``scheme``.

        GPT_UEFI: 1 = 512 MiB ESP (esp flag), 2 = root (rest of disk).
        MBR_BIOS: 1 = root (rest of disk, boot flag).
        """
        ops = self.ops
        self.release_disk(disk, staging_root)

        logger.info("Wiping disk: %s", disk)
        if not ops.wipe(disk).ok:
            logger.warning("Could not wipe disk signatures on %s", disk)
        ops.reprobe(disk)
        ops.settle(1)

        logger.info("Creating %s partition table on %s", scheme.label, disk)
        self._substep("create partition table", lambda: ops.parted(disk, "mklabel", scheme.label))

        if scheme is PartitionScheme.GPT_UEFI:
            self._substep(
                "create EFI partition",
                lambda: ops.parted(disk, "mkpart", "primary", "fat32", f"{ESP_START_MIB}MiB", f"{ESP_END_MIB}MiB"),
            )
            self._substep("set ESP flag", lambda: ops.parted(disk, "set", "1", "esp", "on"))
            self._substep(
                "create root partition",
                lambda: ops.parted(disk, "mkpart", "primary", "ext4", f"{ESP_END_MIB}MiB", "100%"),
            )
        else:
            self._substep(
                "create root partition",
                lambda: ops.parted(disk, "mkpart", "primary", "ext4", f"{ESP_START_MIB}MiB", "100%"),
            )
            try:
                ops.parted(disk, "set", "1", "boot", "on")
            except CommandError as e:
                logger.warning("Could not set boot flag on %s: %s", disk, e)

        # let the kernel re-enumerate partitions
        ops.reprobe(disk)
        ops.settle(2)

        layout = derive_partition_paths(disk, scheme)
        logger.info("Partitioning complete: %s", layout)
        return layout

    def format(self, layout: PartitionLayout, encryption: EncryptionSpec) -> str:
        """Create filesystems; returns the device the root filesystem was written to."""
        ops = self.ops

        if layout.has_esp:
            logger.info("Formatting EFI partition %s", layout.efi_partition)
            try:
                ops.make_filesystem("vfat", str(layout.efi_partition))
            except CommandError as e:
                raise DestructiveOperationError(f"Failed to format EFI partition: {e}") from e

        if encryption.enabled:
            setup_encrypted_root(ops, layout.root_partition, encryption)

        root_device = resolve_root_device(ops, layout)
        if encryption.enabled and root_device != MAPPED_DEVICE:
            raise DestructiveOperationError(f"Encrypted root requested but {MAPPED_DEVICE} does not exist")

        logger.info("Formatting root filesystem on %s", root_device)
        try:
            ops.make_filesystem("ext4", root_device)
        except CommandError as e:
            raise DestructiveOperationError(f"Failed to format root partition {root_device}: {e}") from e

        logger.info("Formatting complete")
        return root_device
