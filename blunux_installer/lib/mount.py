from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from ..errors import CommandError, MountError
from .crypt import close_mapping, resolve_root_device
from .disk import PartitionLayout

if TYPE_CHECKING:
    from .ops import SystemOps

logger = logging.getLogger(__name__)

DEFAULT_STAGING_ROOT = "/mnt"


class MountManager:
    def __init__(self, ops: "SystemOps") -> None:
        self.ops = ops

    def mount(self, layout: PartitionLayout, staging_root: str) -> str:
        """Mount root (mapped or raw) at ``staging_root`` and, under GPT_UEFI, the ESP at boot/efi.

        A failure part-way leaves earlier mounts in place; the caller decides
        whether to unmount. Returns the root device that was mounted.
        """
        root_device = resolve_root_device(self.ops, layout)

        logger.info("Mounting root %s at %s", root_device, staging_root)
        try:
            self.ops.mount(root_device, staging_root)
        except CommandError as e:
            raise MountError(f"Failed to mount root partition {root_device}: {e}") from e

        if layout.has_esp:
            esp_mountpoint = os.path.join(staging_root, "boot", "efi")
            logger.info("Mounting EFI partition %s at %s", layout.efi_partition, esp_mountpoint)
            try:
                self.ops.mount(str(layout.efi_partition), esp_mountpoint)
            except (CommandError, OSError) as e:
                raise MountError(f"Failed to mount EFI partition {layout.efi_partition}: {e}") from e

        logger.info("Partitions mounted")
        return root_device

    def unmount(self, staging_root: str) -> bool:
        """Recursively unmount ``staging_root`` and close the encrypted mapping.

        Best-effort: runs on both success and failure paths, so problems are
        logged and never raised.
        """
        try:
            r = self.ops.umount(staging_root, recursive=True, check=False)
            if not r.ok:
                logger.warning("umount -R %s exited %s", staging_root, r.returncode)
        except (CommandError, OSError) as e:
            logger.warning("Unmounting %s failed: %s", staging_root, e)
        try:
            close_mapping(self.ops)
        except (CommandError, OSError) as e:
            logger.warning("Closing encrypted mapping failed: %s", e)
        return True
