from __future__ import annotations

import logging

from ..lib.crypt import resolve_root_device
from ..lib.fstab import FstabEntry, render_fstab
from ..lib.sysconfig import write_target_file
from ..pipeline import FailurePolicy, InstallContext

logger = logging.getLogger(__name__)


class WriteFstabStep:
    step_id = "30_write_fstab"
    message = "Generating fstab"
    policy = FailurePolicy.FATAL

    def run(self, ctx: InstallContext) -> None:
        layout = ctx.require_layout()
        ops = ctx.ops

        root_device = resolve_root_device(ops, layout)
        root_uuid = ops.block_uuid(root_device)
        entries = [
            FstabEntry(spec=f"UUID={root_uuid}", mountpoint="/", fstype="ext4", options="defaults", dump=0, passno=1),
        ]

        if layout.has_esp:
            esp_uuid = ops.block_uuid(str(layout.efi_partition))
            entries.append(
                FstabEntry(
                    spec=f"UUID={esp_uuid}",
                    mountpoint="/boot/efi",
                    fstype="vfat",
                    options="umask=0077",
                    dump=0,
                    passno=2,
                )
            )

        write_target_file(ctx.staging_root, "/etc/fstab", render_fstab(entries), dry_run=ops.dry_run)
        logger.info("Wrote fstab (root %s, UUID=%s)", root_device, root_uuid)
