from __future__ import annotations

import logging

from ..lib.disk import decide_scheme, derive_partition_paths
from ..lib.mount import MountManager
from ..lib.partition import PartitionExecutor
from ..pipeline import FailurePolicy, InstallContext

logger = logging.getLogger(__name__)


class PrepareDiskStep:
    step_id = "10_prepare_disk"
    message = "Preparing disk"
    policy = FailurePolicy.FATAL

    def run(self, ctx: InstallContext) -> None:
        cfg = ctx.config
        disk = cfg.install.target_disk

        scheme = decide_scheme(ctx.firmware_uefi)
        # fail on a bad disk name before anything destructive happens
        planned = derive_partition_paths(disk, scheme)
        logger.info("Partition scheme %s for %s (planned %s)", scheme.name, disk, planned)

        executor = PartitionExecutor(ctx.ops)
        ctx.layout = executor.partition(disk, scheme, ctx.staging_root)
        ctx.root_device = executor.format(ctx.layout, cfg.encryption_for(ctx.firmware_uefi))
        ctx.root_device = MountManager(ctx.ops).mount(ctx.layout, ctx.staging_root)
