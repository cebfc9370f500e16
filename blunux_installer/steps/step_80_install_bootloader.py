from __future__ import annotations

import logging

from ..lib.bootloader import BootConfigurator, plan_boot
from ..lib.crypt import is_root_encrypted
from ..pipeline import FailurePolicy, InstallContext

logger = logging.getLogger(__name__)


class InstallBootloaderStep:
    step_id = "80_install_bootloader"
    message = "Installing bootloader"
    policy = FailurePolicy.FATAL

    def run(self, ctx: InstallContext) -> None:
        cfg = ctx.config
        layout = ctx.require_layout()

        plan = plan_boot(
            direct_requested=cfg.direct_boot_requested,
            firmware_uefi=ctx.firmware_uefi,
            kernel_type=cfg.kernel.type,
            disk=cfg.install.target_disk,
            layout=layout,
            encrypted=is_root_encrypted(ctx.ops, layout),
        )
        BootConfigurator(ctx.ops, ctx.staging_root, layout).configure(plan)
