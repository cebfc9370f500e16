from __future__ import annotations

from ..lib.sysconfig import SystemConfigurator
from ..pipeline import FailurePolicy, InstallContext


class ConfigureSystemStep:
    step_id = "40_configure_system"
    message = "Configuring system"
    policy = FailurePolicy.BEST_EFFORT

    def run(self, ctx: InstallContext) -> None:
        sysconf = SystemConfigurator(ctx.ops, ctx.config, ctx.staging_root, ctx.report)
        sysconf.configure_system()
        sysconf.setup_swap()
