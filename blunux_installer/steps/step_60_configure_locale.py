from __future__ import annotations

from ..lib.sysconfig import SystemConfigurator
from ..pipeline import FailurePolicy, InstallContext


class ConfigureLocaleStep:
    step_id = "60_configure_locale"
    message = "Configuring locale"
    policy = FailurePolicy.BEST_EFFORT

    def run(self, ctx: InstallContext) -> None:
        SystemConfigurator(ctx.ops, ctx.config, ctx.staging_root, ctx.report).configure_locale()
