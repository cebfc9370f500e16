from __future__ import annotations

from ..lib.sysconfig import SystemConfigurator
from ..pipeline import FailurePolicy, InstallContext


class ConfigureUsersStep:
    step_id = "70_configure_users"
    message = "Configuring users"
    policy = FailurePolicy.BEST_EFFORT

    def run(self, ctx: InstallContext) -> None:
        SystemConfigurator(ctx.ops, ctx.config, ctx.staging_root, ctx.report).configure_users()
