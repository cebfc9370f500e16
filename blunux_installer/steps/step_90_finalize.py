from __future__ import annotations

from ..lib.sysconfig import SystemConfigurator
from ..pipeline import FailurePolicy, InstallContext


class FinalizeStep:
    step_id = "90_finalize"
    message = "Finalizing"
    policy = FailurePolicy.BEST_EFFORT

    def run(self, ctx: InstallContext) -> None:
        SystemConfigurator(ctx.ops, ctx.config, ctx.staging_root, ctx.report).finalize(ctx.deferred_files)
