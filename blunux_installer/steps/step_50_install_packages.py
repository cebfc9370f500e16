from __future__ import annotations

import logging

from ..lib.packages import BORE_SETUP_SCRIPT, render_install_script
from ..pipeline import FailurePolicy, InstallContext

logger = logging.getLogger(__name__)


class InstallPackagesStep:
    """Optional applications are installed after first boot.

    This step renders the scripts that do it; finalize writes them into the
    new user's home once the account exists.
    """

    step_id = "50_install_packages"
    message = "Installing packages"
    policy = FailurePolicy.BEST_EFFORT

    def run(self, ctx: InstallContext) -> None:
        cfg = ctx.config
        home = f"/home/{cfg.install.username}"

        selected = cfg.packages.script_packages()
        if selected:
            ctx.deferred_files[f"{home}/install-packages.sh"] = render_install_script(selected)
            logger.info("Deferred to first boot: %s", ", ".join(selected))
        else:
            logger.info("No optional packages selected")

        if cfg.kernel.type == "linux-bore":
            ctx.deferred_files[f"{home}/setup-linux-bore.sh"] = BORE_SETUP_SCRIPT
            logger.info("linux-bore will be installed after first boot")
