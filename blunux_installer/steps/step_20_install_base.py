from __future__ import annotations

import logging

from ..errors import CommandError, DestructiveOperationError
from ..lib.packages import bootstrap_packages, pacstrap
from ..pipeline import FailurePolicy, InstallContext

logger = logging.getLogger(__name__)


class InstallBaseStep:
    step_id = "20_install_base"
    message = "Installing base system"
    policy = FailurePolicy.FATAL

    def run(self, ctx: InstallContext) -> None:
        packages = bootstrap_packages(ctx.config, ctx.firmware_uefi)
        logger.info("Bootstrap packages: %s", " ".join(packages))
        try:
            pacstrap(ctx.ops, ctx.staging_root, packages)
        except CommandError as e:
            raise DestructiveOperationError(f"Failed to install base system: {e}") from e
