"""Exception hierarchy for the installer.

Lower layers raise; the pipeline controller is the only place where an
exception becomes the ``(success, error_message)`` pair reported to callers.
"""

from __future__ import annotations

from typing import Optional, Sequence


class InstallerError(Exception):
    """Base exception for installer errors."""


class ConfigError(InstallerError):
    """Raised when the install configuration cannot be loaded or is invalid."""


class PlanningError(InstallerError):
    """Raised on bad firmware/disk input to the layout planner."""


class CommandError(InstallerError):
    """Raised when an external command exits non-zero."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"Command failed ({returncode}): {' '.join(self.argv)}{detail}")


class DestructiveOperationError(InstallerError):
    """Raised when a wipe, partition, format or encrypt operation fails."""


class PartitionError(DestructiveOperationError):
    """Raised when one partitioning sub-step fails.

    ``substep`` names the operation that failed (e.g. ``create partition table``)
    so the terminal pipeline error identifies it.
    """

    def __init__(self, substep: str, detail: Optional[str] = None) -> None:
        self.substep = substep
        self.detail = detail
        msg = f"Failed to partition disk: {substep}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class MountError(InstallerError):
    """Raised when mounting the staging root fails."""


class ConfigWriteError(InstallerError):
    """Raised when a target-root configuration artifact cannot be written.

    Non-fatal: collected in the run report, never stops the pipeline.
    """

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Failed to write {path}: {detail}")


class BootRegistrationError(InstallerError):
    """Raised when the bootloader install or firmware boot entry registration fails."""


class PreflightError(InstallerError):
    """Raised when the live environment cannot run an installation."""
