from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Protocol, Sequence

from .errors import InstallerError
from .lib.disk import PartitionLayout
from .lib.mount import DEFAULT_STAGING_ROOT, MountManager
from .lib.sysconfig import ConfigReport

if TYPE_CHECKING:
    from .config import InstallConfig
    from .lib.ops import SystemOps

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[int, int, str], None]


class FailurePolicy(enum.Enum):
    FATAL = "fatal"
    BEST_EFFORT = "best_effort"


@dataclass
class InstallContext:
    """Everything one installation run shares between its steps."""

    config: "InstallConfig"
    ops: "SystemOps"
    firmware_uefi: bool
    staging_root: str = DEFAULT_STAGING_ROOT
    layout: Optional[PartitionLayout] = None
    root_device: Optional[str] = None
    report: ConfigReport = field(default_factory=ConfigReport)
    # home-relative files rendered early and written once the user exists
    deferred_files: Dict[str, str] = field(default_factory=dict)

    def require_layout(self) -> PartitionLayout:
        if self.layout is None:
            raise InstallerError("Disk layout missing; the disk preparation step has not run")
        return self.layout


class Step(Protocol):
    """A single installation step."""

    step_id: str
    message: str
    policy: FailurePolicy

    def run(self, ctx: InstallContext) -> None:
        ...


@dataclass
class PipelineState:
    current_step: int = 0
    total_steps: int = 0
    error: str = ""
    ran_steps: List[str] = field(default_factory=list)


def console_reporter(step: int, total: int, message: str) -> None:
    print(f"[{step}/{total}] {message}...", flush=True)


class InstallationPipeline:
    """Runs steps in order; stops at the first fatal failure.

    Nothing is rolled back or unmounted after a fatal failure, so the disk
    can be inspected as of the failing step. After a successful run the
    staging root is unmounted.
    """

    def __init__(self, steps: Sequence[Step], observer: Optional[ProgressObserver] = None) -> None:
        self.steps = list(steps)
        self.observer: ProgressObserver = observer or console_reporter
        self.state = PipelineState(total_steps=len(self.steps))

    @property
    def error(self) -> str:
        return self.state.error

    def run(self, ctx: InstallContext) -> bool:
        total = len(self.steps)
        self.state = PipelineState(total_steps=total)

        for index, step in enumerate(self.steps, start=1):
            self.state.current_step = index
            self.observer(index, total, step.message)
            logger.info("Running step %s (%d/%d)", step.step_id, index, total)

            try:
                step.run(ctx)
            except (InstallerError, OSError) as e:
                if step.policy is FailurePolicy.FATAL:
                    self.state.error = str(e)
                    logger.error("Step %s failed: %s", step.step_id, e)
                    return False
                ctx.report.record(step.step_id, e)
            self.state.ran_steps.append(step.step_id)

        if ctx.report.failures:
            logger.warning("Installation finished with %d non-fatal problem(s)", len(ctx.report.failures))

        MountManager(ctx.ops).unmount(ctx.staging_root)
        logger.info("Installation complete")
        return True
