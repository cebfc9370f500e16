from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from . import __version__
from .config import BOOTLOADERS, InstallConfig, find_config, load_config
from .errors import ConfigError, PreflightError
from .lib.disk import list_disks
from .lib.mount import DEFAULT_STAGING_ROOT
from .lib.ops import SystemOps
from .lib.preflight import run_preflight
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import InstallationPipeline, InstallContext, ProgressObserver
from .steps import (
    ConfigureLocaleStep,
    ConfigureSystemStep,
    ConfigureUsersStep,
    FinalizeStep,
    InstallBaseStep,
    InstallBootloaderStep,
    InstallPackagesStep,
    PrepareDiskStep,
    WriteFstabStep,
)

logger = logging.getLogger(__name__)


def build_steps():
    return [
        PrepareDiskStep(),
        InstallBaseStep(),
        WriteFstabStep(),
        ConfigureSystemStep(),
        InstallPackagesStep(),
        ConfigureLocaleStep(),
        ConfigureUsersStep(),
        InstallBootloaderStep(),
        FinalizeStep(),
    ]


@dataclass(frozen=True)
class InstallResult:
    success: bool
    error: str
    ran_steps: List[str]
    warnings: List[Tuple[str, str]] = field(default_factory=list)


def run_install(
    config: InstallConfig,
    ops: SystemOps,
    *,
    observer: Optional[ProgressObserver] = None,
    staging_root: str = DEFAULT_STAGING_ROOT,
) -> InstallResult:
    """Run one installation against ``config.install.target_disk``.

    Destructive: the caller must have confirmed the target disk.
    """
    ctx = InstallContext(config=config, ops=ops, firmware_uefi=ops.is_uefi(), staging_root=staging_root)
    logger.info(
        "Installing %s %s to %s (firmware=%s, bootloader=%s, encryption=%s)",
        config.name,
        config.version,
        config.install.target_disk,
        "uefi" if ctx.firmware_uefi else "bios",
        config.install.bootloader,
        config.install.use_encryption,
    )
    pipeline = InstallationPipeline(build_steps(), observer=observer)
    ok = pipeline.run(ctx)
    return InstallResult(
        success=ok,
        error=pipeline.error,
        ran_steps=list(pipeline.state.ran_steps),
        warnings=list(ctx.report.failures),
    )


def _load(args: argparse.Namespace) -> InstallConfig:
    path = args.config or find_config()
    if path:
        logger.info("Loading config from %s", path)
        cfg = load_config(path)
    else:
        logger.info("No config file found; using defaults")
        cfg = InstallConfig()
    cfg = cfg.with_overrides(target_disk=args.disk, bootloader=args.bootloader)
    if not cfg.install.target_disk:
        raise ConfigError("No target disk: set install.target_disk or pass --disk")
    return cfg


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="blunux-installer", description="Install Blunux onto a disk.")
    p.add_argument("--config", default=None, help="Path to config.yaml (default: search standard locations)")
    p.add_argument("--disk", default=None, help="Target disk, e.g. /dev/sda or /dev/nvme0n1 (ERASED)")
    p.add_argument("--bootloader", choices=BOOTLOADERS, default=None, help="grub or nmbl (direct EFISTUB boot)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to installer log")
    p.add_argument("--dry-run", action="store_true", help="Log every command without running it")
    p.add_argument("--yes", action="store_true", help="Confirm that the target disk will be erased")
    p.add_argument("--list-disks", action="store_true", help="List candidate disks and exit")
    p.add_argument("--debug", action="store_true", help="Verbose console logging")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = p.parse_args(argv)

    configure_logging(log_path=args.log, level=logging.DEBUG if args.debug else logging.INFO)

    if args.list_disks:
        for d in list_disks(SystemOps()):
            print(f"{d.device}\t{d.size}\t{d.model}")
        return 0

    try:
        cfg = _load(args)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if not (args.yes or args.dry_run):
        print(
            f"Refusing to erase {cfg.install.target_disk} without --yes (use --dry-run to preview).",
            file=sys.stderr,
        )
        return 1

    ops = SystemOps(dry_run=args.dry_run)
    try:
        if not args.dry_run:
            run_preflight(ops)
        result = run_install(cfg, ops)
    except PreflightError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInstallation interrupted", file=sys.stderr)
        return 130

    if not result.success:
        print(f"Installation failed: {result.error}", file=sys.stderr)
        return 1

    for where, msg in result.warnings:
        print(f"warning: {where}: {msg}", file=sys.stderr)
    print("Installation complete. Remove the installation media and reboot.")
    if cfg.packages.script_packages():
        print("After first boot, run ~/install-packages.sh to install the selected applications.")
    return 0
