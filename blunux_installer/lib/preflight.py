from __future__ import annotations

import logging
import os
import shutil
from typing import TYPE_CHECKING, List, Sequence

from ..errors import PreflightError

if TYPE_CHECKING:
    from .ops import SystemOps

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = (
    "parted",
    "wipefs",
    "mkfs.fat",
    "mkfs.ext4",
    "cryptsetup",
    "pacstrap",
    "arch-chroot",
    "blkid",
    "efibootmgr",
)

NETWORK_PROBE_HOSTS = ("archlinux.org", "google.com", "1.1.1.1")


def missing_tools(tools: Sequence[str] = REQUIRED_TOOLS) -> List[str]:
    return [t for t in tools if shutil.which(t) is None]


def is_online(ops: "SystemOps", hosts: Sequence[str] = NETWORK_PROBE_HOSTS) -> bool:
    """Best-effort online check."""
    for host in hosts:
        r = ops.run(["ping", "-c", "1", "-W", "2", host], check=False)
        if r.ok:
            return True
    return False


def run_preflight(ops: "SystemOps") -> None:
    if hasattr(os, "geteuid") and os.geteuid() != 0:
        raise PreflightError("This installer must be run as root")

    missing = missing_tools()
    if missing:
        raise PreflightError(f"Required tools not found: {', '.join(missing)}")

    if not is_online(ops):
        # pacstrap will fail later without a mirror; offline caches may still work
        logger.warning("No network connection detected; package installation may fail")
    logger.info("Preflight checks passed")
