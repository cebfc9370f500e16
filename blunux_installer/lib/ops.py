"""Privileged-operation executor.

``SystemOps`` is the only object that touches disks, mounts, firmware NVRAM
and the target root through external utilities. Every caller receives it
explicitly, so tests can pass a scripted fake with the same method names.
"""

from __future__ import annotations

import logging
import os
import time
from typing import List, Optional, Sequence

from ..errors import CommandError
from .chroot import chroot_cmd
from .command import CmdResult, run_cmd
from .firmware import is_uefi

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_SECONDS = 2.0


class SystemOps:
    """Production executor: invokes the real system utilities."""

    def __init__(self, *, dry_run: bool = False, settle_seconds: float = DEFAULT_SETTLE_SECONDS) -> None:
        self.dry_run = dry_run
        self.settle_seconds = settle_seconds
        # devices a dry run pretends to have created
        self._dry_run_devices: set[str] = set()

    # -- generic ---------------------------------------------------------

    def run(self, argv: Sequence[str], *, check: bool = True, input_text: Optional[str] = None) -> CmdResult:
        return run_cmd(argv, check=check, input_text=input_text, dry_run=self.dry_run)

    def chroot(
        self,
        target_root: str,
        argv: Sequence[str],
        *,
        check: bool = True,
        input_text: Optional[str] = None,
    ) -> CmdResult:
        return chroot_cmd(target_root, argv, check=check, input_text=input_text, dry_run=self.dry_run)

    def exists(self, path: str) -> bool:
        return path in self._dry_run_devices or os.path.exists(path)

    def is_uefi(self) -> bool:
        return is_uefi()

    # -- partitioning ----------------------------------------------------

    def list_partitions(self, disk: str) -> List[str]:
        """Return device paths of every child block device of ``disk``."""
        # -p prints full paths, so mapped children come back as /dev/mapper/<name>
        r = run_cmd(["lsblk", "-lnp", "-o", "NAME", disk], check=False)
        paths = [line.strip() for line in (r.stdout or "").splitlines() if line.strip()]
        # first row is the disk itself
        return paths[1:]

    def swapoff(self, device: str) -> CmdResult:
        return self.run(["swapoff", device], check=False)

    def wipe(self, disk: str) -> CmdResult:
        return self.run(["wipefs", "-af", disk], check=False)

    def parted(self, disk: str, *args: str) -> CmdResult:
        return self.run(["parted", "-s", disk, *args])

    def reprobe(self, disk: str) -> CmdResult:
        return self.run(["partprobe", disk], check=False)

    def settle(self, seconds: Optional[float] = None) -> None:
        self.run(["udevadm", "settle"], check=False)
        delay = self.settle_seconds if seconds is None else seconds
        if delay and not self.dry_run:
            time.sleep(delay)

    # -- formatting / encryption -----------------------------------------

    def make_filesystem(self, fstype: str, device: str) -> CmdResult:
        if fstype == "vfat":
            return self.run(["mkfs.fat", "-F32", device])
        if fstype == "ext4":
            return self.run(["mkfs.ext4", "-F", device])
        raise ValueError(f"Unsupported filesystem type: {fstype}")

    def luks_format(self, device: str, passphrase: str, *, pbkdf: Optional[str] = None) -> CmdResult:
        argv = ["cryptsetup", "luksFormat", "--type", "luks2", "--batch-mode"]
        if pbkdf:
            argv += ["--pbkdf", pbkdf]
        return self.run([*argv, "--key-file=-", device], input_text=passphrase)

    def luks_open(self, device: str, name: str, passphrase: str) -> CmdResult:
        r = self.run(["cryptsetup", "open", "--key-file=-", device, name], input_text=passphrase)
        if self.dry_run:
            self._dry_run_devices.add(f"/dev/mapper/{name}")
        return r

    def luks_close(self, name: str) -> CmdResult:
        self._dry_run_devices.discard(f"/dev/mapper/{name}")
        return self.run(["cryptsetup", "close", name], check=False)

    def block_uuid(self, device: str) -> str:
        """Return filesystem UUID for a block device."""
        r = self.run(["blkid", "-s", "UUID", "-o", "value", device])
        uuid = (r.stdout or "").strip()
        if not uuid and not self.dry_run:
            raise CommandError(r.argv, r.returncode, f"Unable to determine UUID for {device}")
        return uuid

    # -- mounting ----------------------------------------------------------

    def mount(self, device: str, mountpoint: str) -> CmdResult:
        if not self.dry_run:
            os.makedirs(mountpoint, exist_ok=True)
        return self.run(["mount", device, mountpoint])

    def umount(self, target: str, *, recursive: bool = False, force: bool = False, check: bool = True) -> CmdResult:
        argv = ["umount"]
        if recursive:
            argv.append("-R")
        if force:
            argv.append("-f")
        return self.run([*argv, target], check=check)

    # -- firmware ----------------------------------------------------------

    def register_boot_entry(
        self,
        target_root: str,
        *,
        disk: str,
        part: int,
        label: str,
        loader: str,
        params: str,
    ) -> CmdResult:
        return self.chroot(
            target_root,
            [
                "efibootmgr",
                "--create",
                "--disk",
                disk,
                "--part",
                str(part),
                "--label",
                label,
                "--loader",
                loader,
                "--unicode",
                params,
            ],
        )
