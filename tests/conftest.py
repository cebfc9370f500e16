from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from blunux_installer.config import InstallConfig, InstallOptions, KernelConfig
from blunux_installer.errors import CommandError
from blunux_installer.lib.command import CmdResult

MKINITCPIO_CONF = (
    "MODULES=()\n"
    "BINARIES=()\n"
    "FILES=()\n"
    "HOOKS=(base udev autodetect microcode modconf kms keyboard keymap consolefont block filesystems fsck)\n"
)

GRUB_DEFAULTS = (
    "GRUB_DEFAULT=0\n"
    "GRUB_TIMEOUT=5\n"
    'GRUB_DISTRIBUTOR="Arch"\n'
    'GRUB_CMDLINE_LINUX_DEFAULT="loglevel=3 quiet"\n'
    'GRUB_CMDLINE_LINUX=""\n'
)


class FakeOps:
    """Scripted stand-in for SystemOps.

    Records every call as ``(method, args)``; ``fail(method, *prefix)`` makes
    matching calls fail the way the real command would.
    """

    def __init__(
        self,
        *,
        uefi: bool = True,
        uuids: Optional[Dict[str, str]] = None,
        partitions: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        self.uefi = uefi
        self.dry_run = False
        self.uuids = dict(uuids or {})
        self.partitions = dict(partitions or {})
        self.devices: set = set()
        self.mounted: List[Tuple[str, str]] = []
        self.calls: List[Tuple[str, tuple]] = []
        self.stdin: List[Tuple[tuple, str]] = []
        self._failures: List[Tuple[str, tuple]] = []

    # -- scripting -----------------------------------------------------------

    def fail(self, method: str, *prefix: str) -> None:
        self._failures.append((method, tuple(prefix)))

    def clear_failures(self) -> None:
        self._failures.clear()

    def _should_fail(self, method: str, args: tuple) -> bool:
        return any(m == method and args[: len(p)] == p for m, p in self._failures)

    def _record(self, method: str, args: Sequence, *, check: bool = True) -> CmdResult:
        args = tuple(args)
        self.calls.append((method, args))
        argv = [str(a) for a in args]
        if self._should_fail(method, args):
            if check:
                raise CommandError(argv, 1, f"simulated {method} failure")
            return CmdResult(argv=argv, returncode=1, stdout="", stderr="simulated")
        return CmdResult(argv=argv, returncode=0, stdout="", stderr="")

    def called(self, method: str) -> List[tuple]:
        return [args for m, args in self.calls if m == method]

    def methods(self) -> List[str]:
        return [m for m, _ in self.calls]

    def commands(self) -> List[tuple]:
        """argv of every run/chroot call, in order."""
        return [args for m, args in self.calls if m in ("run", "chroot")]

    # -- SystemOps surface ---------------------------------------------------

    def run(self, argv, *, check=True, input_text=None):
        if input_text is not None:
            self.stdin.append((tuple(argv), input_text))
        return self._record("run", argv, check=check)

    def chroot(self, target_root, argv, *, check=True, input_text=None):
        if input_text is not None:
            self.stdin.append((tuple(argv), input_text))
        return self._record("chroot", argv, check=check)

    def exists(self, path):
        return path in self.devices

    def is_uefi(self):
        return self.uefi

    def list_partitions(self, disk):
        self.calls.append(("list_partitions", (disk,)))
        return list(self.partitions.get(disk, []))

    def swapoff(self, device):
        return self._record("swapoff", (device,), check=False)

    def wipe(self, disk):
        return self._record("wipe", (disk,), check=False)

    def parted(self, disk, *args):
        return self._record("parted", (disk, *args))

    def reprobe(self, disk):
        return self._record("reprobe", (disk,), check=False)

    def settle(self, seconds=None):
        self.calls.append(("settle", (seconds,)))

    def make_filesystem(self, fstype, device):
        return self._record("make_filesystem", (fstype, device))

    def luks_format(self, device, passphrase, *, pbkdf=None):
        self.stdin.append((("luks_format", device), passphrase))
        return self._record("luks_format", (device, pbkdf))

    def luks_open(self, device, name, passphrase):
        self.stdin.append((("luks_open", device), passphrase))
        r = self._record("luks_open", (device, name))
        self.devices.add(f"/dev/mapper/{name}")
        return r

    def luks_close(self, name):
        self.devices.discard(f"/dev/mapper/{name}")
        return self._record("luks_close", (name,), check=False)

    def block_uuid(self, device):
        self._record("block_uuid", (device,))
        return self.uuids.get(device, f"uuid-{os.path.basename(device)}")

    def mount(self, device, mountpoint):
        r = self._record("mount", (device, mountpoint))
        self.mounted.append((device, mountpoint))
        return r

    def umount(self, target, *, recursive=False, force=False, check=True):
        r = self._record("umount", (target, recursive, force), check=check)
        if recursive and r.ok:
            self.mounted = [(d, m) for d, m in self.mounted if not m.startswith(str(target))]
        elif r.ok:
            self.mounted = [(d, m) for d, m in self.mounted if d != target and m != target]
        return r

    def register_boot_entry(self, target_root, *, disk, part, label, loader, params):
        return self._record("register_boot_entry", (disk, part, label, loader, params))


@pytest.fixture
def fake_ops():
    return FakeOps()


@pytest.fixture
def make_ops():
    return FakeOps


@pytest.fixture
def staging_root(tmp_path: Path) -> Path:
    """A staging root holding the files pacstrap would have installed."""
    root = tmp_path / "mnt"
    (root / "etc" / "default").mkdir(parents=True)
    (root / "etc" / "mkinitcpio.conf").write_text(MKINITCPIO_CONF, encoding="utf-8")
    (root / "etc" / "default" / "grub").write_text(GRUB_DEFAULTS, encoding="utf-8")
    return root


def build_config(
    *,
    disk: str = "/dev/sda",
    bootloader: str = "grub",
    encryption: bool = False,
    kernel: str = "linux",
    **install: object,
) -> InstallConfig:
    opts = InstallOptions(
        target_disk=disk,
        hostname="blunux",
        username="user",
        root_password="rootpw",
        user_password="userpw",
        use_encryption=encryption,
        encryption_password="secret" if encryption else "",
        bootloader=bootloader,
    )
    if install:
        opts = replace(opts, **install)
    return InstallConfig(install=opts, kernel=KernelConfig(type=kernel))


@pytest.fixture
def make_config():
    return build_config
