from __future__ import annotations

import os

import pytest

from blunux_installer.errors import MountError
from blunux_installer.lib.crypt import MAPPED_DEVICE
from blunux_installer.lib.disk import PartitionLayout, PartitionScheme
from blunux_installer.lib.mount import MountManager

GPT = PartitionLayout(efi_partition="/dev/sda1", root_partition="/dev/sda2", scheme=PartitionScheme.GPT_UEFI)
MBR = PartitionLayout(root_partition="/dev/sda1", scheme=PartitionScheme.MBR_BIOS)


def test_mount_root_then_esp(fake_ops):
    root = MountManager(fake_ops).mount(GPT, "/mnt")
    assert root == "/dev/sda2"
    assert fake_ops.called("mount") == [("/dev/sda2", "/mnt"), ("/dev/sda1", os.path.join("/mnt", "boot", "efi"))]


def test_mount_mbr_has_no_esp(fake_ops):
    MountManager(fake_ops).mount(MBR, "/mnt")
    assert fake_ops.called("mount") == [("/dev/sda1", "/mnt")]


def test_mount_uses_mapped_device_when_present(fake_ops):
    fake_ops.devices.add(MAPPED_DEVICE)
    root = MountManager(fake_ops).mount(GPT, "/mnt")
    assert root == MAPPED_DEVICE
    assert fake_ops.called("mount")[0] == (MAPPED_DEVICE, "/mnt")


def test_partial_mount_failure_leaves_root_mounted(fake_ops):
    fake_ops.fail("mount", "/dev/sda1")
    with pytest.raises(MountError):
        MountManager(fake_ops).mount(GPT, "/mnt")
    assert fake_ops.mounted == [("/dev/sda2", "/mnt")]
    assert fake_ops.called("umount") == []


def test_root_mount_failure(fake_ops):
    fake_ops.fail("mount", "/dev/sda2")
    with pytest.raises(MountError, match="/dev/sda2"):
        MountManager(fake_ops).mount(GPT, "/mnt")


def test_unmount_is_recursive_and_closes_mapping(fake_ops):
    fake_ops.devices.add(MAPPED_DEVICE)
    mm = MountManager(fake_ops)
    mm.mount(GPT, "/mnt")

    assert mm.unmount("/mnt") is True
    assert fake_ops.called("umount") == [("/mnt", True, False)]
    assert fake_ops.called("luks_close") == [("cryptroot",)]
    assert fake_ops.mounted == []
    assert MAPPED_DEVICE not in fake_ops.devices


def test_unmount_never_fails(fake_ops):
    fake_ops.fail("umount")
    fake_ops.fail("luks_close")
    assert MountManager(fake_ops).unmount("/mnt") is True
