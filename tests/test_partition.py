from __future__ import annotations

import pytest

from blunux_installer.errors import DestructiveOperationError, PartitionError
from blunux_installer.lib.crypt import MAPPED_DEVICE, EncryptionSpec, resolve_root_device
from blunux_installer.lib.disk import PartitionLayout, PartitionScheme
from blunux_installer.lib.partition import PartitionExecutor


def test_gpt_partitioning_sequence(fake_ops):
    layout = PartitionExecutor(fake_ops).partition("/dev/sda", PartitionScheme.GPT_UEFI)

    assert layout == PartitionLayout(
        efi_partition="/dev/sda1", root_partition="/dev/sda2", scheme=PartitionScheme.GPT_UEFI
    )
    assert fake_ops.called("wipe") == [("/dev/sda",)]
    assert fake_ops.called("parted") == [
        ("/dev/sda", "mklabel", "gpt"),
        ("/dev/sda", "mkpart", "primary", "fat32", "1MiB", "513MiB"),
        ("/dev/sda", "set", "1", "esp", "on"),
        ("/dev/sda", "mkpart", "primary", "ext4", "513MiB", "100%"),
    ]
    # re-enumeration happens after the last partition is created
    methods = fake_ops.methods()
    last_parted = max(i for i, m in enumerate(methods) if m == "parted")
    assert "reprobe" in methods[last_parted:]
    assert "settle" in methods[last_parted:]


def test_mbr_partitioning_sequence(fake_ops):
    layout = PartitionExecutor(fake_ops).partition("/dev/vda", PartitionScheme.MBR_BIOS)

    assert layout == PartitionLayout(root_partition="/dev/vda1", scheme=PartitionScheme.MBR_BIOS)
    assert fake_ops.called("parted") == [
        ("/dev/vda", "mklabel", "msdos"),
        ("/dev/vda", "mkpart", "primary", "ext4", "1MiB", "100%"),
        ("/dev/vda", "set", "1", "boot", "on"),
    ]


def test_boot_flag_failure_is_only_a_warning(fake_ops):
    fake_ops.fail("parted", "/dev/vda", "set", "1", "boot")
    layout = PartitionExecutor(fake_ops).partition("/dev/vda", PartitionScheme.MBR_BIOS)
    assert layout.root_partition == "/dev/vda1"


def test_wipe_failure_does_not_stop_partitioning(fake_ops):
    fake_ops.fail("wipe")
    PartitionExecutor(fake_ops).partition("/dev/sda", PartitionScheme.GPT_UEFI)
    assert len(fake_ops.called("parted")) == 4


def test_release_disk_unmounts_existing_partitions(make_ops):
    ops = make_ops(partitions={"/dev/sda": ["/dev/sda1", "/dev/sda2"]})
    PartitionExecutor(ops).partition("/dev/sda", PartitionScheme.GPT_UEFI)

    assert ops.called("umount")[:2] == [("/dev/sda2", False, True), ("/dev/sda1", False, True)]
    assert ops.called("swapoff") == [("/dev/sda2",), ("/dev/sda1",)]
    assert ops.called("luks_close") == [("cryptroot",)]
    # everything is released before the disk is wiped
    assert ops.methods().index("luks_close") < ops.methods().index("wipe")


@pytest.mark.parametrize(
    "prefix, substep",
    [
        (("mklabel",), "create partition table"),
        (("mkpart", "primary", "fat32"), "create EFI partition"),
        (("set", "1", "esp"), "set ESP flag"),
        (("mkpart", "primary", "ext4"), "create root partition"),
    ],
)
def test_failing_substep_is_named_and_aborts(fake_ops, prefix, substep):
    fake_ops.fail("parted", "/dev/sda", *prefix)

    with pytest.raises(PartitionError) as exc:
        PartitionExecutor(fake_ops).partition("/dev/sda", PartitionScheme.GPT_UEFI)

    assert exc.value.substep == substep
    assert substep in str(exc.value)
    # the failing call is the last partitioning command issued
    assert fake_ops.called("parted")[-1][1 : 1 + len(prefix)] == prefix
    assert "reprobe" not in fake_ops.methods()[fake_ops.methods().index("parted"):]


def test_partition_error_is_destructive_operation_error():
    assert issubclass(PartitionError, DestructiveOperationError)


def test_format_plain_root(fake_ops):
    layout = PartitionLayout(efi_partition="/dev/sda1", root_partition="/dev/sda2", scheme=PartitionScheme.GPT_UEFI)
    root = PartitionExecutor(fake_ops).format(layout, EncryptionSpec())

    assert root == "/dev/sda2"
    assert fake_ops.called("make_filesystem") == [("vfat", "/dev/sda1"), ("ext4", "/dev/sda2")]
    assert fake_ops.called("luks_format") == []


def test_format_mbr_has_no_esp(fake_ops):
    layout = PartitionLayout(root_partition="/dev/sda1", scheme=PartitionScheme.MBR_BIOS)
    PartitionExecutor(fake_ops).format(layout, EncryptionSpec())
    assert fake_ops.called("make_filesystem") == [("ext4", "/dev/sda1")]


def test_format_encrypted_root_targets_mapped_device(fake_ops):
    layout = PartitionLayout(
        efi_partition="/dev/nvme0n1p1", root_partition="/dev/nvme0n1p2", scheme=PartitionScheme.GPT_UEFI
    )
    spec = EncryptionSpec(enabled=True, passphrase="hunter2", pbkdf="pbkdf2")
    root = PartitionExecutor(fake_ops).format(layout, spec)

    assert root == MAPPED_DEVICE
    assert fake_ops.called("luks_format") == [("/dev/nvme0n1p2", "pbkdf2")]
    assert fake_ops.called("luks_open") == [("/dev/nvme0n1p2", "cryptroot")]
    assert ("ext4", MAPPED_DEVICE) in fake_ops.called("make_filesystem")
    assert ("ext4", "/dev/nvme0n1p2") not in fake_ops.called("make_filesystem")
    assert resolve_root_device(fake_ops, layout) == MAPPED_DEVICE


def test_passphrase_never_reaches_argv(fake_ops):
    layout = PartitionLayout(root_partition="/dev/sda1", scheme=PartitionScheme.MBR_BIOS)
    PartitionExecutor(fake_ops).format(layout, EncryptionSpec(enabled=True, passphrase="hunter2"))

    assert all("hunter2" not in str(args) for _, args in fake_ops.calls)
    assert [text for _, text in fake_ops.stdin] == ["hunter2", "hunter2"]


def test_encryption_without_passphrase_is_refused(fake_ops):
    layout = PartitionLayout(root_partition="/dev/sda1", scheme=PartitionScheme.MBR_BIOS)
    with pytest.raises(DestructiveOperationError):
        PartitionExecutor(fake_ops).format(layout, EncryptionSpec(enabled=True, passphrase=""))
    assert fake_ops.called("make_filesystem") == []


def test_luks_open_failure_stops_formatting(fake_ops):
    fake_ops.fail("luks_open")
    layout = PartitionLayout(root_partition="/dev/sda1", scheme=PartitionScheme.MBR_BIOS)
    with pytest.raises(DestructiveOperationError):
        PartitionExecutor(fake_ops).format(layout, EncryptionSpec(enabled=True, passphrase="pw"))
    assert fake_ops.called("make_filesystem") == []


def test_esp_format_failure(fake_ops):
    fake_ops.fail("make_filesystem", "vfat")
    layout = PartitionLayout(efi_partition="/dev/sda1", root_partition="/dev/sda2", scheme=PartitionScheme.GPT_UEFI)
    with pytest.raises(DestructiveOperationError, match="EFI"):
        PartitionExecutor(fake_ops).format(layout, EncryptionSpec())


def test_encryption_spec_repr_hides_passphrase():
    assert "hunter2" not in repr(EncryptionSpec(enabled=True, passphrase="hunter2"))


def test_release_disk_clears_leftover_encrypted_mounts(make_ops):
    ops = make_ops(partitions={"/dev/sda": ["/dev/sda1", "/dev/sda2", MAPPED_DEVICE]})
    ops.devices.add(MAPPED_DEVICE)
    ops.mounted = [(MAPPED_DEVICE, "/mnt"), ("/dev/sda1", "/mnt/boot/efi")]

    PartitionExecutor(ops).release_disk("/dev/sda", "/mnt")

    umounts = ops.called("umount")
    assert umounts[0] == ("/mnt", True, False)
    # the mapped device goes before the partition underneath it
    assert umounts[1:] == [(MAPPED_DEVICE, False, True), ("/dev/sda2", False, True), ("/dev/sda1", False, True)]
    assert ops.mounted == []
    assert ops.called("luks_close") == [("cryptroot",)]
    assert MAPPED_DEVICE not in ops.devices
