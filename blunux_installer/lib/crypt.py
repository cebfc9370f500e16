"""Encrypted root device handling.

When the root partition is wrapped in LUKS, the block device that holds the
root filesystem is the mapped device, not the raw partition. Everything that
refers to "the root device" (format, mount, fstab, kernel parameters) must go
through :func:`resolve_root_device`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..errors import CommandError, DestructiveOperationError

if TYPE_CHECKING:
    from .disk import PartitionLayout
    from .ops import SystemOps

logger = logging.getLogger(__name__)

MAPPER_NAME = "cryptroot"
MAPPED_DEVICE = f"/dev/mapper/{MAPPER_NAME}"


@dataclass(frozen=True)
class EncryptionSpec:
    enabled: bool = False
    passphrase: str = ""
    # key derivation for the LUKS2 keyslot; GRUB can only unlock pbkdf2
    pbkdf: Optional[str] = None

    def __repr__(self) -> str:
        return f"EncryptionSpec(enabled={self.enabled!r}, passphrase=<redacted>, pbkdf={self.pbkdf!r})"


def resolve_root_device(ops: "SystemOps", layout: "PartitionLayout") -> str:
    """Return the block device currently holding the root filesystem."""
    if ops.exists(MAPPED_DEVICE):
        return MAPPED_DEVICE
    return layout.root_partition


def is_root_encrypted(ops: "SystemOps", layout: "PartitionLayout") -> bool:
    return resolve_root_device(ops, layout) == MAPPED_DEVICE


def setup_encrypted_root(ops: "SystemOps", partition: str, spec: EncryptionSpec) -> str:
    """Create a LUKS2 container on ``partition`` and open it.

    Returns the mapped device path.
    """
    if not spec.passphrase:
        raise DestructiveOperationError("Encryption requested without a passphrase")

    logger.info("Setting up LUKS2 encryption on %s", partition)
    try:
        ops.luks_format(partition, spec.passphrase, pbkdf=spec.pbkdf)
    except CommandError as e:
        raise DestructiveOperationError(f"Failed to encrypt root partition {partition}: {e}") from e

    try:
        ops.luks_open(partition, MAPPER_NAME, spec.passphrase)
    except CommandError as e:
        raise DestructiveOperationError(f"Failed to open encrypted partition {partition}: {e}") from e

    logger.info("Opened %s as %s", partition, MAPPED_DEVICE)
    return MAPPED_DEVICE


def close_mapping(ops: "SystemOps") -> None:
    ops.luks_close(MAPPER_NAME)
