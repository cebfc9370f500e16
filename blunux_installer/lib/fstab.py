from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

logger = logging.getLogger(__name__)

SWAP_FILE = "/swapfile"


@dataclass(frozen=True)
class FstabEntry:
    spec: str
    mountpoint: str
    fstype: str
    options: str = "defaults"
    dump: int = 0
    passno: int = 0

    def render(self) -> str:
        return f"{self.spec}\t{self.mountpoint}\t{self.fstype}\t{self.options}\t{self.dump}\t{self.passno}"


SWAP_ENTRY = FstabEntry(spec=SWAP_FILE, mountpoint="none", fstype="swap")


def render_fstab(entries: Iterable[FstabEntry]) -> str:
    lines: List[str] = ["# /etc/fstab: static file system information.", "# <file system>\t<dir>\t<type>\t<options>\t<dump>\t<pass>"]
    lines += [e.render() for e in entries]
    return "\n".join(lines) + "\n"


def ensure_entry(fstab_path: Path, entry: FstabEntry, *, comment: str | None = None) -> bool:
    """Append ``entry`` unless an entry for the same spec is already present.

    Returns True if the file was changed.
    """
    existing = fstab_path.read_text(encoding="utf-8") if fstab_path.exists() else ""
    for line in existing.splitlines():
        fields = line.split()
        if fields and not fields[0].startswith("#") and fields[0] == entry.spec:
            return False

    block = ""
    if existing and not existing.endswith("\n"):
        block += "\n"
    if comment:
        block += f"\n# {comment}\n"
    block += entry.render() + "\n"

    fstab_path.parent.mkdir(parents=True, exist_ok=True)
    with fstab_path.open("a", encoding="utf-8") as f:
        f.write(block)
    logger.info("Added %s to %s", entry.spec, fstab_path)
    return True
