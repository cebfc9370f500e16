"""Target-root configuration artifacts.

Every write here overwrites its file, so running the same configuration
twice yields byte-identical results. The swap entry in fstab is the one
append-only artifact and is guarded by :func:`ensure_entry`.

Failures are collected in a :class:`ConfigReport` instead of raised: a
broken hostname file should not cost the user an otherwise bootable system.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from ..errors import ConfigWriteError, InstallerError
from .fstab import SWAP_ENTRY, SWAP_FILE, ensure_entry

if TYPE_CHECKING:
    from ..config import InstallConfig
    from .ops import SystemOps

logger = logging.getLogger(__name__)

USER_GROUPS = "wheel,audio,video,storage,optical"
SERVICES = ("NetworkManager", "sddm")
OPTIONAL_SERVICES = ("cups",)

IM_MODULES = {"kime": "kime", "fcitx5": "fcitx", "ibus": "ibus"}
IM_TITLES = {"kime": "Kime Korean Input Method", "fcitx5": "Fcitx5 Input Method", "ibus": "IBus Input Method"}

KIME_CONFIG = """indicator:
  icon_color: Black

engine:
  default_category: Latin

  global_hotkeys:
    Alt_R:
      behavior: !Toggle
        - Hangul
        - Latin
      result: Consume
    Hangul:
      behavior: !Toggle
        - Hangul
        - Latin
      result: Consume
    Super-Space:
      behavior: !Toggle
        - Hangul
        - Latin
      result: Consume
    Esc:
      behavior: !Switch Latin
      result: Bypass

  hangul:
    layout: dubeolsik
    word_commit: false
    auto_reorder: true
"""

KIME_AUTOSTART = """[Desktop Entry]
Type=Application
Name=Kime Input Method
Exec=/usr/bin/kime
Terminal=false
Categories=Utility;
X-GNOME-Autostart-enabled=true
"""


@dataclass
class ConfigReport:
    """Non-fatal failures of one installation run, in the order they happened."""

    failures: List[Tuple[str, str]] = field(default_factory=list)

    def record(self, where: str, error: BaseException) -> None:
        logger.warning("%s: %s", where, error)
        self.failures.append((where, str(error)))

    @property
    def ok(self) -> bool:
        return not self.failures


def target_path(staging_root: str, rel: str) -> Path:
    return Path(staging_root) / rel.lstrip("/")


def write_target_file(
    staging_root: str,
    rel: str,
    contents: str,
    *,
    mode: Optional[int] = None,
    dry_run: bool = False,
) -> Path:
    """Overwrite ``rel`` under the staging root; raises ConfigWriteError."""
    p = target_path(staging_root, rel)
    if dry_run:
        logger.info("Would write %s", str(p))
        return p
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        if mode is not None and p.exists():
            # replace rather than write through a read-only file
            p.unlink()
        p.write_text(contents, encoding="utf-8")
        if mode is not None:
            os.chmod(p, mode)
    except OSError as e:
        raise ConfigWriteError(rel, str(e)) from e
    logger.debug("Wrote %s", str(p))
    return p


def render_hosts(hostname: str) -> str:
    return (
        "127.0.0.1    localhost\n"
        "::1          localhost\n"
        f"127.0.1.1    {hostname}.localdomain {hostname}\n"
    )


def render_locale_gen(languages: List[str]) -> str:
    langs = list(languages)
    if "en_US" not in langs:
        langs.append("en_US")
    return "".join(f"{lang}.UTF-8 UTF-8\n" for lang in langs)


def render_input_method_env(engine: str) -> str:
    module = IM_MODULES[engine]
    return (
        f"# {IM_TITLES[engine]}\n"
        f"GTK_IM_MODULE={module}\n"
        f"QT_IM_MODULE={module}\n"
        f"XMODIFIERS=@im={module}\n"
    )


def render_autologin(username: str) -> str:
    return f"[Autologin]\nUser={username}\nSession=plasma\nRelogin=true\n"


class SystemConfigurator:
    def __init__(
        self,
        ops: "SystemOps",
        config: "InstallConfig",
        staging_root: str,
        report: Optional[ConfigReport] = None,
    ) -> None:
        self.ops = ops
        self.config = config
        self.staging_root = staging_root
        self.report = report if report is not None else ConfigReport()

    @property
    def dry_run(self) -> bool:
        return bool(getattr(self.ops, "dry_run", False))

    @property
    def home(self) -> str:
        return f"/home/{self.config.install.username}"

    def _attempt(self, where: str, fn: Callable[[], object]) -> bool:
        try:
            fn()
            return True
        except (InstallerError, OSError) as e:
            self.report.record(where, e)
            return False

    def _write(self, rel: str, contents: str, *, mode: Optional[int] = None) -> bool:
        return self._attempt(
            rel, lambda: write_target_file(self.staging_root, rel, contents, mode=mode, dry_run=self.dry_run)
        )

    def _chroot(self, argv: List[str], *, input_text: Optional[str] = None) -> bool:
        return self._attempt(
            " ".join(argv), lambda: self.ops.chroot(self.staging_root, argv, input_text=input_text)
        )

    # -- system --------------------------------------------------------------

    def configure_system(self) -> None:
        tz = self.config.locale.timezone
        hostname = self.config.install.hostname

        self._chroot(["ln", "-sf", f"/usr/share/zoneinfo/{tz}", "/etc/localtime"])
        self._chroot(["hwclock", "--systohc"])
        self._write("/etc/hostname", hostname + "\n")
        self._write("/etc/hosts", render_hosts(hostname))

        for unit in SERVICES:
            self._chroot(["systemctl", "enable", unit])
        for unit in OPTIONAL_SERVICES:
            r = self.ops.chroot(self.staging_root, ["systemctl", "enable", unit], check=False)
            if not r.ok:
                logger.info("Optional service %s not enabled", unit)

        logger.info("Configured timezone=%s hostname=%s", tz, hostname)

    def setup_swap(self) -> None:
        size = int(self.config.disk.swap_mib)
        if size <= 0:
            logger.info("Swap file disabled")
            return
        swap_path = str(target_path(self.staging_root, SWAP_FILE))

        logger.info("Creating %d MiB swap file", size)
        ok = self._attempt(
            "swap file",
            lambda: self.ops.run(["dd", "if=/dev/zero", f"of={swap_path}", "bs=1M", f"count={size}", "status=none"]),
        )
        if not ok:
            return
        self._attempt("swap file mode", lambda: self.ops.run(["chmod", "600", swap_path]))
        self._chroot(["mkswap", SWAP_FILE])

        if self.dry_run:
            logger.info("Would add %s to /etc/fstab", SWAP_FILE)
            return
        fstab = target_path(self.staging_root, "/etc/fstab")
        self._attempt("/etc/fstab", lambda: ensure_entry(fstab, SWAP_ENTRY, comment="Swap file"))

    # -- locale ----------------------------------------------------------------

    def configure_locale(self) -> None:
        loc = self.config.locale
        self._write("/etc/locale.gen", render_locale_gen(list(loc.languages)))
        self._chroot(["locale-gen"])
        self._write("/etc/locale.conf", f"LANG={loc.default_language}.UTF-8\n")
        if loc.keymap:
            self._write("/etc/vconsole.conf", f"KEYMAP={loc.keymap}\n")
        self.configure_input_method()

    def configure_input_method(self) -> None:
        im = self.config.input_method
        if not im.enabled:
            return
        self._write("/etc/environment.d/input-method.conf", render_input_method_env(im.engine))

    # -- users -------------------------------------------------------------------

    def _set_password(self, user: str, password: str) -> None:
        if not password:
            logger.warning("No password configured for %s; leaving it unset", user)
            return
        # chpasswd reads from stdin so the password never shows up in argv
        self._chroot(["chpasswd"], input_text=f"{user}:{password}\n")

    def configure_users(self) -> None:
        inst = self.config.install
        self._set_password("root", inst.root_password)
        self._chroot(["useradd", "-m", "-G", USER_GROUPS, "-s", "/bin/bash", inst.username])
        self._set_password(inst.username, inst.user_password)

        self._write("/etc/sudoers.d/wheel", "%wheel ALL=(ALL:ALL) ALL\n", mode=0o440)

        if inst.autologin:
            if self._write("/etc/sddm.conf.d/autologin.conf", render_autologin(inst.username)):
                logger.info("SDDM autologin configured for user: %s", inst.username)

    # -- finalize ----------------------------------------------------------------

    def finalize(self, deferred_files: Optional[Dict[str, str]] = None) -> None:
        """Write per-user files and hand the home directory to the new user."""
        for rel, contents in (deferred_files or {}).items():
            self._write(rel, contents, mode=0o755)

        im = self.config.input_method
        if im.enabled and im.engine == "kime":
            self._write(f"{self.home}/.config/kime/config.yaml", KIME_CONFIG)
            self._write(f"{self.home}/.config/autostart/kime.desktop", KIME_AUTOSTART)

        self._chroot(["chown", "-R", "1000:1000", self.home])
        self._chroot(["chmod", "700", self.home])
