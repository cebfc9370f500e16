from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigError
from .lib.crypt import EncryptionSpec

logger = logging.getLogger(__name__)

CONFIG_SEARCH_PATHS = (
    "/etc/blunux/config.yaml",
    "/root/config.yaml",
    "./config.yaml",
)

INPUT_METHOD_ENGINES = ("kime", "fcitx5", "ibus")
KERNEL_TYPES = ("linux", "linux-lts", "linux-zen", "linux-bore")
BOOTLOADERS = ("grub", "nmbl")

# Order of the post-first-boot install script.
SCRIPT_PACKAGES = (
    # browsers
    "firefox", "whale", "chrome", "mullvad",
    # office
    "libreoffice", "hoffice", "texlive",
    # development
    "vscode", "sublime", "rust", "julia", "nodejs", "github_cli",
    # multimedia
    "obs", "vlc", "freetv", "ytdlp", "freetube",
    # gaming
    "steam", "unciv", "snes9x",
    # virtualization
    "virtualbox", "docker",
    # communication
    "teams", "whatsapp", "onenote",
    # utility
    "conky", "vnc", "samba", "bluetooth",
)


@dataclass(frozen=True)
class LocaleConfig:
    languages: Tuple[str, ...] = ("ko_KR",)
    timezone: str = "Asia/Seoul"
    keyboards: Tuple[str, ...] = ("us",)

    @property
    def default_language(self) -> str:
        return self.languages[0] if self.languages else "en_US"

    @property
    def keymap(self) -> Optional[str]:
        return self.keyboards[0] if self.keyboards else None


@dataclass(frozen=True)
class InputMethodConfig:
    enabled: bool = True
    engine: str = "kime"


@dataclass(frozen=True)
class KernelConfig:
    type: str = "linux"


@dataclass(frozen=True)
class PackagesConfig:
    kde: bool = True
    firefox: bool = True
    whale: bool = False
    chrome: bool = False
    mullvad: bool = False
    libreoffice: bool = False
    hoffice: bool = False
    texlive: bool = False
    vscode: bool = False
    sublime: bool = False
    git: bool = True
    rust: bool = False
    julia: bool = False
    nodejs: bool = False
    github_cli: bool = False
    vlc: bool = True
    obs: bool = False
    freetv: bool = False
    ytdlp: bool = False
    freetube: bool = False
    steam: bool = False
    unciv: bool = False
    snes9x: bool = False
    virtualbox: bool = False
    docker: bool = False
    teams: bool = False
    whatsapp: bool = False
    onenote: bool = False
    bluetooth: bool = True
    conky: bool = False
    vnc: bool = False
    samba: bool = False

    def script_packages(self) -> List[str]:
        """Selected packages installed by per-package scripts after first boot."""
        return [name for name in SCRIPT_PACKAGES if getattr(self, name)]


@dataclass(frozen=True)
class InstallOptions:
    target_disk: str = ""
    hostname: str = "blunux"
    username: str = "user"
    root_password: str = field(default="", repr=False)
    user_password: str = field(default="", repr=False)
    use_encryption: bool = False
    encryption_password: str = field(default="", repr=False)
    bootloader: str = "grub"
    autologin: bool = True


@dataclass(frozen=True)
class DiskConfig:
    swap_mib: int = 8192


@dataclass(frozen=True)
class InstallConfig:
    name: str = "blunux"
    version: str = "1.0"
    locale: LocaleConfig = field(default_factory=LocaleConfig)
    input_method: InputMethodConfig = field(default_factory=InputMethodConfig)
    kernel: KernelConfig = field(default_factory=KernelConfig)
    packages: PackagesConfig = field(default_factory=PackagesConfig)
    install: InstallOptions = field(default_factory=InstallOptions)
    disk: DiskConfig = field(default_factory=DiskConfig)

    @property
    def direct_boot_requested(self) -> bool:
        return self.install.bootloader == "nmbl"

    def encryption_for(self, firmware_uefi: bool) -> EncryptionSpec:
        """Encryption settings for this run; GRUB-unlockable unless booting directly."""
        direct = self.direct_boot_requested and firmware_uefi
        return EncryptionSpec(
            enabled=self.install.use_encryption,
            passphrase=self.install.encryption_password,
            pbkdf=None if direct else "pbkdf2",
        )

    def with_overrides(self, *, target_disk: Optional[str] = None, bootloader: Optional[str] = None) -> "InstallConfig":
        changes: Dict[str, Any] = {}
        if target_disk:
            changes["target_disk"] = target_disk
        if bootloader:
            changes["bootloader"] = bootloader
        if not changes:
            return self
        cfg = replace(self, install=replace(self.install, **changes))
        validate_config(cfg)
        return cfg


def _str_list(value: Any, key: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, Sequence):
        return tuple(str(v) for v in value)
    raise ConfigError(f"{key} must be a string or a list of strings")


def _coerce(value: Any, default: Any, key: str) -> Any:
    # YAML turns bare scalars like `hostname: 2024` into ints
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{key} must be true or false, got {value!r}")
        return value
    if isinstance(default, int):
        if isinstance(value, bool):
            raise ConfigError(f"{key} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{key} must be an integer, got {value!r}") from e
    if isinstance(default, str):
        if value is None:
            return default
        if isinstance(value, (Mapping, list)):
            raise ConfigError(f"{key} must be a string")
        return str(value)
    return value


def _known(section: Mapping[str, Any], cls: type, key: str) -> Dict[str, Any]:
    defaults = {f.name: f.default for f in fields(cls)}
    unknown = sorted(set(section) - set(defaults))
    if unknown:
        logger.warning("Ignoring unknown keys in [%s]: %s", key, ", ".join(unknown))
    return {k: _coerce(v, defaults[k], f"{key}.{k}") for k, v in section.items() if k in defaults}


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = raw.get(key) or {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"[{key}] must be a mapping")
    return section


def _flatten_packages(section: Mapping[str, Any]) -> Dict[str, Any]:
    # packages may be grouped by category (packages.browser.firefox) or flat
    flat: Dict[str, Any] = {}
    for k, v in section.items():
        if isinstance(v, Mapping):
            flat.update(v)
        else:
            flat[k] = v
    return flat


def config_from_dict(raw: Mapping[str, Any]) -> InstallConfig:
    meta = _section(raw, "blunux")
    loc = _section(raw, "locale")
    im = _section(raw, "input_method")
    kern = _section(raw, "kernel")
    inst = dict(_section(raw, "install"))
    disk = _section(raw, "disk")

    locale_kwargs: Dict[str, Any] = {}
    if "language" in loc or "languages" in loc:
        locale_kwargs["languages"] = _str_list(loc.get("languages", loc.get("language")), "locale.language")
    if "keyboard" in loc or "keyboards" in loc:
        locale_kwargs["keyboards"] = _str_list(loc.get("keyboards", loc.get("keyboard")), "locale.keyboard")
    if loc.get("timezone"):
        locale_kwargs["timezone"] = str(loc["timezone"])

    # short alias for use_encryption
    if "encryption" in inst and "use_encryption" not in inst:
        inst["use_encryption"] = inst.pop("encryption")

    cfg = InstallConfig(
        name=str(meta.get("name") or "blunux"),
        version=str(meta.get("version") or "1.0"),
        locale=LocaleConfig(**locale_kwargs),
        input_method=InputMethodConfig(**_known(im, InputMethodConfig, "input_method")),
        kernel=KernelConfig(**_known(kern, KernelConfig, "kernel")),
        packages=PackagesConfig(**_known(_flatten_packages(_section(raw, "packages")), PackagesConfig, "packages")),
        install=InstallOptions(**_known(inst, InstallOptions, "install")),
        disk=DiskConfig(**_known(disk, DiskConfig, "disk")),
    )
    validate_config(cfg)
    return cfg


def validate_config(cfg: InstallConfig) -> None:
    if cfg.input_method.engine not in INPUT_METHOD_ENGINES:
        raise ConfigError(
            f"input_method.engine must be one of {', '.join(INPUT_METHOD_ENGINES)}, got {cfg.input_method.engine!r}"
        )
    if cfg.kernel.type not in KERNEL_TYPES:
        raise ConfigError(f"kernel.type must be one of {', '.join(KERNEL_TYPES)}, got {cfg.kernel.type!r}")
    if cfg.install.bootloader not in BOOTLOADERS:
        raise ConfigError(f"install.bootloader must be one of {', '.join(BOOTLOADERS)}, got {cfg.install.bootloader!r}")
    if cfg.install.use_encryption and not cfg.install.encryption_password:
        raise ConfigError("install.use_encryption is set but install.encryption_password is empty")
    if not str(cfg.install.hostname).strip():
        raise ConfigError("install.hostname must not be empty")
    if not str(cfg.install.username).strip():
        raise ConfigError("install.username must not be empty")
    if int(cfg.disk.swap_mib) < 0:
        raise ConfigError("disk.swap_mib must be >= 0")


def load_config(path: str) -> InstallConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {path}")

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("install config must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the install config") from e

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")

    return config_from_dict(raw)


def find_config(paths: Sequence[str] = CONFIG_SEARCH_PATHS) -> Optional[str]:
    for candidate in paths:
        if Path(candidate).exists():
            return candidate
    return None
