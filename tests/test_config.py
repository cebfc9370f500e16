from __future__ import annotations

import pytest

from blunux_installer.config import (
    InstallConfig,
    PackagesConfig,
    config_from_dict,
    find_config,
    load_config,
)
from blunux_installer.errors import ConfigError

SAMPLE = """\
blunux:
  name: blunux
  version: "2.0"
locale:
  language: ja_JP
  timezone: Asia/Tokyo
  keyboard: [jp, us]
input_method:
  enabled: true
  engine: fcitx5
kernel:
  type: linux-zen
install:
  target_disk: /dev/nvme0n1
  hostname: desk
  username: alice
  root_password: r00t
  user_password: pw
  encryption: true
  encryption_password: secret
  bootloader: nmbl
  autologin: false
packages:
  browser:
    firefox: false
    chrome: true
  development:
    rust: true
  utility:
    bluetooth: false
"""


def test_load_full_config(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text(SAMPLE, encoding="utf-8")
    cfg = load_config(str(p))

    assert cfg.version == "2.0"
    assert cfg.locale.languages == ("ja_JP",)
    assert cfg.locale.keyboards == ("jp", "us")
    assert cfg.locale.timezone == "Asia/Tokyo"
    assert cfg.input_method.engine == "fcitx5"
    assert cfg.kernel.type == "linux-zen"
    assert cfg.install.target_disk == "/dev/nvme0n1"
    assert cfg.install.use_encryption is True
    assert cfg.install.autologin is False
    assert cfg.direct_boot_requested
    assert cfg.packages.script_packages() == ["chrome", "rust", "vlc"]


def test_defaults():
    cfg = InstallConfig()
    assert cfg.locale.languages == ("ko_KR",)
    assert cfg.locale.timezone == "Asia/Seoul"
    assert cfg.input_method.engine == "kime"
    assert cfg.install.bootloader == "grub"
    assert cfg.disk.swap_mib == 8192
    assert cfg.packages.script_packages() == ["firefox", "vlc", "bluetooth"]


def test_empty_document_uses_defaults(tmp_path):
    p = tmp_path / "config.yml"
    p.write_text("", encoding="utf-8")
    assert load_config(str(p)) == InstallConfig()


def test_flat_packages_section():
    cfg = config_from_dict({"packages": {"steam": True, "firefox": False}})
    assert cfg.packages.steam and not cfg.packages.firefox


def test_unknown_keys_are_ignored(caplog):
    cfg = config_from_dict({"install": {"hostname": "x", "color": "blue"}})
    assert cfg.install.hostname == "x"
    assert "color" in caplog.text


def test_passwords_hidden_from_repr():
    cfg = config_from_dict({"install": {"root_password": "r00t", "user_password": "pw"}})
    assert "r00t" not in repr(cfg)


def test_encryption_for_firmware():
    cfg = config_from_dict({"install": {"encryption": True, "encryption_password": "s", "bootloader": "nmbl"}})
    assert cfg.encryption_for(True).pbkdf is None
    # legacy firmware means GRUB, which needs pbkdf2
    assert cfg.encryption_for(False).pbkdf == "pbkdf2"
    assert cfg.encryption_for(False).enabled


@pytest.mark.parametrize(
    "raw",
    [
        {"input_method": {"engine": "uim"}},
        {"kernel": {"type": "linux-rt"}},
        {"install": {"bootloader": "systemd-boot"}},
        {"install": {"use_encryption": True}},
        {"install": {"hostname": " "}},
        {"locale": "ko_KR"},
        {"disk": {"swap_mib": -1}},
    ],
)
def test_invalid_values(raw):
    with pytest.raises(ConfigError):
        config_from_dict(raw)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "nope.yaml"))


def test_non_yaml_suffix(tmp_path):
    p = tmp_path / "config.toml"
    p.write_text("[install]\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(p))


def test_non_mapping_document(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(str(p))


def test_broken_yaml(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("install: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(str(p))


def test_overrides():
    cfg = InstallConfig().with_overrides(target_disk="/dev/vda", bootloader="nmbl")
    assert cfg.install.target_disk == "/dev/vda"
    assert cfg.install.bootloader == "nmbl"
    assert InstallConfig().with_overrides() == InstallConfig()


def test_find_config(tmp_path):
    second = tmp_path / "b.yaml"
    second.write_text("{}", encoding="utf-8")
    assert find_config([str(tmp_path / "a.yaml"), str(second)]) == str(second)
    assert find_config([str(tmp_path / "a.yaml")]) is None


def test_script_package_order_is_stable():
    everything = PackagesConfig(**{name: True for name in PackagesConfig.__dataclass_fields__})
    selected = everything.script_packages()
    assert selected[0] == "firefox"
    assert selected[-1] == "bluetooth"
    assert "kde" not in selected and "git" not in selected


def test_numeric_scalars_become_strings(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text(
        "install:\n"
        "  hostname: 2024\n"
        "  username: 1000\n"
        "  root_password: 1234\n"
        "  encryption: true\n"
        "  encryption_password: 0.5\n"
        "kernel:\n"
        "  type: linux\n"
        "disk:\n"
        '  swap_mib: "4096"\n',
        encoding="utf-8",
    )
    cfg = load_config(str(p))

    assert cfg.install.hostname == "2024"
    assert cfg.install.username == "1000"
    assert cfg.install.root_password == "1234"
    assert cfg.install.encryption_password == "0.5"
    assert cfg.disk.swap_mib == 4096


def test_empty_scalar_keeps_default():
    assert config_from_dict({"install": {"bootloader": None}}).install.bootloader == "grub"


@pytest.mark.parametrize(
    "raw",
    [
        {"install": {"autologin": "no"}},
        {"install": {"hostname": ["a", "b"]}},
        {"disk": {"swap_mib": "lots"}},
        {"disk": {"swap_mib": True}},
        {"packages": {"steam": 1}},
    ],
)
def test_wrongly_typed_values(raw):
    with pytest.raises(ConfigError):
        config_from_dict(raw)
