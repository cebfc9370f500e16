"""Package sets for bootstrap and the post-first-boot install scripts.

Optional applications are not installed into the target during
installation. Each one is fetched after first boot as ``<BASE_URL>/<name>.sh``
by a generated ``~/install-packages.sh``, so nothing here can fail the
pipeline except the base bootstrap itself.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Sequence

if TYPE_CHECKING:
    from ..config import InstallConfig
    from .ops import SystemOps

logger = logging.getLogger(__name__)

SCRIPT_BASE_URL = "https://jaewoojoung.github.io/linux"

# AUR-only kernels, bootstrapped with a repo kernel and swapped after first boot
KERNEL_FALLBACKS = {"linux-bore": "linux"}

DESKTOP_PACKAGES = (
    "xorg-server",
    "xorg-xinit",
    "wayland",
    "plasma-meta",
    "sddm",
    "konsole",
    "dolphin",
    "kate",
    "ark",
    "gwenview",
    "okular",
    "spectacle",
    "kwalletmanager",
    "kcalc",
    "plasma-systemmonitor",
    "kde-gtk-config",
    "kio-extras",
    "kdegraphics-thumbnailers",
    "ffmpegthumbs",
    "plasma-pa",
    "plasma-nm",
    "plasma-firewall",
    "partitionmanager",
    "filelight",
    "ksystemlog",
    # audio
    "pipewire",
    "pipewire-alsa",
    "pipewire-pulse",
    "pipewire-jack",
    "wireplumber",
    # printing
    "cups",
    "print-manager",
)


def effective_kernel(kernel_type: str) -> str:
    """Kernel package actually present right after bootstrap."""
    return KERNEL_FALLBACKS.get(kernel_type, kernel_type)


def _has_lang(languages: Sequence[str], prefix: str) -> bool:
    return any(prefix in lang for lang in languages)


def base_packages(cfg: "InstallConfig", firmware_uefi: bool = True) -> List[str]:
    kernel = effective_kernel(cfg.kernel.type)
    pkgs = [
        "base",
        kernel,
        f"{kernel}-headers",
        "linux-firmware",
        "base-devel",
        "sudo",
        "nano",
        "vim",
        "networkmanager",
        "network-manager-applet",
        "efibootmgr",
        "dosfstools",
        "ntfs-3g",
        "btrfs-progs",
        "intel-ucode",
        "amd-ucode",
        "noto-fonts",
        "noto-fonts-cjk",
        "noto-fonts-emoji",
        "ttf-liberation",
        "git",
        "wget",
        "curl",
        "fastfetch",
        "htop",
        "man-db",
        "man-pages",
    ]
    # direct boot only happens on UEFI; legacy firmware falls back to GRUB
    if not (cfg.direct_boot_requested and firmware_uefi):
        pkgs += ["grub", "os-prober"]
    return pkgs


def desktop_packages(cfg: "InstallConfig") -> List[str]:
    return list(DESKTOP_PACKAGES) if cfg.packages.kde else []


def font_packages(cfg: "InstallConfig") -> List[str]:
    langs = cfg.locale.languages
    fonts = ["noto-fonts", "noto-fonts-emoji"]
    if any(_has_lang(langs, p) for p in ("ko", "ja", "zh")):
        fonts.append("noto-fonts-cjk")
        if _has_lang(langs, "ko"):
            fonts.append("ttf-baekmuk")
    return fonts


def input_method_packages(cfg: "InstallConfig") -> List[str]:
    if not cfg.input_method.enabled:
        return []
    langs = cfg.locale.languages
    engine = cfg.input_method.engine
    if engine == "kime":
        # kime itself comes from the AUR; these are its toolkit integrations
        return ["gtk3", "gtk4", "qt5-base", "qt6-base", "qt6-tools"]
    if engine == "fcitx5":
        pkgs = ["fcitx5", "fcitx5-configtool", "fcitx5-gtk", "fcitx5-qt"]
        if _has_lang(langs, "ko"):
            pkgs.append("fcitx5-hangul")
        if _has_lang(langs, "ja"):
            pkgs.append("fcitx5-mozc")
        if _has_lang(langs, "zh"):
            pkgs.append("fcitx5-chinese-addons")
        return pkgs
    if engine == "ibus":
        pkgs = ["ibus"]
        if _has_lang(langs, "ko"):
            pkgs.append("ibus-hangul")
        if _has_lang(langs, "ja"):
            pkgs.append("ibus-mozc")
        return pkgs
    return []


def bootstrap_packages(cfg: "InstallConfig", firmware_uefi: bool = True) -> List[str]:
    """Everything ``pacstrap`` installs, de-duplicated, first occurrence wins."""
    seen = set()
    out: List[str] = []
    for pkg in base_packages(cfg, firmware_uefi) + desktop_packages(cfg) + font_packages(cfg) + input_method_packages(cfg):
        if pkg not in seen:
            seen.add(pkg)
            out.append(pkg)
    return out


def pacstrap(ops: "SystemOps", target_root: str, packages: Sequence[str]) -> None:
    logger.info("Installing %d packages into %s", len(packages), target_root)
    ops.run(["pacstrap", "-K", target_root, *packages])


_INSTALL_SCRIPT_HEAD = f"""#!/bin/bash
# Blunux package installation script (generated by the installer)
# Run this after first boot to install the selected packages.

BASE_URL="{SCRIPT_BASE_URL}"

if ! command -v yay &> /dev/null; then
    echo "Installing yay AUR helper"
    sudo pacman -S --needed --noconfirm base-devel git
    cd /tmp
    rm -rf yay-bin
    git clone https://aur.archlinux.org/yay-bin.git
    cd yay-bin
    makepkg -si --noconfirm
    cd ..
    rm -rf yay-bin
fi

FAILED_PACKAGES=()

install_package() {{
    local pkg="$1"
    local script="/tmp/blunux-install-$pkg.sh"
    echo "== Installing: $pkg"
    if curl -fsSL "$BASE_URL/$pkg.sh" -o "$script"; then
        chmod +x "$script"
        if bash "$script"; then
            echo "$pkg installed successfully"
        else
            echo "WARNING: $pkg installation failed"
            FAILED_PACKAGES+=("$pkg")
        fi
        rm -f "$script"
    else
        echo "WARNING: Failed to download $pkg.sh"
        FAILED_PACKAGES+=("$pkg")
    fi
}}

# Selected packages:
"""

_INSTALL_SCRIPT_TAIL = """
if [ ${#FAILED_PACKAGES[@]} -gt 0 ]; then
    echo "The following packages failed to install:"
    for pkg in "${FAILED_PACKAGES[@]}"; do
        echo "  - $pkg"
    done
    echo "Retry with: bash ~/install-packages.sh"
else
    echo "All packages installed successfully!"
fi
echo "Please log out and log back in for changes to take effect."
"""


def render_install_script(script_packages: Sequence[str]) -> str:
    body = "".join(f'install_package "{pkg}"\n' for pkg in script_packages)
    return _INSTALL_SCRIPT_HEAD + body + _INSTALL_SCRIPT_TAIL


BORE_SETUP_SCRIPT = """#!/bin/bash
# Linux-BORE kernel setup (generated by the installer)
# Run this after first boot to replace the bootstrap kernel.

set -e

if ! command -v yay &> /dev/null; then
    cd /tmp
    rm -rf yay-bin
    git clone https://aur.archlinux.org/yay-bin.git
    cd yay-bin
    makepkg -si --noconfirm
    cd ..
    rm -rf yay-bin
fi

yay -S --noconfirm --needed linux-cachyos linux-cachyos-headers

if [ -f /usr/local/bin/nmbl-update ]; then
    sudo /usr/local/bin/nmbl-update linux-cachyos
    echo "Register \\EFI\\Blunux\\vmlinuz-linux-cachyos with efibootmgr to boot it directly."
else
    sudo grub-mkconfig -o /boot/grub/grub.cfg
fi

echo "Reboot to use the linux-cachyos kernel."
"""
