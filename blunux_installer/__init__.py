"""Blunux installer.

Unattended installation of Blunux (Arch Linux + KDE Plasma) onto a target
disk:
- Firmware-aware partitioning (GPT/UEFI or MBR/BIOS), optional LUKS2 root
- pacstrap bootstrap of the base system and desktop
- Direct EFISTUB boot or GRUB
- Optional applications deferred to a post-first-boot script
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
