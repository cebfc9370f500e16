from .step_10_prepare_disk import PrepareDiskStep
from .step_20_install_base import InstallBaseStep
from .step_30_write_fstab import WriteFstabStep
from .step_40_configure_system import ConfigureSystemStep
from .step_50_install_packages import InstallPackagesStep
from .step_60_configure_locale import ConfigureLocaleStep
from .step_70_configure_users import ConfigureUsersStep
from .step_80_install_bootloader import InstallBootloaderStep
from .step_90_finalize import FinalizeStep

__all__ = [
    "PrepareDiskStep",
    "InstallBaseStep",
    "WriteFstabStep",
    "ConfigureSystemStep",
    "InstallPackagesStep",
    "ConfigureLocaleStep",
    "ConfigureUsersStep",
    "InstallBootloaderStep",
    "FinalizeStep",
]
