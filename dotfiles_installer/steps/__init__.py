from .step_10_validate_system import ValidateSystemStep
from .step_20_create_directories import CreateDirectoriesStep
from .step_30_link_dotfiles import LinkDotfilesStep
from .step_40_install_tools import InstallToolsStep
from .step_50_post_install import PostInstallStep

__all__ = [
    "ValidateSystemStep",
    "CreateDirectoriesStep",
    "LinkDotfilesStep",
    "InstallToolsStep",
    "PostInstallStep",
]
