"""
vm-installer - ISO to Docker base image tool

This package installs an operating system from an ISO into a qcow2
virtual machine image and publishes that image inside a Docker image.
"""

__version__ = "0.1.0"

from vminstaller.config import InstallConfig, load_config
from vminstaller.installer import Installer
from vminstaller.utils import check_dependencies, run_command

__all__ = [
    "__version__",
    "InstallConfig",
    "Installer",
    "check_dependencies",
    "load_config",
    "run_command",
]
