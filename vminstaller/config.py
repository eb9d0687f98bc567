"""
Configuration management for vm-installer.

Builds the immutable install configuration from command line options and
loads optional flag defaults from a YAML file.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from vminstaller.exceptions import ConfigError

CONFIG_ENV_VAR = "VM_INSTALLER_CONFIG"
CONFIG_FILENAME = "config.yaml"

DEFAULT_SIZE = "50G"

# Keys under `defaults:` that may pre-fill command line flags
DEFAULT_KEYS = ("size", "kvm", "compress")


@dataclass(frozen=True)
class InstallConfig:
    """Parameters for a single install run."""

    iso_path: str
    image: str
    size: str = DEFAULT_SIZE
    kvm: bool = False
    compress: bool = False

    def __post_init__(self):
        if not self.iso_path:
            raise ConfigError("an iso path is required")
        if not self.image:
            raise ConfigError("an image name is required")

    @classmethod
    def from_options(
        cls,
        iso: str | None,
        size: str | None,
        image: str | None,
        kvm: bool = False,
        compress: bool = False
    ) -> "InstallConfig":
        """
        Build a configuration from parsed command line options.

        Args:
            iso: Path to the operating system ISO
            size: Size of the virtual machine image (e.g. "50G")
            image: Name of the Docker image to build and push
            kvm: Enable KVM acceleration
            compress: Compress the image after installation

        Raises:
            ConfigError: If the ISO path or image name is empty
        """
        return cls(
            iso_path=iso or "",
            image=image or "",
            size=size or DEFAULT_SIZE,
            kvm=bool(kvm),
            compress=bool(compress),
        )


def get_config_path() -> Path:
    """Return the YAML config path, honouring VM_INSTALLER_CONFIG."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.cwd() / CONFIG_FILENAME


def load_config(path: Path | None = None) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        path: File to read, defaults to get_config_path()

    Returns:
        Dictionary containing configuration, or empty dict if file doesn't exist

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping
    """
    config_file = path if path is not None else get_config_path()
    if not config_file.exists():
        return {}

    with open(config_file) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"{config_file}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file}: expected a mapping at top level")
    return data


def load_defaults(config: dict[str, Any]) -> dict[str, Any]:
    """
    Pick the flag defaults out of a loaded configuration.

    Keys are the names of the matching command line options.
    """
    defaults = config.get("defaults") or {}
    if not isinstance(defaults, dict):
        raise ConfigError("'defaults' must be a mapping")
    return {key: defaults[key] for key in DEFAULT_KEYS if key in defaults}
