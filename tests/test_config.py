"""Test configuration loading."""

# pylint: disable=C0103

import dataclasses
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from vminstaller.config import (
    CONFIG_ENV_VAR,
    InstallConfig,
    get_config_path,
    load_config,
    load_defaults,
)
from vminstaller.exceptions import ConfigError


class InstallConfigTest(unittest.TestCase):
    """Test InstallConfig construction and validation."""

    def test_defaults(self):
        """Size, kvm and compress fall back to their defaults."""

        cfg = InstallConfig.from_options(
            iso="/tmp/os.iso", size=None, image="registry.example/base:1"
        )

        self.assertEqual(cfg.iso_path, "/tmp/os.iso")
        self.assertEqual(cfg.image, "registry.example/base:1")
        self.assertEqual(cfg.size, "50G")
        self.assertFalse(cfg.kvm)
        self.assertFalse(cfg.compress)

    def test_missing_iso(self):
        """An empty iso path is rejected."""

        with self.assertRaises(ConfigError):
            InstallConfig.from_options(iso="", size="20G", image="base:1")

    def test_missing_image(self):
        """A missing image name is rejected."""

        with self.assertRaises(ConfigError):
            InstallConfig.from_options(iso="/tmp/os.iso", size="20G", image=None)

    def test_config_error_is_value_error(self):
        """ConfigError can be handled as a ValueError."""

        with self.assertRaises(ValueError):
            InstallConfig(iso_path="", image="")

    def test_immutable(self):
        """Fields cannot be reassigned after construction."""

        cfg = InstallConfig(iso_path="/tmp/os.iso", image="base:1")

        with self.assertRaises(dataclasses.FrozenInstanceError):
            cfg.size = "10G"  # type: ignore[misc]


class LoadConfigTest(unittest.TestCase):
    """Test reading config.yaml."""

    def setUp(self):
        """Scratch directory."""

        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.path = Path(self.tmpdir.name) / "config.yaml"

    def test_missing_file(self):
        """A missing file yields no configuration."""

        self.assertEqual(load_config(self.path), {})

    def test_empty_file(self):
        """An empty file yields no configuration."""

        self.path.write_text("")

        self.assertEqual(load_config(self.path), {})

    def test_load(self):
        """Values are read from YAML."""

        self.path.write_text("defaults:\n  size: 20G\n  kvm: true\n")

        self.assertEqual(
            load_config(self.path),
            {"defaults": {"size": "20G", "kvm": True}},
        )

    def test_not_a_mapping(self):
        """A top level list is rejected."""

        self.path.write_text("- size\n- kvm\n")

        with self.assertRaises(ConfigError):
            load_config(self.path)

    def test_invalid_yaml(self):
        """Broken YAML is reported as a ConfigError."""

        self.path.write_text("defaults: [size\n")

        with self.assertRaises(ConfigError):
            load_config(self.path)

    def test_env_override(self):
        """VM_INSTALLER_CONFIG points at another file."""

        with mock.patch.dict(os.environ, {CONFIG_ENV_VAR: str(self.path)}):
            self.assertEqual(get_config_path(), self.path)

    def test_default_path(self):
        """Without the env var config.yaml in the current directory is used."""

        env = {k: v for k, v in os.environ.items() if k != CONFIG_ENV_VAR}
        with mock.patch.dict(os.environ, env, clear=True):
            self.assertEqual(get_config_path(), Path.cwd() / "config.yaml")


class LoadDefaultsTest(unittest.TestCase):
    """Test picking flag defaults out of the configuration."""

    def test_known_keys_only(self):
        """Only size, kvm and compress are passed through."""

        defaults = load_defaults({
            "defaults": {
                "size": "20G",
                "compress": True,
                "image": "ignored:1",
            }
        })

        self.assertEqual(defaults, {"size": "20G", "compress": True})

    def test_no_defaults(self):
        """No defaults section means no overrides."""

        self.assertEqual(load_defaults({}), {})

    def test_bad_defaults(self):
        """A defaults section that is not a mapping is rejected."""

        with self.assertRaises(ConfigError):
            load_defaults({"defaults": ["size"]})
