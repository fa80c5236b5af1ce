"""Tests for config/settings.py and config/directories.py."""

import json
from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest

from guest_agent.config.directories import DirectoriesProvider
from guest_agent.config.settings import (
    DEFAULT_ARP_ITERATIONS,
    DEFAULT_DISK_WAIT_TIMEOUT,
    PlatformOptions,
    load_options,
    options_from_dict,
)


class TestLoadOptions:
    """Tests for load_options()."""

    def test_missing_file_returns_defaults(self, tmp_path):
        """Test that a missing settings file yields default options."""
        assert load_options(tmp_path / "missing.json") == PlatformOptions()

    def test_invalid_json_returns_defaults(self, tmp_path):
        """Test that a corrupt settings file yields default options."""
        path = tmp_path / "agent.json"
        path.write_text("{not json")

        assert load_options(path) == PlatformOptions()

    def test_non_object_returns_defaults(self, tmp_path):
        """Test that a JSON array is ignored."""
        path = tmp_path / "agent.json"
        path.write_text("[1, 2]")

        assert load_options(path) == PlatformOptions()

    def test_reads_agent_camel_case_keys(self, tmp_path):
        """Test the director's CamelCase settings layout."""
        path = tmp_path / "agent.json"
        path.write_text(
            json.dumps(
                {
                    "Platform": {
                        "Linux": {
                            "DevicePathResolutionType": "virtio",
                            "BindMountPersistentDisk": True,
                        },
                        "Arp": {"Iterations": 5, "IterationDelay": 1.5},
                    }
                }
            )
        )

        options = load_options(path)

        assert options.linux.device_path_resolution_type == "virtio"
        assert options.linux.bind_mount_persistent_disk is True
        assert options.arp.iterations == 5
        assert options.arp.iteration_delay == 1.5

    def test_non_numeric_option_returns_defaults(self, tmp_path):
        """Test that an unparseable interval falls back to default options."""
        path = tmp_path / "agent.json"
        path.write_text(json.dumps({"Platform": {"Arp": {"IterationDelay": "soon"}}}))

        assert load_options(path) == PlatformOptions()

    def test_non_boolean_flag_returns_defaults(self, tmp_path):
        """Test that a string where a flag belongs falls back to defaults."""
        path = tmp_path / "agent.json"
        path.write_text(json.dumps({"Platform": {"Linux": {"BindMountPersistentDisk": "yes"}}}))

        assert load_options(path) == PlatformOptions()


class TestOptionsFromDict:
    """Tests for options_from_dict()."""

    def test_defaults(self):
        """Test the documented defaults."""
        options = options_from_dict({})

        assert options.linux.device_path_resolution_type == ""
        assert options.linux.bind_mount_persistent_disk is False
        assert options.linux.disk_wait_timeout == DEFAULT_DISK_WAIT_TIMEOUT
        assert options.arp.iterations == DEFAULT_ARP_ITERATIONS
        assert options.stats_collection_interval == 10.0

    def test_top_level_snake_case(self):
        """Test settings without a Platform section."""
        options = options_from_dict(
            {"linux": {"device_path_resolution_type": "scsi"}, "stats_collection_interval": 30}
        )

        assert options.linux.device_path_resolution_type == "scsi"
        assert options.stats_collection_interval == 30.0

    def test_unknown_keys_are_ignored(self):
        """Test that newer settings files still load."""
        options = options_from_dict({"Platform": {"Linux": {"Unknown": 1, "DiskWaitTimeout": 9}}})

        assert options.linux.disk_wait_timeout == 9

    def test_values_are_converted_to_option_types(self):
        """Test that numbers written as strings become ints and floats."""
        options = options_from_dict(
            {
                "Platform": {
                    "Linux": {"DiskWaitTimeout": "12", "EphemeralDiskGroup": "vcap"},
                    "Arp": {"Iterations": "20", "IterationDelay": 2},
                }
            }
        )

        assert options.arp.iterations == 20
        assert isinstance(options.arp.iterations, int)
        assert options.arp.iteration_delay == 2.0
        assert isinstance(options.arp.iteration_delay, float)
        assert options.linux.disk_wait_timeout == 12.0
        assert options.linux.ephemeral_disk_group == "vcap"

    def test_non_numeric_interval_is_value_error(self):
        """Test that a bad stats interval is reported, not passed through."""
        with pytest.raises(ValueError):
            options_from_dict({"stats_collection_interval": "often"})

    def test_non_boolean_flag_is_type_error(self):
        """Test that flags must be JSON booleans."""
        with pytest.raises(TypeError, match="bind_mount_persistent_disk"):
            options_from_dict({"Platform": {"Linux": {"BindMountPersistentDisk": "false"}}})

    def test_options_are_immutable(self):
        """Test that options cannot be changed after construction."""
        options = options_from_dict({})

        with pytest.raises(FrozenInstanceError):
            options.linux.device_path_resolution_type = "virtio"


class TestDirectoriesProvider:
    """Tests for DirectoriesProvider."""

    def test_layout(self):
        """Test the standard directory layout under the base dir."""
        dirs = DirectoriesProvider(base_dir=Path("/var/vcap"))

        assert dirs.data_dir == Path("/var/vcap/data")
        assert dirs.store_dir == Path("/var/vcap/store")
        assert dirs.settings_dir == Path("/var/vcap/bosh/settings")
        assert dirs.monit_dir == Path("/var/vcap/monit")

    def test_runtime_dirs(self):
        """Test sys/log and sys/run below a mount point."""
        dirs = DirectoriesProvider(base_dir=Path("/var/vcap"))

        assert dirs.runtime_dirs("/var/vcap/data") == [
            Path("/var/vcap/data/sys/log"),
            Path("/var/vcap/data/sys/run"),
        ]
