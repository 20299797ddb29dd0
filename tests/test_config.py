"""
Configuration loading and validation tests.

Author: Lorenzo Albanese (alblor)
"""

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from image_decrypt.config import (
    DEFAULT_CACHE_BATCH_SIZE,
    ConfigError,
    Settings,
    load_settings,
    resolve_concurrency,
    resolve_cpu_num,
)
from tests.helpers import TEST_IV, TEST_KEY, make_settings, write_config


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "input").mkdir()
    return tmp_path


def base_values(workspace: Path):
    return {
        "input_dir": str(workspace / "input"),
        "output_dir": str(workspace / "output"),
        "key": TEST_KEY,
        "iv": TEST_IV,
    }


class TestDerivedDefaults:

    @pytest.mark.parametrize("detected,expected", [(8, 4), (3, 1), (2, 1), (1, 1)])
    def test_cpu_num_defaults_to_half_of_detected(self, detected, expected):
        assert resolve_cpu_num(0, detected) == expected

    def test_negative_cpu_num_means_default(self):
        assert resolve_cpu_num(-1, 16) == 8

    def test_explicit_cpu_num(self):
        assert resolve_cpu_num(6, 2) == 6

    def test_concurrency_defaults_to_cpu_num_plus_one(self):
        assert resolve_concurrency(0, 4) == 5

    def test_explicit_concurrency(self):
        assert resolve_concurrency(3, 4) == 3

    def test_settings_resolve_once(self, workspace):
        with patch("image_decrypt.config.os.cpu_count", return_value=8):
            settings = Settings(base_values(workspace))
        assert settings.DETECTED_CPUS == 8
        assert settings.CPU_NUM == 4
        assert settings.CONCURRENCY == 5
        assert settings.WORKERS == 5

    def test_cpu_count_unknown(self, workspace):
        with patch("image_decrypt.config.os.cpu_count", return_value=None):
            settings = Settings(base_values(workspace))
        assert settings.CPU_NUM == 1
        assert settings.CONCURRENCY == 2

    def test_workers_independent_of_concurrency(self, workspace):
        settings = Settings({**base_values(workspace), "coroutine": 3, "workers": 6})
        assert settings.CONCURRENCY == 3
        assert settings.WORKERS == 6


class TestSettings:

    def test_defaults(self, workspace):
        settings = Settings(base_values(workspace), base_dir=workspace)
        assert settings.CACHE_FILE == os.path.abspath(workspace / "processed_files.txt")
        assert settings.CACHE_BATCH_SIZE == DEFAULT_CACHE_BATCH_SIZE
        assert settings.CACHE_SYNC is False
        assert settings.EXTENSION == ".webp"
        assert settings.CIPHERTEXT_ENCODING == "base64"
        assert settings.INFO_LOG is None
        assert settings.ERROR_LOG is None

    def test_relative_paths_use_base_dir(self, workspace):
        values = {**base_values(workspace), "input_dir": "input", "cache_file": "state/cache.txt"}
        settings = Settings(values, base_dir=workspace)
        assert settings.INPUT_DIR == os.path.abspath(workspace / "input")
        assert settings.CACHE_FILE == os.path.abspath(workspace / "state" / "cache.txt")

    def test_missing_required_option(self, workspace):
        values = base_values(workspace)
        del values["output_dir"]
        with pytest.raises(ConfigError, match="output_dir"):
            Settings(values)

    def test_missing_input_directory(self, workspace):
        values = {**base_values(workspace), "input_dir": str(workspace / "nope")}
        with pytest.raises(ConfigError, match="Input directory"):
            Settings(values)

    def test_output_must_differ_from_input(self, workspace):
        values = {**base_values(workspace), "output_dir": str(workspace / "input")}
        with pytest.raises(ConfigError):
            Settings(values)

    def test_output_inside_input_rejected(self, workspace):
        values = {**base_values(workspace), "output_dir": str(workspace / "input" / "zz_out")}
        with pytest.raises(ConfigError, match="inside"):
            Settings(values)

    def test_output_beside_input_with_shared_prefix(self, workspace):
        values = {**base_values(workspace), "output_dir": str(workspace / "input-decrypted")}
        assert Settings(values).OUTPUT_DIR == str(workspace / "input-decrypted")

    def test_bad_key_length(self, workspace):
        with pytest.raises(ConfigError, match="key"):
            Settings({**base_values(workspace), "key": "short"})

    def test_key_and_iv_from_environment(self, workspace, monkeypatch):
        values = base_values(workspace)
        del values["key"], values["iv"]
        monkeypatch.setenv("IMAGE_DECRYPT_KEY", TEST_KEY)
        monkeypatch.setenv("IMAGE_DECRYPT_IV", TEST_IV)
        settings = Settings(values)
        assert settings.KEY == TEST_KEY
        assert settings.IV == TEST_IV

    def test_missing_key(self, workspace, monkeypatch):
        monkeypatch.delenv("IMAGE_DECRYPT_KEY", raising=False)
        values = base_values(workspace)
        del values["key"]
        with pytest.raises(ConfigError, match="IMAGE_DECRYPT_KEY"):
            Settings(values)

    @pytest.mark.parametrize("name,value", [
        ("coroutine", "4"),
        ("cpu_num", 1.5),
        ("coroutine", True),
        ("cache_sync", "yes"),
        ("input_dir", 12),
    ])
    def test_wrong_types(self, workspace, name, value):
        with pytest.raises(ConfigError, match=name):
            Settings({**base_values(workspace), name: value})

    def test_batch_size_must_be_positive(self, workspace):
        with pytest.raises(ConfigError, match="cache_batch_size"):
            Settings({**base_values(workspace), "cache_batch_size": 0})

    def test_unknown_encoding(self, workspace):
        with pytest.raises(ConfigError, match="ciphertext_encoding"):
            Settings({**base_values(workspace), "ciphertext_encoding": "hex"})

    def test_extension_gets_leading_dot(self, workspace):
        assert Settings({**base_values(workspace), "extension": "webp"}).EXTENSION == ".webp"

    def test_not_an_object(self):
        with pytest.raises(ConfigError):
            Settings(["input_dir"])

    def test_log_level(self, workspace, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        assert Settings(base_values(workspace)).get_log_level() == logging.WARNING
        settings = Settings({**base_values(workspace), "log_level": "debug"})
        assert settings.get_log_level() == logging.DEBUG

    def test_unknown_log_level_falls_back_to_info(self, workspace):
        settings = Settings({**base_values(workspace), "log_level": "chatty"})
        assert settings.get_log_level() == logging.INFO

    def test_describe_hides_key_material(self, tmp_path):
        description = make_settings(tmp_path).describe()
        assert TEST_KEY not in description.values()
        assert TEST_IV not in description.values()
        assert description["coroutine"] == 2


class TestLoadSettings:

    def test_load_from_file(self, workspace):
        config_path = write_config(workspace / "config.json", {
            "input_dir": "input",
            "output_dir": "output",
            "key": TEST_KEY,
            "iv": TEST_IV,
            "cpu_num": 2,
            "coroutine": 4,
            "cache_file": "cache.txt",
        })
        settings = load_settings(config_path)
        assert settings.INPUT_DIR == os.path.abspath(workspace / "input")
        assert settings.CACHE_FILE == os.path.abspath(workspace / "cache.txt")
        assert settings.CPU_NUM == 2
        assert settings.CONCURRENCY == 4

    def test_overrides_replace_file_values(self, workspace):
        config_path = write_config(workspace / "config.json", base_values(workspace))
        settings = load_settings(config_path, {"coroutine": 7, "workers": None})
        assert settings.CONCURRENCY == 7

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "config.json")

    def test_invalid_json(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="Cannot read"):
            load_settings(config_path)
