"""Configuration for the batch image decryptor, loaded once from a JSON file."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .encryption import CIPHERTEXT_ENCODINGS, ENCODING_BASE64, validate_key_material

DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_CACHE_FILE = "processed_files.txt"
DEFAULT_CACHE_BATCH_SIZE = 1000
DEFAULT_EXTENSION = ".webp"

KEY_ENV_VAR = "IMAGE_DECRYPT_KEY"
IV_ENV_VAR = "IMAGE_DECRYPT_IV"


class ConfigError(Exception):
    """Raised when the configuration is missing, unreadable or invalid."""
    pass


def resolve_cpu_num(requested: int, detected: Optional[int] = None) -> int:
    """Use the requested CPU count, or half of the detected CPUs when unset."""
    if requested > 0:
        return requested
    if detected is None:
        detected = os.cpu_count() or 1
    return max(1, detected // 2)


def resolve_concurrency(requested: int, cpu_num: int) -> int:
    """Use the requested admission limit, or one more than the CPU count."""
    if requested > 0:
        return requested
    return cpu_num + 1


class Settings:
    def __init__(self, values: Dict[str, Any], base_dir: Optional[Path] = None):
        """
        Build settings from raw configuration values.

        Args:
            values: Decoded JSON configuration
            base_dir: Directory relative paths are resolved against (default: cwd)

        Raises:
            ConfigError: If any option is missing or invalid
        """
        if not isinstance(values, dict):
            raise ConfigError("Configuration must be a JSON object")
        self._values = values
        self._base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self._initialize_settings()

    def _initialize_settings(self):
        """Initialize all configuration settings."""
        # Paths
        self.INPUT_DIR: str = self._path("input_dir", required=True)
        self.OUTPUT_DIR: str = self._path("output_dir", required=True)
        self.CACHE_FILE: str = self._path("cache_file", default=DEFAULT_CACHE_FILE)

        if not Path(self.INPUT_DIR).is_dir():
            raise ConfigError(f"Input directory does not exist or is not a directory: {self.INPUT_DIR}")
        if Path(self.OUTPUT_DIR).is_relative_to(self.INPUT_DIR):
            # Outputs inside the input tree would be rediscovered as inputs
            raise ConfigError("Output directory must not be the input directory or inside it")

        # Key material (config file first, environment for automation)
        self.KEY: str = self._secret("key", KEY_ENV_VAR)
        self.IV: str = self._secret("iv", IV_ENV_VAR)
        try:
            validate_key_material(self.KEY, self.IV)
        except ValueError as e:
            raise ConfigError(str(e)) from e

        self.CIPHERTEXT_ENCODING: str = self._str("ciphertext_encoding", ENCODING_BASE64)
        if self.CIPHERTEXT_ENCODING not in CIPHERTEXT_ENCODINGS:
            raise ConfigError(
                f"ciphertext_encoding must be one of {', '.join(CIPHERTEXT_ENCODINGS)}, "
                f"got {self.CIPHERTEXT_ENCODING!r}"
            )

        # Concurrency, resolved once here
        self.DETECTED_CPUS: int = os.cpu_count() or 1
        self.CPU_NUM: int = resolve_cpu_num(self._int("cpu_num", 0), self.DETECTED_CPUS)
        self.CONCURRENCY: int = resolve_concurrency(self._int("coroutine", 0), self.CPU_NUM)
        workers = self._int("workers", 0)
        self.WORKERS: int = workers if workers > 0 else self.CONCURRENCY

        # Ledger
        self.CACHE_BATCH_SIZE: int = self._int("cache_batch_size", DEFAULT_CACHE_BATCH_SIZE)
        if self.CACHE_BATCH_SIZE < 1:
            raise ConfigError("cache_batch_size must be at least 1")
        self.CACHE_SYNC: bool = self._bool("cache_sync", False)

        self.EXTENSION: str = self._str("extension", DEFAULT_EXTENSION)
        if not self.EXTENSION.startswith("."):
            self.EXTENSION = "." + self.EXTENSION

        # Logging
        self.INFO_LOG: Optional[str] = self._path("info_log")
        self.ERROR_LOG: Optional[str] = self._path("error_log")
        self.LOG_LEVEL: str = self._str("log_level", os.getenv("LOG_LEVEL", "INFO")).upper()

    def _str(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self._values.get(name)
        if value is None or value == "":
            return default
        if not isinstance(value, str):
            raise ConfigError(f"{name} must be a string")
        return value

    def _path(self, name: str, required: bool = False,
              default: Optional[str] = None) -> Optional[str]:
        value = self._str(name, default)
        if value is None:
            if required:
                raise ConfigError(f"Missing required option: {name}")
            return None
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = self._base_dir / path
        return os.path.abspath(path)

    def _int(self, name: str, default: int) -> int:
        value = self._values.get(name)
        if value is None:
            return default
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{name} must be an integer")
        return value

    def _bool(self, name: str, default: bool) -> bool:
        value = self._values.get(name)
        if value is None:
            return default
        if not isinstance(value, bool):
            raise ConfigError(f"{name} must be true or false")
        return value

    def _secret(self, name: str, env_var: str) -> str:
        value = self._str(name) or os.environ.get(env_var)
        if not value:
            raise ConfigError(f"Missing required option: {name} (or set {env_var})")
        return value

    def get_log_level(self) -> int:
        """Convert LOG_LEVEL string to logging level integer."""
        levels = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
            "CRITICAL": logging.CRITICAL,
        }
        return levels.get(self.LOG_LEVEL, logging.INFO)

    def describe(self) -> Dict[str, Any]:
        """Non-sensitive view of the settings for logging."""
        return {
            "input_dir": self.INPUT_DIR,
            "output_dir": self.OUTPUT_DIR,
            "cache_file": self.CACHE_FILE,
            "cpu_num": self.CPU_NUM,
            "coroutine": self.CONCURRENCY,
            "workers": self.WORKERS,
            "cache_batch_size": self.CACHE_BATCH_SIZE,
            "cache_sync": self.CACHE_SYNC,
            "extension": self.EXTENSION,
            "ciphertext_encoding": self.CIPHERTEXT_ENCODING,
        }


def load_settings(config_path: Union[str, Path] = DEFAULT_CONFIG_FILE,
                  overrides: Optional[Dict[str, Any]] = None) -> Settings:
    """
    Read a JSON configuration file and build Settings from it.

    Relative paths inside the file are resolved against the file's directory.
    Non-None ``overrides`` replace values from the file.

    Raises:
        ConfigError: If the file cannot be read or parsed, or values are invalid
    """
    path = Path(config_path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            values = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}")
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e

    if overrides:
        if not isinstance(values, dict):
            raise ConfigError("Configuration must be a JSON object")
        values.update({k: v for k, v in overrides.items() if v is not None})

    return Settings(values, base_dir=path.resolve().parent)
