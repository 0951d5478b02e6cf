"""Signing key lifecycle.

The installation key lives in an INI file under the settings home directory.
It is generated once on first use and never rotated; losing the file makes
every previously signed log unverifiable.
"""

import configparser
import logging
import os
import secrets
from pathlib import Path
from typing import Optional

from cron_claude.settings import CONFIG_SECTION, CronSettings

logger = logging.getLogger(__name__)

SECRET_KEY_OPTION = "secret_key"
KEY_BYTES = 32


class SecretKeyManager:
    """Loads the HMAC signing key, generating and persisting it if absent."""

    def __init__(self, settings: CronSettings):
        self.config_file: Path = settings.config_file
        self._cached: Optional[bytes] = None

    def _read_config(self) -> configparser.ConfigParser:
        config = configparser.ConfigParser()
        if self.config_file.is_file():
            config.read(self.config_file, encoding="utf-8")
        if CONFIG_SECTION not in config:
            config[CONFIG_SECTION] = {}
        return config

    def _write_config(self, config: configparser.ConfigParser) -> None:
        self.config_file.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        tmp_path = self.config_file.with_suffix(".cfg.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            config.write(f)
        os.replace(tmp_path, self.config_file)
        try:
            os.chmod(self.config_file, 0o600)
        except OSError:
            # Windows ignores most mode bits
            pass

    def get_key(self) -> bytes:
        """Return the hex-encoded key as bytes, creating it on first call."""
        if self._cached is not None:
            return self._cached

        config = self._read_config()
        value = config[CONFIG_SECTION].get(SECRET_KEY_OPTION, "").strip()
        if not value:
            value = secrets.token_hex(KEY_BYTES)
            config[CONFIG_SECTION][SECRET_KEY_OPTION] = value
            self._write_config(config)
            logger.info(f"Generated new secret key for log signing in {self.config_file}")

        self._cached = value.encode("ascii")
        return self._cached
