"""
notion-v3 configuration.

Two layers:

  Settings  process-wide tunables read from the environment at import time
  Config    the on-disk JSON file holding the stored v3 session and
            per-user preferences

Config file structure:
  {
    "v3": {
      "token_v2": "...",
      "user_id": "...",
      "user_email": "user@example.com",
      "user_name": "Ada Lovelace",
      "space_id": "...",
      "space_name": "Acme"
    },
    "settings": {
      "ai": {"default_model": "oatmeal-cookie"}
    }
  }

Session resolution order:
  1. NOTION_TOKEN_V2 / NOTION_USER_ID / NOTION_SPACE_ID environment variables
  2. "v3" block of the config file
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from v3client.errors import ConfigError
from v3client.models.session import V3Session

logger = logging.getLogger(__name__)

APP_DIR_NAME = "notion-v3"


class Settings:
    """Client settings from environment variables."""

    # Transport
    BASE_URL: str = os.environ.get("NOTION_V3_BASE_URL", "https://www.notion.so/api/v3")
    TIMEOUT: float = float(os.environ.get("NOTION_V3_TIMEOUT", "30"))
    SLOW_TIMEOUT: float = float(os.environ.get("NOTION_V3_SLOW_TIMEOUT", "60"))  # queryCollection
    STREAM_TIMEOUT: float = float(os.environ.get("NOTION_V3_STREAM_TIMEOUT", "120"))  # runInferenceTranscript

    # Workspace reads
    CHILD_BATCH_SIZE: int = int(os.environ.get("NOTION_V3_CHILD_BATCH_SIZE", "5"))
    PAGE_CHUNK_LIMIT: int = 100
    MAX_BLOCKS: int = 1000

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "WARNING")


# Singleton instance
settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Install a basic root handler for applications embedding the client."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_DIR_NAME
    return Path.home() / ".config" / APP_DIR_NAME


class Config:
    """Config manager for the stored v3 session."""

    def __init__(self, config_dir: Path | None = None):
        self.config_dir = config_dir or default_config_dir()
        self.config_file = self.config_dir / "config.json"
        self._data: dict[str, Any] = {}
        self._load()

    def _load(self):
        """Load config from disk. An unreadable file is treated as empty."""
        if not self.config_file.exists():
            return
        try:
            with open(self.config_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable config file %s: %s", self.config_file, e)
            return
        self._data = data if isinstance(data, dict) else {}

    def _save(self):
        """Save config to disk with secure permissions."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2)
            f.write("\n")

        # Owner-only read/write: the file holds a session cookie
        self.config_file.chmod(0o600)

    @property
    def session(self) -> V3Session | None:
        """Stored session, or None when absent or malformed."""
        raw = self._data.get("v3")
        if not isinstance(raw, dict):
            return None
        try:
            return V3Session.model_validate(raw)
        except ValidationError:
            logger.warning("Stored v3 session in %s is incomplete", self.config_file)
            return None

    @session.setter
    def session(self, value: V3Session):
        self._data["v3"] = value.model_dump(mode="json", exclude_none=True)
        self._save()

    def clear_session(self):
        if "v3" in self._data:
            del self._data["v3"]
            self._save()

    @property
    def default_model(self) -> str | None:
        """Default AI model codename or display name."""
        prefs = self._data.get("settings")
        ai = prefs.get("ai") if isinstance(prefs, dict) else None
        return ai.get("default_model") if isinstance(ai, dict) else None

    @default_model.setter
    def default_model(self, value: str | None):
        if not isinstance(self._data.get("settings"), dict):
            self._data["settings"] = {}
        prefs = self._data["settings"]
        if not isinstance(prefs.get("ai"), dict):
            prefs["ai"] = {}
        ai = prefs["ai"]
        if value:
            ai["default_model"] = value
        else:
            ai.pop("default_model", None)
        self._save()

    def session_from_env(self) -> V3Session:
        """
        Resolve the active session.

        Environment credentials win over the stored session; any identity
        field they do not carry is filled from the file.

        Raises:
            ConfigError: if no token, user id or space id can be found
        """
        stored = self.session
        base = stored.model_dump() if stored else {}

        for field, env_var in (
            ("token_v2", "NOTION_TOKEN_V2"),
            ("user_id", "NOTION_USER_ID"),
            ("space_id", "NOTION_SPACE_ID"),
        ):
            value = os.environ.get(env_var)
            if value:
                base[field] = value

        missing = [f for f in ("token_v2", "user_id", "space_id") if not base.get(f)]
        if missing:
            raise ConfigError(
                f"No v3 session: missing {', '.join(missing)}. "
                "Set NOTION_TOKEN_V2, NOTION_USER_ID and NOTION_SPACE_ID, "
                f"or store a session in {self.config_file}."
            )
        return V3Session.model_validate(base)
