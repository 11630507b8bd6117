from __future__ import annotations

import logging
import logging.config
import os
from configparser import ConfigParser
from pathlib import Path

import yaml


class AppConfig:
    def __init__(self, config_path: Path | None = None) -> None:
        parser = ConfigParser()
        package_root = Path(__file__).resolve().parent.parent
        parser.read(config_path or package_root / "config.ini")
        if not parser.sections() and config_path is None:
            parser.read(Path("config.ini"))
        self._parser = parser
        self._logging_path = package_root / "logging.yaml"

    def n8n_settings(self) -> dict[str, object]:
        return {
            "base_url": self._get_str("n8n", "base_url", "", env="N8N_BASE_URL"),
            "basic_auth_active": self._get_bool("n8n", "basic_auth_active", False, env="N8N_BASIC_AUTH_ACTIVE"),
            "basic_auth_user": self._get_str("n8n", "basic_auth_user", "", env="N8N_BASIC_AUTH_USER"),
            "basic_auth_password": self._get_str("n8n", "basic_auth_password", "", env="N8N_BASIC_AUTH_PASSWORD"),
        }

    def dropbox_settings(self) -> dict[str, object]:
        return {
            "app_key": self._get_str("dropbox", "app_key", "", env="DROPBOX_APP_KEY"),
            "app_secret": self._get_str("dropbox", "app_secret", "", env="DROPBOX_APP_SECRET"),
            "refresh_token": self._get_str("dropbox", "refresh_token", "", env="DROPBOX_REFRESH_TOKEN"),
            "token_url": self._get_str("dropbox", "token_url", "https://api.dropbox.com/oauth2/token"),
            "api_url": self._get_str("dropbox", "api_url", "https://api.dropboxapi.com/2"),
            "token_ttl_seconds": self._get_float("dropbox", "token_ttl_seconds", 3.5 * 60 * 60),
            "attempts": self._get_int("dropbox", "attempts", 3),
            "attempt_delay_seconds": self._get_float("dropbox", "attempt_delay_seconds", 2.0),
        }

    def media_settings(self) -> dict[str, object]:
        return {
            "root": self._get_str("media", "root", "/app/media", env="MEDIA_LIBRARY_ROOT"),
            "video_extensions": self._get_csv(
                "media",
                "video_extensions",
                [".mp4", ".mov", ".m4v", ".avi", ".mkv", ".webm"],
            ),
        }

    def retry_settings(self) -> dict[str, object]:
        return {
            "source_unavailable_delay_seconds": self._get_float(
                "retry", "source_unavailable_delay_seconds", 30 * 60
            ),
        }

    def store_settings(self) -> dict[str, object]:
        return {"db_path": self._get_str("store", "db_path", "data/smartops.db", env="SMARTOPS_DB_PATH")}

    def http_settings(self) -> dict[str, object]:
        return {"timeout_seconds": self._get_float("http", "timeout_seconds", 30.0)}

    def configure_logging(self) -> None:
        raw = self._load_yaml(self._logging_path)
        if raw:
            try:
                logging.config.dictConfig(raw)
                return
            except (ValueError, TypeError, AttributeError, ImportError):
                pass
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    def _get_str(self, section: str, key: str, fallback: str, env: str | None = None) -> str:
        if env and os.environ.get(env, "").strip():
            return os.environ[env].strip()
        return self._parser.get(section, key, fallback=fallback)

    def _get_int(self, section: str, key: str, fallback: int) -> int:
        return self._parser.getint(section, key, fallback=fallback)

    def _get_float(self, section: str, key: str, fallback: float) -> float:
        return self._parser.getfloat(section, key, fallback=fallback)

    def _get_bool(self, section: str, key: str, fallback: bool, env: str | None = None) -> bool:
        if env and os.environ.get(env, "").strip():
            return os.environ[env].strip().lower() == "true"
        return self._parser.getboolean(section, key, fallback=fallback)

    def _get_csv(self, section: str, key: str, fallback: list[str]) -> list[str]:
        value = self._parser.get(section, key, fallback="")
        if not value:
            return list(fallback)
        return [part.strip() for part in value.split(",") if part.strip()]

    def _load_yaml(self, path: Path) -> dict[str, object]:
        if not path.exists():
            return {}
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError:
            return {}
        return raw if isinstance(raw, dict) else {}


app_config = AppConfig()
