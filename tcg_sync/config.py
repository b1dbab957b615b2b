"""Configuration management with environment variable support and validation"""

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import aiohttp
from dotenv import load_dotenv

from .exceptions import ConfigError
from .models import SyncConfig
from .utils.logger import logger

PLACEHOLDER_API_KEY = "your_pokemon_tcg_api_key_here"
DEFAULT_DATABASE_URL = "sqlite:///pokemon_tcg.db"
DEFAULT_BASE_URL = "https://api.pokemontcg.io/v2"

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class Config:
    """Configuration manager with environment variable support and validation.

    Every sync tunable is resolved from, in order: the ``TCG_SYNC_<NAME>``
    environment variable, the ``sync`` section of the JSON config file, the
    ``SyncConfig`` default.

    Args:
        config_path: Path to the config.json file
        env_path: Path to the .env file (default: project_root/.env)

    Raises:
        ConfigError: If a sync setting is out of range
    """

    config_path: str = "config/config.json"
    env_path: Optional[Union[str, Path]] = None

    def __post_init__(self):
        self.project_root = Path(__file__).parent.parent
        self._setup_environment()

        self.data = self._load_config()
        self.sync = self._load_sync_config()

        self._validate_config()

    def _setup_environment(self) -> None:
        """Load environment variables from .env file if it exists"""
        env_path = Path(self.env_path) if self.env_path else self.project_root / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.info(f"✅ Loaded environment variables from {env_path}")

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from JSON file"""
        config_path = Path(self.config_path)
        if not config_path.is_absolute():
            config_path = self.project_root / config_path

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                return json.load(f) or {}
        except FileNotFoundError:
            logger.debug(f"config.json not found at {config_path}, using environment variables only")
            return {}
        except json.JSONDecodeError as e:
            logger.error(f"❌ Invalid JSON in config file: {e}")
            return {}

    def _load_sync_config(self) -> SyncConfig:
        """Build SyncConfig from environment variables, the JSON file and defaults"""
        section = self.data.get("sync", {})
        values = {}

        for f in fields(SyncConfig):
            raw = os.getenv(f"TCG_SYNC_{f.name.upper()}", section.get(f.name))
            if raw is None or raw == "":
                continue
            values[f.name] = _coerce(f.name, raw, getattr(SyncConfig, f.name, None), f.type)

        return SyncConfig(**values)

    def _validate_config(self) -> None:
        """Validate configuration and set required attributes"""
        sync = self.sync

        for name in (
            "sets_page_size",
            "cards_page_size",
            "price_batch_size",
            "max_page_errors",
            "url_batch_size",
        ):
            if getattr(sync, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(sync, name)}")
        if sync.max_retries < 0:
            raise ConfigError(f"max_retries cannot be negative, got {sync.max_retries}")
        if sync.max_concurrent_price_batches < 1:
            raise ConfigError("max_concurrent_price_batches must be at least 1")
        if sync.url_concurrent_batches < 1:
            raise ConfigError("url_concurrent_batches must be at least 1")
        if sync.rate_limit_policy not in ("fixed", "token_bucket", "sliding_window"):
            raise ConfigError(f"Unknown rate_limit_policy: {sync.rate_limit_policy}")

        self.database_url = (
            os.getenv("DATABASE_URL") or self.data.get("database_url") or DEFAULT_DATABASE_URL
        )
        self.base_url = (
            os.getenv("POKEMON_TCG_API_URL") or self.data.get("api_url") or DEFAULT_BASE_URL
        )

        self.pokemon_tcg_api_key = os.getenv("POKEMON_TCG_API_KEY") or self.data.get(
            "pokemon_tcg_api_key"
        )
        if self.pokemon_tcg_api_key == PLACEHOLDER_API_KEY:
            self.pokemon_tcg_api_key = None
            logger.warning("⚠️ Pokemon TCG API key is placeholder - requests will be throttled harder")
        elif not self.pokemon_tcg_api_key:
            logger.warning("⚠️ Pokemon TCG API key not found - requests will be throttled harder")

    def get(self, key: str, default: Any = None) -> Any:
        """Get raw configuration value"""
        return self.data.get(key, default)

    def get_http_timeout(self) -> aiohttp.ClientTimeout:
        """Timeout used for catalog requests"""
        return aiohttp.ClientTimeout(total=self.sync.request_timeout)

    def get_database_url(self) -> str:
        """Get the database URL"""
        return self.database_url


def _coerce(name: str, raw: Any, default: Any, annotation: Any) -> Any:
    """Convert an env/JSON value to the type of the SyncConfig field"""
    if isinstance(raw, str):
        raw = raw.strip()

    kind = type(default) if default is not None else None
    if kind is None:
        # Optional fields: skip_recent_hours is a float, the rest are ints
        kind = float if "float" in str(annotation) else int

    try:
        if kind is bool:
            return raw if isinstance(raw, bool) else str(raw).lower() in _TRUE_VALUES
        if kind is int:
            return int(raw)
        if kind is float:
            return float(raw)
        return str(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from e
