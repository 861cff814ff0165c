"""
Runtime Configuration for Procura.

Provides a singleton RuntimeConfig class. Every field defaults from an
environment variable. Model parameters, the one-time code lifetime and the
disconnect policy are read on each use, so ``update()`` applies to the next
turn. Everything else (store backend and TTL, endpoints, credentials) is
read once at startup.

Usage:
    from config import runtime_config
    ttl = runtime_config.pending_ttl_seconds
    runtime_config.update(model_chat="gpt-4o", temperature=0.3)
"""

import os
import re
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional
from threading import Lock

logger = logging.getLogger(__name__)


def _first_env(*keys: str, default: str) -> str:
    """Return the first non-empty environment value from keys, else default."""
    for key in keys:
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return default


def _env_bool(key: str, default: str = "false") -> bool:
    return os.environ.get(key, default).strip().lower() in ("1", "true", "yes")


def _env_optional(key: str) -> Optional[str]:
    value = os.environ.get(key, "").strip()
    return value or None


@dataclass
class RuntimeConfig:
    """Runtime-adjustable configuration."""

    # Language model provider (any OpenAI-compatible endpoint)
    openai_api_key: str = field(default_factory=lambda: _first_env("OPENAI_API_KEY", "GITHUB_TOKEN", default=""))
    openai_base_url: Optional[str] = field(default_factory=lambda: _env_optional("OPENAI_BASE_URL"))
    model_chat: str = field(default_factory=lambda: _first_env("OPENAI_MODEL", "LLM_CHAT_MODEL", default="gpt-4o-mini"))
    temperature: float = field(default_factory=lambda: float(os.environ.get("LLM_TEMPERATURE", "0.7")))
    max_output_tokens: int = field(default_factory=lambda: int(os.environ.get("LLM_MAX_OUTPUT_TOKENS", "1024")))
    llm_timeout: float = field(default_factory=lambda: float(os.environ.get("LLM_TIMEOUT", "60")))

    # Pending message store
    pending_backend: str = field(default_factory=lambda: os.environ.get("PENDING_BACKEND", "memory").strip().lower())
    pending_ttl_seconds: int = field(default_factory=lambda: int(os.environ.get("PENDING_TTL_SECONDS", "300")))
    redis_url: str = field(default_factory=lambda: os.environ.get("REDIS_URL", "redis://localhost:6379/0"))

    # Conversation input and streaming
    max_message_length: int = field(default_factory=lambda: int(os.environ.get("MAX_MESSAGE_LENGTH", "4000")))
    cancel_turn_on_disconnect: bool = field(default_factory=lambda: _env_bool("CANCEL_TURN_ON_DISCONNECT"))

    # One-time codes
    otp_ttl_minutes: int = field(default_factory=lambda: int(os.environ.get("OTP_TTL_MINUTES", "5")))

    # Email (Courier)
    courier_api_key: str = field(default_factory=lambda: os.environ.get("COURIER_API_KEY", ""))
    courier_template_otp: str = field(default_factory=lambda: os.environ.get("COURIER_TEMPLATE_OTP", ""))
    courier_base_url: str = field(default_factory=lambda: os.environ.get("COURIER_BASE_URL", "https://api.courier.com"))

    # Product catalog (Suconel)
    catalog_base_url: str = field(default_factory=lambda: _first_env("SUCONEL_BASE_URL", "CATALOG_BASE_URL", default=""))
    catalog_auth_token: str = field(default_factory=lambda: _first_env("SUCONEL_AUTH_TOKEN", "CATALOG_AUTH_TOKEN", default=""))
    catalog_timeout: float = field(default_factory=lambda: float(os.environ.get("CATALOG_TIMEOUT", "15")))
    cop_to_usd_rate: float = field(default_factory=lambda: float(os.environ.get("COP_TO_USD_RATE", "4300")))

    # Knowledge base and seed data
    knowledge_dir: str = field(default_factory=lambda: os.environ.get("KNOWLEDGE_DIR", "data/knowledge"))
    seed_users_path: str = field(default_factory=lambda: os.environ.get("SEED_USERS_PATH", ""))

    # HTTP surface
    frontend_url: str = field(default_factory=lambda: os.environ.get("FRONTEND_URL", "http://localhost:3000"))

    # Internal state
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)
    _update_count: int = field(default=0, repr=False)

    # Validation ranges for numeric config values
    _VALIDATION_RANGES: Dict[str, tuple] = field(default_factory=lambda: {
        "temperature": (0.0, 2.0),
        "max_output_tokens": (16, 32768),
        "llm_timeout": (1.0, 600.0),
        "pending_ttl_seconds": (1, 3600),
        "max_message_length": (1, 100000),
        "otp_ttl_minutes": (1, 60),
        "catalog_timeout": (1.0, 120.0),
        "cop_to_usd_rate": (1.0, 100000.0),
    })

    def update(self, **kwargs) -> Dict[str, Any]:
        """
        Update configuration values at runtime.

        Args:
            **kwargs: Key-value pairs to update (e.g., pending_ttl_seconds=120)

        Returns:
            Dict with 'updated' (changed keys) and 'ignored' (unknown keys)
        """
        updated = []
        ignored = []

        with self._lock:
            for key, value in kwargs.items():
                if key.startswith("_"):
                    ignored.append(key)
                    continue

                if not hasattr(self, key):
                    ignored.append(key)
                    logger.warning(f"Config ignored unknown key: {key}")
                    continue

                if key == "pending_backend" and value not in ("memory", "redis"):
                    ignored.append(key)
                    logger.warning(f"Config rejected invalid backend: {key}={value!r} (must be 'memory' or 'redis')")
                    continue

                # Model names: alphanumeric, colons, dots, slashes, dashes
                if key == "model_chat" and (not isinstance(value, str) or not re.match(r"^[a-zA-Z0-9._:/-]+$", value)):
                    ignored.append(key)
                    logger.warning(f"Config rejected invalid model name: {key}={value!r}")
                    continue

                if key in self._VALIDATION_RANGES:
                    lo, hi = self._VALIDATION_RANGES[key]
                    if not (lo <= value <= hi):
                        ignored.append(key)
                        logger.warning(f"Config rejected {key}={value} (must be {lo}-{hi})")
                        continue

                old_value = getattr(self, key)
                setattr(self, key, value)
                updated.append(key)
                if "key" in key or "token" in key:
                    logger.info(f"Config updated: {key}")
                else:
                    logger.info(f"Config updated: {key} = {value} (was {old_value})")

            self._update_count += 1

        return {"updated": updated, "ignored": ignored, "update_count": self._update_count}

    def get_llm_params(self) -> Dict[str, Any]:
        """Get LLM parameters for OpenAI API calls."""
        return {
            "temperature": self.temperature,
            "max_tokens": self.max_output_tokens,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Export current config as dict (excludes internal fields and secrets)."""
        from dataclasses import fields as dataclass_fields

        secret = {"openai_api_key", "courier_api_key", "catalog_auth_token"}
        result = {}
        for field_info in dataclass_fields(self):
            if field_info.name.startswith("_"):
                continue
            value = getattr(self, field_info.name)
            result[field_info.name] = ("***" if value else "") if field_info.name in secret else value
        return result


# Singleton instance
runtime_config = RuntimeConfig()
