"""
Configuration management for the storefront client.

Settings come from three layers, later layers winning:
dataclass defaults, the YAML config file, environment variables.
"""
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import yaml

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()


def _project_root() -> Path:
    """Return project root (parent of storefront package)."""
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"

STORAGE_BACKENDS = ("file", "redis", "memory")


@dataclass
class StorefrontConfig:
    """Configuration for the cart store and the admin realtime channel."""

    # Backend
    base_url: str = "http://localhost:5000"
    request_timeout: float = 30.0        # Seconds per REST call

    # Anonymous cart persistence
    cart_storage_key: str = "cart"
    storage_backend: str = "file"        # "file" | "redis" | "memory"
    storage_dir: str = "~/.storefront"
    redis_url: str = "redis://localhost:6379/0"

    # Admin realtime channel
    chat_path: str = "/api/chat"
    admin_id: str = "notification"
    admin_name: str = "AdminNotifications"
    reconnect_delay: float = 5.0         # Fixed delay, no backoff
    poll_interval: float = 60.0          # Support request / contact message poll

    def websocket_url(self) -> str:
        """Admin socket URL derived from base_url (http -> ws, https -> wss)."""
        parts = urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        query = urlencode({"type": "admin", "adminId": self.admin_id, "name": self.admin_name})
        return urlunsplit((scheme, parts.netloc, self.chat_path, query, ""))

    def resolved_storage_dir(self) -> Path:
        return Path(self.storage_dir).expanduser()

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "StorefrontConfig":
        """Load configuration from YAML file, then apply environment overrides."""
        path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        data: Dict[str, Any] = {}
        if path.exists():
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}

        backend_config = data.get('backend', {})
        cart_config = data.get('cart', {})
        realtime_config = data.get('realtime', {})

        config = cls(
            base_url=backend_config.get('base_url', cls.base_url),
            request_timeout=float(backend_config.get('request_timeout', cls.request_timeout)),
            cart_storage_key=cart_config.get('storage_key', cls.cart_storage_key),
            storage_backend=cart_config.get('storage_backend', cls.storage_backend),
            storage_dir=cart_config.get('storage_dir', cls.storage_dir),
            redis_url=cart_config.get('redis_url', cls.redis_url),
            chat_path=realtime_config.get('chat_path', cls.chat_path),
            admin_id=str(realtime_config.get('admin_id', cls.admin_id)),
            admin_name=realtime_config.get('admin_name', cls.admin_name),
            reconnect_delay=float(realtime_config.get('reconnect_delay', cls.reconnect_delay)),
            poll_interval=float(realtime_config.get('poll_interval', cls.poll_interval)),
        )
        return config.with_env_overrides()

    def with_env_overrides(self) -> "StorefrontConfig":
        """Return a copy with any STOREFRONT_* environment variables applied."""
        overrides: Dict[str, Any] = {}
        for attr, env_name, cast in _ENV_OVERRIDES:
            value = os.getenv(env_name)
            if value is not None and value.strip() != "":
                overrides[attr] = cast(value.strip())

        config = replace(self, **overrides)
        if config.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unknown storage backend {config.storage_backend!r}; expected one of {STORAGE_BACKENDS}"
            )
        return config


_ENV_OVERRIDES = (
    ("base_url", "STOREFRONT_BASE_URL", str),
    ("request_timeout", "STOREFRONT_REQUEST_TIMEOUT", float),
    ("cart_storage_key", "STOREFRONT_CART_KEY", str),
    ("storage_backend", "STOREFRONT_STORAGE", str),
    ("storage_dir", "STOREFRONT_STORAGE_DIR", str),
    ("redis_url", "REDIS_URL", str),
    ("admin_id", "STOREFRONT_ADMIN_ID", str),
    ("admin_name", "STOREFRONT_ADMIN_NAME", str),
    ("reconnect_delay", "STOREFRONT_RECONNECT_DELAY", float),
    ("poll_interval", "STOREFRONT_POLL_INTERVAL", float),
)


# Global config instance
_config: Optional[StorefrontConfig] = None


def get_config() -> StorefrontConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = StorefrontConfig.from_yaml()
    return _config


def set_config(config: StorefrontConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
