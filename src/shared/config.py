"""ShopStream configuration.

Settings are read through protean's domain config: the nearest ``domain.toml``
(looked up from ``root_path``, ``DOMAIN_ROOT_PATH`` or this package, plus up
to two parent directories), with the table named after ``PROTEAN_ENV``
(e.g. ``[test]``) merged on top of the defaults.

The store lives under ``[databases.default]``; ShopStream's own tunables live
under ``[custom]`` and are validated into pydantic models.
"""

import os
import tomllib
from decimal import Decimal
from pathlib import Path

import structlog
from protean.domain import Domain
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from shared.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

DEFAULT_ENV = "development"


class DatabaseSettings(BaseModel):
    url: str = "sqlite:///shopstream.db"
    lock_timeout: float = Field(default=5.0, gt=0)
    echo: bool = False


class PricingSettings(BaseModel):
    tax_rate: Decimal = Field(default=Decimal("0.10"), ge=0)
    shipping_base: Decimal = Field(default=Decimal("5.00"), ge=0)
    shipping_per_item: Decimal = Field(default=Decimal("0.50"), ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)


class CheckoutSettings(BaseModel):
    timeout: float = Field(default=10.0, gt=0)
    order_number_attempts: int = Field(default=5, ge=1)


class NotificationSettings(BaseModel):
    workers: int = Field(default=2, ge=1)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_output: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}


class Settings(BaseModel):
    env: str = DEFAULT_ENV
    database: DatabaseSettings = DatabaseSettings()
    pricing: PricingSettings = PricingSettings()
    checkout: CheckoutSettings = CheckoutSettings()
    notifications: NotificationSettings = NotificationSettings()
    logging: LoggingSettings = LoggingSettings()


def _merge(base: dict, overlay: dict) -> dict:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _database_section(databases) -> dict:
    """Translate protean's ``databases.default`` entry into ``DatabaseSettings`` input."""
    default = databases.get("default", {})
    section = {key: default[key] for key in ("lock_timeout", "echo") if key in default}
    # protean's built-in default is the in-memory provider, which has no URI
    if "database_uri" in default:
        section["url"] = default["database_uri"]
    return section


def load_domain(root_path=None) -> Domain:
    """Build the ShopStream domain with its configuration loaded."""
    if root_path is not None:
        root_path = Path(root_path)
        if not root_path.is_dir():
            raise ConfigurationError({"config": [f"Config directory not found: {root_path}"]})
        root_path = str(root_path)

    try:
        return Domain(name="shopstream", root_path=root_path)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError({"config": [f"Invalid TOML: {exc}"]}) from exc


def load_settings(root_path=None, overrides=None) -> Settings:
    """Load settings for the environment named by ``PROTEAN_ENV``.

    Args:
        root_path: Directory to look for ``domain.toml`` in. Defaults to
            ``DOMAIN_ROOT_PATH`` or the project root; built-in defaults apply
            when no config file is found.
        overrides: Dict merged last (used by tests and the app factory).
    """
    domain = load_domain(root_path)
    config = domain.config
    env = os.environ.get("PROTEAN_ENV") or config.get("env") or DEFAULT_ENV

    data = dict(config.get("custom") or {})
    data["database"] = _merge(_database_section(config.get("databases", {})), data.get("database", {}))
    if overrides:
        data = _merge(data, overrides)
    data["env"] = env

    try:
        settings = Settings.model_validate(data)
    except PydanticValidationError as exc:
        messages = {}
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"])
            messages.setdefault(field, []).append(error["msg"])
        raise ConfigurationError(messages) from exc

    logger.debug("Settings loaded", env=env, root_path=domain.root_path)
    return settings
