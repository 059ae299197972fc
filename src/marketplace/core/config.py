"""Settings for the marketplace runtime.

Sources, lowest precedence first:

1. field defaults below;
2. ``MARKETPLACE_*`` environment variables (``__`` separates nesting, e.g.
   ``MARKETPLACE_ORDER_NUMBERS__PREFIX``);
3. an optional TOML file;
4. explicit ``overrides``, merged key by key into the TOML sections.

Validation is pydantic's; any failure surfaces as ``ConfigError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .enums import EventStoreBackend, OrderNumberStrategy
from .errors import ConfigError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class OrderNumberConfig(BaseModel):
    prefix: str = Field("ORD", min_length=1, max_length=8)
    strategy: OrderNumberStrategy = OrderNumberStrategy.RANDOM
    sequence_start: int = Field(1, ge=0)
    random_seed: int | None = None  # only read by the random strategy

    @field_validator("prefix")
    @classmethod
    def _no_separator(cls, v: str) -> str:
        if "-" in v or not v.strip():
            raise ValueError("prefix must be non-blank and may not contain '-'")
        return v.strip()


class EventStoreConfig(BaseModel):
    backend: EventStoreBackend = EventStoreBackend.MEMORY
    path: Path = Path("data/events.jsonl")  # jsonl backend only


class ObservabilityConfig(BaseModel):
    log_level: LogLevel = "INFO"
    log_format: Literal["json", "console"] = "json"

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MARKETPLACE_", env_nested_delimiter="__")

    order_numbers: OrderNumberConfig = Field(default_factory=OrderNumberConfig)
    event_store: EventStoreConfig = Field(default_factory=EventStoreConfig)
    enforce_event_ownership: bool = True
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_toml(path: Path) -> dict[str, Any]:
    import tomli

    try:
        with open(path, "rb") as f:
            return tomli.load(f)
    except tomli.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Build ``Settings`` from an optional TOML file plus overrides.

    Raises:
        ConfigError: the file is missing or malformed, or a value fails
            validation.
    """
    data: dict[str, Any] = {}
    if config_path:
        path = Path(config_path)
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        data = _read_toml(path)

    if overrides:
        data = _merge(data, overrides)

    try:
        return Settings(**data)
    except PydanticValidationError as exc:
        raise ConfigError(str(exc)) from exc
