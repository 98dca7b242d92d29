"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (PAGESTATE__STORE__BACKEND=sqlite)
  3. pagestate.yaml         (searched in cwd, then the platform config dir)
  4. Hardcoded defaults

The config file is optional; all fields have sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("pagestate")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "state.db")


def _find_config_file() -> str | None:
    """Return the path of the first pagestate.yaml found, or None."""
    candidates = [
        Path("pagestate.yaml"),
        Path(platformdirs.user_config_dir("pagestate")) / "pagestate.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class _Section(BaseModel):
    # A typo in a nested key must fail loudly instead of falling back to a default.
    model_config = ConfigDict(extra="forbid")


class I18nSettings(_Section):
    # "xx-XX" is the locale used by apps that are not internationalized.
    locales: list[str] = ["xx-XX"]
    default_locale: str = "xx-XX"

    @model_validator(mode="after")
    def _default_is_known(self) -> I18nSettings:
        if not self.locales:
            raise ValueError("at least one locale must be configured")
        if len(set(self.locales)) != len(self.locales):
            raise ValueError("locales must be unique")
        if self.default_locale not in self.locales:
            raise ValueError(f"default_locale {self.default_locale!r} is not in locales")
        return self


class StoreSettings(_Section):
    backend: Literal["memory", "sqlite"] = "memory"
    db_path: str = _DEFAULT_DB_PATH


class GenerationSettings(_Section):
    # How long a request waits on another request's in-flight generation.
    # None waits until the generation finishes.
    wait_timeout_seconds: float | None = 30.0

    @field_validator("wait_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("wait_timeout_seconds must be > 0")
        return v


class BuildSettings(_Section):
    concurrency: int = 8

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("concurrency must be >= 1")
        return v


class LoggingSettings(_Section):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: PAGESTATE__BUILD__CONCURRENCY=4
        env_prefix="PAGESTATE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
        extra="forbid",
    )

    i18n: I18nSettings = I18nSettings()
    store: StoreSettings = StoreSettings()
    generation: GenerationSettings = GenerationSettings()
    build: BuildSettings = BuildSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
