"""
TEMPFOCUS Configuration

Pydantic models for every configurable part of the controller, loaded from
YAML with environment variable overrides.

Lookup order:
    1. Explicit path passed to load_config()
    2. ./tempfocus.yaml
    3. ~/.tempfocus/config.yaml
    4. Built-in defaults

Environment overrides use TEMPFOCUS_<SECTION>_<FIELD>, e.g.
TEMPFOCUS_GUIDER_HOST=phd2.local or TEMPFOCUS_COMPENSATION_SLOPE=-2.5.
Top-level fields use TEMPFOCUS_<FIELD> (TEMPFOCUS_LOG_LEVEL=DEBUG).
"""

import math
import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tempfocus.exceptions import ConfigurationError

ENV_PREFIX = "TEMPFOCUS"

__all__ = [
    "CompensationConfig",
    "FocuserConfig",
    "GuiderConfig",
    "MonitorConfig",
    "TempFocusConfig",
    "get_config_paths",
    "load_config",
    "save_compensation",
]


class CompensationConfig(BaseModel):
    """User settings of the linear temperature compensation model.

    These four fields are the only persisted controller settings. Runtime
    state (baseline temperature, remainders, cycle count) never lives here.
    """

    model_config = ConfigDict(validate_assignment=True)

    temperature_delta: float = 0.1     # Minimum |dT| in °C to arm a cycle
    absolute: bool = False             # False = relative step mode
    slope: float = 0.0                 # Steps per °C
    intercept: float = 0.0             # Absolute mode only

    @field_validator("temperature_delta")
    @classmethod
    def _round_delta(cls, value: float) -> float:
        return round(value, 1)

    @field_validator("slope", "intercept")
    @classmethod
    def _require_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("model coefficients must be finite numbers")
        return value

    @property
    def intercept_enabled(self) -> bool:
        """Intercept only applies to absolute positioning."""
        return self.absolute


class FocuserConfig(BaseModel):
    """Focuser hardware settings."""

    model_config = ConfigDict(validate_assignment=True)

    device: str = "ZWO EAF"
    max_position: int = Field(default=50000, gt=0)
    initial_position: int = Field(default=25000, ge=0)
    steps_per_second: float = Field(default=100.0, gt=0)


class GuiderConfig(BaseModel):
    """PHD2 connection and settle parameters."""

    model_config = ConfigDict(validate_assignment=True)

    host: str = "localhost"
    port: int = Field(default=4400, ge=1, le=65535)
    settle_pixels: float = Field(default=1.0, gt=0)
    settle_time: float = Field(default=10.0, ge=0)
    settle_timeout: float = Field(default=60.0, gt=0)


class MonitorConfig(BaseModel):
    """Polling loop settings."""

    model_config = ConfigDict(validate_assignment=True)

    enabled: bool = True
    poll_interval: float = Field(default=60.0, ge=1.0, le=3600.0)


class TempFocusConfig(BaseModel):
    """Master configuration for the controller."""

    model_config = ConfigDict(validate_assignment=True)

    compensation: CompensationConfig = Field(default_factory=CompensationConfig)
    focuser: FocuserConfig = Field(default_factory=FocuserConfig)
    guider: GuiderConfig = Field(default_factory=GuiderConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_file: Optional[str] = None


# =============================================================================
# Loading
# =============================================================================


def get_config_paths() -> list[Path]:
    """Return config file locations in lookup order."""
    return [
        Path("./tempfocus.yaml"),
        Path.home() / ".tempfocus" / "config.yaml",
    ]


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML: {e}", config_file=str(path)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            "Invalid YAML: top level must be a mapping", config_file=str(path)
        )
    return data


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Merge TEMPFOCUS_* environment variables into raw config data.

    Values stay strings; pydantic coerces them to the field types.
    """
    for name, field in TempFocusConfig.model_fields.items():
        annotation = field.annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            section = data.get(name)
            if not isinstance(section, dict):
                section = {}
            for sub_name in annotation.model_fields:
                env_key = f"{ENV_PREFIX}_{name.upper()}_{sub_name.upper()}"
                if env_key in os.environ:
                    section[sub_name] = os.environ[env_key]
            if section:
                data[name] = section
        else:
            env_key = f"{ENV_PREFIX}_{name.upper()}"
            if env_key in os.environ:
                data[name] = os.environ[env_key]
    return data


def load_config(path: Optional[str | Path] = None) -> TempFocusConfig:
    """Load configuration from YAML and the environment.

    Args:
        path: Explicit config file. When omitted the standard locations are
              searched and defaults are used if none exists.

    Returns:
        Validated TempFocusConfig

    Raises:
        ConfigurationError: File missing, unreadable YAML, or invalid values
    """
    data: dict[str, Any] = {}
    source: Optional[Path] = None

    if path is not None:
        source = Path(path)
        if not source.exists():
            raise ConfigurationError(
                f"Configuration file not found: {source}", config_file=str(source)
            )
    else:
        source = next((p for p in get_config_paths() if p.exists()), None)

    if source is not None:
        data = _read_yaml(source)

    data = _apply_env_overrides(data)

    try:
        return TempFocusConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed: {e}",
            config_file=str(source) if source else None,
        ) from e


def save_compensation(config: CompensationConfig, path: str | Path) -> None:
    """Persist the compensation settings into a YAML config file.

    Other sections already present in the file are preserved.

    Args:
        config: Compensation settings to store
        path: Target YAML file
    """
    target = Path(path)
    data: dict[str, Any] = _read_yaml(target) if target.exists() else {}
    data["compensation"] = config.model_dump()

    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)
