"""
Configuration management using Pydantic models loaded from YAML.
"""

import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.clock import is_iso_date, parse_time_of_day, resolve_timezone

DEFAULT_TIMEZONE = "America/Sao_Paulo"
DEFAULT_FALLBACK_BUFFER_MINUTES = 15
BUFFER_ENV_VAR = "SALONSLOTS_DEFAULT_BUFFER_MIN"


def _minutes_of_day(value: str) -> int:
    hour, minute = parse_time_of_day(value)
    return hour * 60 + minute


class ScheduleConfig(BaseModel):
    """Opening hours and slot template settings."""
    opening_time: str = "09:00"
    closing_time: str = "18:00"
    slot_step_minutes: int = 30
    horizon_days: int = 60
    day_overrides: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("opening_time", "closing_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        """Normalize wall-clock times to HH:MM."""
        parts = parse_time_of_day(value)
        if parts is None:
            raise ValueError(f"Time must be HH:MM, got {value!r}")
        return f"{parts[0]:02d}:{parts[1]:02d}"

    @field_validator("slot_step_minutes", "horizon_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure step and horizon are positive."""
        if value <= 0:
            raise ValueError("slot_step_minutes and horizon_days must be greater than zero")
        return value

    @field_validator("day_overrides")
    @classmethod
    def validate_overrides(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        """Ensure override keys are ISO dates and slots are HH:MM."""
        normalized: Dict[str, List[str]] = {}
        for iso_date, slots in value.items():
            if not is_iso_date(iso_date):
                raise ValueError(f"day_overrides keys must be YYYY-MM-DD, got {iso_date!r}")
            parsed = [parse_time_of_day(slot) for slot in slots]
            invalid = [slot for slot, parts in zip(slots, parsed) if parts is None]
            if invalid:
                raise ValueError(f"Invalid slot times for {iso_date}: {invalid}")
            normalized[iso_date] = [f"{h:02d}:{m:02d}" for h, m in parsed]
        return normalized

    @model_validator(mode="after")
    def validate_hours_order(self) -> "ScheduleConfig":
        """Ensure the salon opens before it closes."""
        if _minutes_of_day(self.closing_time) <= _minutes_of_day(self.opening_time):
            raise ValueError("closing_time must be later than opening_time")
        return self


class StoreConfig(BaseModel):
    """Connection settings for the hosted appointment store."""
    url: str = ""
    api_key: str = ""
    table: str = "appointments"
    timeout_seconds: int = 30

    def is_configured(self) -> bool:
        return bool(self.url and self.api_key)


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = DEFAULT_TIMEZONE
    fallback_buffer_minutes: int = DEFAULT_FALLBACK_BUFFER_MINUTES
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    mock_data_file: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA identifier."""
        if resolve_timezone(value) is None:
            raise ValueError(f"Unknown timezone: {value!r}")
        return value

    @field_validator("fallback_buffer_minutes")
    @classmethod
    def validate_buffer(cls, value: int) -> int:
        """Buffers cannot be negative."""
        if value < 0:
            raise ValueError("fallback_buffer_minutes must not be negative")
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file
            environ: Environment used for overrides; defaults to os.environ

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data).with_env_overrides(environ)

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """
        Apply the fallback buffer from the environment.

        Invalid or negative values are ignored.
        """
        env = os.environ if environ is None else environ
        raw = env.get(BUFFER_ENV_VAR)
        if raw is None or not raw.strip():
            return self

        try:
            minutes = int(float(raw))
        except ValueError:
            return self

        if minutes < 0:
            return self

        return self.model_copy(update={"fallback_buffer_minutes": minutes})

    def resolve_mock_data_file(self, config_path: Optional[Path] = None) -> Optional[Path]:
        """Resolve ``mock_data_file`` relative to the config file's directory."""
        if not self.mock_data_file:
            return None

        path = Path(self.mock_data_file)
        if not path.is_absolute() and config_path is not None:
            path = config_path.parent / path
        return path


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """
    Load an explicit config file, or the default one when it exists.

    Without any config file the built-in defaults are used.
    """
    if config_path is not None:
        return AppConfig.load_from_yaml(config_path)

    default_path = get_default_config_path()
    if default_path.exists():
        return AppConfig.load_from_yaml(default_path)

    return AppConfig().with_env_overrides()
