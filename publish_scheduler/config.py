"""
Centralized configuration loader for the publishing scheduler.

Loads settings from ``config/settings.yaml`` and environment variables,
providing sensible defaults when the configuration file is absent.

Provides:
    - SchedulerSettings: Scheduler settings loaded from YAML + env vars
    - get_settings(): Singleton accessor for SchedulerSettings
    - reset_settings(): Drop the cached instance (tests, reloads)
    - validate_env(): Startup validation of required environment variables
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from publish_scheduler.exceptions import ConfigurationError
from publish_scheduler.scheduling.dispatcher import default_tier_policies
from publish_scheduler.scheduling.models import OverdueTier, TierPolicy

# ---------------------------------------------------------------------------
# Load .env file (no-op if file does not exist)
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Project root directory (parent of publish_scheduler/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Per-tier keys that may be tuned from YAML. ``publish`` and ``annotate``
# define what a tier *is* and stay fixed.
TUNABLE_TIER_KEYS = ("concurrency", "delay_ms")


# ===========================================================================
# SCHEDULER SETTINGS
# ===========================================================================


@dataclass
class SchedulerSettings:
    """
    Scheduler settings.

    Loaded from ``config/settings.yaml`` when available, falling back to
    defaults. Environment variables override YAML values for
    deployment-specific configuration.
    """

    # Tick cadence
    check_interval_seconds: float = 60

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    activity_buffer_size: int = 1000

    # Dotted path ``package.module:factory`` of the host publisher
    publisher_path: Optional[str] = None

    # Job store fetch retries
    fetch_retry_attempts: int = 2
    fetch_retry_base_delay: float = 1.0

    # Dispatch policy per overdue tier
    tiers: Dict[OverdueTier, TierPolicy] = field(default_factory=default_tier_policies)

    def __post_init__(self) -> None:
        if self.check_interval_seconds <= 0:
            raise ConfigurationError(
                f"check_interval_seconds must be positive, got {self.check_interval_seconds}"
            )
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid log_level '{self.log_level}'. Valid levels: {list(VALID_LOG_LEVELS)}"
            )
        self.log_level = self.log_level.upper()
        if self.activity_buffer_size < 1:
            raise ConfigurationError(
                f"activity_buffer_size must be >= 1, got {self.activity_buffer_size}"
            )
        if self.fetch_retry_attempts < 1:
            raise ConfigurationError(
                f"fetch_retry_attempts must be >= 1, got {self.fetch_retry_attempts}"
            )

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "SchedulerSettings":
        """
        Load settings from a YAML file.

        If the file does not exist, returns an instance with all defaults.
        Environment variables override YAML values for specific keys.

        Args:
            path: Path to the YAML file. Defaults to
                ``<PROJECT_ROOT>/config/settings.yaml``.

        Returns:
            Populated SchedulerSettings instance.

        Raises:
            ConfigurationError: If the YAML file exists but cannot be parsed,
                or if any value (YAML or env) is invalid.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Failed to parse settings YAML at {path}: {exc}"
                ) from exc

        scheduler_data = data.get("scheduler", {}) or {}
        kwargs: Dict[str, Any] = {
            key: scheduler_data[key]
            for key in (
                "check_interval_seconds",
                "log_level",
                "log_dir",
                "activity_buffer_size",
                "publisher_path",
                "fetch_retry_attempts",
                "fetch_retry_base_delay",
            )
            if key in scheduler_data
        }

        # -----------------------------------------------------------------
        # Environment variable overrides
        # -----------------------------------------------------------------
        env_overrides: Dict[str, Tuple[str, Callable[[str], Any]]] = {
            "SCHEDULER_CHECK_INTERVAL_SECONDS": ("check_interval_seconds", float),
            "SCHEDULER_LOG_LEVEL": ("log_level", str),
            "SCHEDULER_LOG_DIR": ("log_dir", str),
            "SCHEDULER_PUBLISHER": ("publisher_path", str),
        }
        for env_key, (attr_name, cast_fn) in env_overrides.items():
            env_val = os.environ.get(env_key)
            if env_val is not None:
                try:
                    kwargs[attr_name] = cast_fn(env_val)
                except (ValueError, TypeError) as exc:
                    raise ConfigurationError(
                        f"Invalid value for env var {env_key}='{env_val}': {exc}"
                    ) from exc

        kwargs["tiers"] = build_tier_policies(data.get("tiers", {}) or {})

        try:
            return cls(**kwargs)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid scheduler settings: {exc}") from exc


def build_tier_policies(overrides: Dict[str, Any]) -> Dict[OverdueTier, TierPolicy]:
    """
    Merge YAML tier overrides into the default dispatch policies.

    Args:
        overrides: Mapping of tier value (e.g. ``"on_time"``) to a dict with
            ``concurrency`` and/or ``delay_ms``.

    Returns:
        Complete tier -> policy mapping.

    Raises:
        ConfigurationError: Unknown tier, unknown key, or out-of-range value.
    """
    policies = default_tier_policies()
    for tier_name, values in overrides.items():
        try:
            tier = OverdueTier(tier_name)
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown tier '{tier_name}'. Valid tiers: {[t.value for t in OverdueTier]}"
            ) from exc

        values = values or {}
        unknown = set(values) - set(TUNABLE_TIER_KEYS)
        if unknown:
            raise ConfigurationError(
                f"Unsupported keys for tier '{tier_name}': {sorted(unknown)}. "
                f"Tunable keys: {list(TUNABLE_TIER_KEYS)}"
            )

        concurrency = int(values.get("concurrency", policies[tier].concurrency))
        delay_ms = int(values.get("delay_ms", policies[tier].delay_ms))
        if concurrency < 1:
            raise ConfigurationError(
                f"Tier '{tier_name}' concurrency must be >= 1, got {concurrency}"
            )
        if delay_ms < 0:
            raise ConfigurationError(
                f"Tier '{tier_name}' delay_ms must be >= 0, got {delay_ms}"
            )
        policies[tier] = dataclasses.replace(
            policies[tier], concurrency=concurrency, delay_ms=delay_ms
        )
    return policies


# ===========================================================================
# SETTINGS SINGLETON
# ===========================================================================

_settings_instance: Optional[SchedulerSettings] = None


def get_settings() -> SchedulerSettings:
    """
    Get the global SchedulerSettings singleton.

    On first call, loads from ``config/settings.yaml`` (or defaults).
    Subsequent calls return the cached instance.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = SchedulerSettings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """Reset the cached settings singleton."""
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# ENVIRONMENT VARIABLE VALIDATION
# ===========================================================================

# Required by the Supabase adapters
REQUIRED_ENV_VARS: List[str] = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_KEY",
]

OPTIONAL_ENV_VARS: List[str] = [
    "SCHEDULER_CHECK_INTERVAL_SECONDS",
    "SCHEDULER_LOG_LEVEL",
    "SCHEDULER_LOG_DIR",
    "SCHEDULER_PUBLISHER",
]


def validate_env(strict: bool = True) -> Dict[str, bool]:
    """
    Validate that required environment variables are set.

    Args:
        strict: If ``True``, raise ``ConfigurationError`` when any required
            variable is missing. If ``False``, return the status dict
            without raising.

    Returns:
        Dict mapping variable name to presence status (``True`` if set).

    Raises:
        ConfigurationError: If ``strict=True`` and required vars are missing.
    """
    status: Dict[str, bool] = {}
    missing: List[str] = []

    for var in REQUIRED_ENV_VARS:
        present = bool(os.environ.get(var))
        status[var] = present
        if not present:
            missing.append(var)

    for var in OPTIONAL_ENV_VARS:
        status[var] = bool(os.environ.get(var))

    if strict and missing:
        raise ConfigurationError(
            f"Missing required environment variables: {missing}. "
            f"Copy .env.example to .env and fill in the values."
        )

    return status


# ===========================================================================
# PUBLIC API
# ===========================================================================

__all__ = [
    "SchedulerSettings",
    "build_tier_policies",
    "get_settings",
    "reset_settings",
    "validate_env",
    "REQUIRED_ENV_VARS",
    "OPTIONAL_ENV_VARS",
    "PROJECT_ROOT",
]
