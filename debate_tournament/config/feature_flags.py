"""
Feature Flags Configuration

Runtime switches for the standings engine, loaded from environment variables.
"""
import os
from typing import Optional


DRAW_POLICY_PERSIST = "persist"
DRAW_POLICY_REROLL = "reroll"


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: Optional[int] = None) -> Optional[int]:
    """Get an integer from environment variable, falling back on junk."""
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_str_env(key: str, default: str) -> str:
    return os.getenv(key, default).strip().lower() or default


class FeatureFlags:
    """
    Feature flags for the application.

    Tests flip these by assigning the class attribute directly.
    """

    # Keep the last computed trace per event for audit reads
    FEATURE_STANDINGS_TRACE_CACHE: bool = get_bool_env('FEATURE_STANDINGS_TRACE_CACHE', True)

    # "persist" stores the first random draw per tied set, "reroll" draws every time
    TIEBREAK_DRAW_POLICY: str = get_str_env('TIEBREAK_DRAW_POLICY', DRAW_POLICY_PERSIST)

    # Seed for the draw RNG; None means system entropy
    TIEBREAK_RANDOM_SEED: Optional[int] = get_int_env('TIEBREAK_RANDOM_SEED')

    @classmethod
    def is_enabled(cls, flag_name: str) -> bool:
        """Check if a feature flag is enabled by name."""
        return getattr(cls, flag_name, False) is True

    @classmethod
    def persist_draws(cls) -> bool:
        return cls.TIEBREAK_DRAW_POLICY != DRAW_POLICY_REROLL

    @classmethod
    def get_all_flags(cls) -> dict:
        """Get all feature flags as a dictionary."""
        return {
            key: value
            for key, value in cls.__dict__.items()
            if key.isupper() and isinstance(value, (bool, int, str, type(None)))
        }


# Singleton instance for easy importing
feature_flags = FeatureFlags()
