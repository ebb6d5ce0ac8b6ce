"""TOML config loader with environment variable overrides."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

_ENV_PREFIX = "BUNDLEBOT"


class ConfigError(Exception):
    """Raised when config loading or validation fails."""


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base, returning a new dict."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict[str, Any], prefix: str = _ENV_PREFIX) -> dict[str, Any]:
    """Apply environment variable overrides.

    Env var naming: BUNDLEBOT__section__key=value (double underscore separator).
    Example: BUNDLEBOT__trading__self_hosted=true
    """
    result = _deep_merge({}, config)
    env_prefix = f"{prefix}__"

    for env_key, env_value in os.environ.items():
        if not env_key.startswith(env_prefix):
            continue

        parts = env_key[len(env_prefix):].lower().split("__")
        target = result
        for part in parts[:-1]:
            if part not in target:
                target[part] = {}
            if isinstance(target[part], dict):
                target = target[part]
            else:
                break
        else:
            target[parts[-1]] = _coerce_value(env_value)

    return result

def _coerce_value(value: str) -> Any:
    """Coerce a string env var value to int, float, bool or str.

    Numbers are tried before booleans so "0" and "1" stay integers.
    """
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    lowered = value.lower()
    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False
    return value


# (dotted key, lower bound, bound is inclusive)
_RANGE_CHECKS: tuple[tuple[str, float, bool], ...] = (
    ("trading.default_slippage_bps", 0, True),
    ("trading.default_transaction_fee_sol", 0, True),
    ("trading.batch_size", 1, True),
    ("trading.max_transactions_per_bundle", 1, True),
    ("trading.batch_delay_seconds", 0, True),
    ("trading.single_delay_seconds", 0, True),
    ("trading.bundle_stagger_seconds", 0, True),
    ("trading.request_timeout_seconds", 0, False),
    ("stream.reconnect_delay_seconds", 0, True),
    ("stream.max_reconnect_attempts", 0, True),
    ("rate_limit.max_per_window", 1, True),
    ("rate_limit.window_seconds", 0, False),
    ("limit_orders.max_active_orders", 1, True),
    ("limit_orders.check_debounce_seconds", 0, True),
)

MAX_SLIPPAGE_BPS = 10_000


class ConfigLoader:
    """Load and merge TOML config files with env var overrides.

    Files are read from ``config_dir``: ``default.toml`` first, then
    ``{env}.toml`` if present, then ``BUNDLEBOT__section__key`` variables.
    """

    def __init__(
        self,
        config_dir: str | Path = "config",
        env: str | None = None,
    ) -> None:
        self._config_dir = Path(config_dir)
        self._env = env or os.environ.get("BUNDLEBOT_ENV", "development")
        self._config: dict[str, Any] = {}

    @property
    def env(self) -> str:
        return self._env

    def load(self) -> dict[str, Any]:
        default_path = self._config_dir / "default.toml"
        if not default_path.exists():
            msg = f"Default config not found: {default_path}"
            raise ConfigError(msg)

        merged = self._load_toml(default_path)
        env_path = self._config_dir / f"{self._env}.toml"
        if env_path.exists():
            merged = _deep_merge(merged, self._load_toml(env_path))
        self._config = _apply_env_overrides(merged)
        return self._config

    @property
    def config(self) -> dict[str, Any]:
        if not self._config:
            self.load()
        return self._config

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """Get a config value using dotted notation: 'trading.batch_size'."""
        current: Any = self.config
        for part in dotted_key.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    def validate_keys(self, required_keys: list[str]) -> None:
        """Raise ConfigError naming every key in ``required_keys`` that is missing or empty."""
        missing = [k for k in required_keys if self.get(k) in (None, "")]
        if missing:
            msg = f"Missing required config keys: {', '.join(missing)}"
            raise ConfigError(msg)

    def validate_ranges(self) -> None:
        """Check the values that bound execution pacing and submission rate.

        Raises:
            ConfigError: Listing every out-of-range value.
        """
        errors: list[str] = []
        for key, bound, inclusive in _RANGE_CHECKS:
            value = self.get(key)
            if value is None:
                continue
            ok = value >= bound if inclusive else value > bound
            if not ok:
                op = ">=" if inclusive else ">"
                errors.append(f"{key} must be {op} {bound}, got {value}")

        slippage = self.get("trading.default_slippage_bps")
        if slippage is not None and slippage > MAX_SLIPPAGE_BPS:
            errors.append(f"trading.default_slippage_bps must be <= {MAX_SLIPPAGE_BPS}, got {slippage}")

        if errors:
            msg = "Config validation failed:\n  " + "\n  ".join(errors)
            raise ConfigError(msg)

    @staticmethod
    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return tomllib.load(f)
