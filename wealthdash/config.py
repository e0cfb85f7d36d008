"""
Settings for the dashboard.

Defaults can be overridden from a YAML file and then from WEALTHDASH_*
environment variables (e.g. WEALTHDASH_HISTORY_LIMIT=60,
WEALTHDASH_DEFAULT_WATCHLIST=AAPL,MSFT).
"""
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional

import yaml

ENV_PREFIX = "WEALTHDASH_"


@dataclass(frozen=True)
class Settings:
    seed_path: str = "data/seed.json"
    default_watchlist: tuple[str, ...] = ("AAPL", "MSFT", "NVDA", "AMZN", "TSLA")
    history_limit: int = 30
    recent_limit: int = 5
    queue_maxsize: int = 256
    reconnect_initial_delay: float = 0.5
    reconnect_max_delay: float = 30.0
    log_level: str = "INFO"


def _coerce(name: str, value: Any) -> Any:
    if name == "default_watchlist":
        if isinstance(value, str):
            value = value.split(",")
        return tuple(s.strip().upper() for s in value if str(s).strip())
    if name in ("history_limit", "recent_limit", "queue_maxsize"):
        return int(value)
    if name in ("reconnect_initial_delay", "reconnect_max_delay"):
        return float(value)
    return str(value)


def apply_overrides(settings: Settings, values: Mapping[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
    return replace(settings, **{k: _coerce(k, v) for k, v in values.items()})


def load_settings(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    settings = Settings()

    if path:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Settings file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            settings = apply_overrides(settings, yaml.safe_load(f) or {})

    env = os.environ if environ is None else environ
    known = {f.name for f in fields(Settings)}
    from_env = {}
    for key, value in env.items():
        if key.startswith(ENV_PREFIX):
            name = key[len(ENV_PREFIX):].lower()
            if name in known:
                from_env[name] = value
    return apply_overrides(settings, from_env)
