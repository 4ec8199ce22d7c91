"""Configuration management."""
import os
import yaml
from pathlib import Path

_config = None
_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"

REQUIRED_SECTIONS = ["api", "poller", "alerts", "portfolio", "market", "database"]
MIN_POLL_INTERVAL = 5

ENV_OVERRIDES = {
    "COINWATCH_DB_PATH": ("database", "path"),
    "COINWATCH_OWNER": ("database", "owner"),
    "COINWATCH_POLL_INTERVAL": ("poller", "interval"),
    "COINWATCH_LOG_LEVEL": ("logging", "level"),
    "COINWATCH_API_KEY": ("api", "coingecko", "api_key"),
}
NUMERIC_KEYS = {"interval"}


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides."""
    global _config

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path:
        if not Path(path).exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    for env_key, config_path in ENV_OVERRIDES.items():
        val = os.environ.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            if config_path[-1] in NUMERIC_KEYS:
                val = int(val)
            d[config_path[-1]] = val

    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    for section in REQUIRED_SECTIONS:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    if config["poller"]["interval"] < MIN_POLL_INTERVAL:
        raise ValueError(f"poller.interval must be >= {MIN_POLL_INTERVAL} seconds")
    if config["alerts"]["interval"] < MIN_POLL_INTERVAL:
        raise ValueError(f"alerts.interval must be >= {MIN_POLL_INTERVAL} seconds")
    if config["market"]["page_size"] < 1:
        raise ValueError("market.page_size must be >= 1")
