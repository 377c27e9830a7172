import os
import yaml
from dataclasses import dataclass, fields, replace
from typing import Optional
from dotenv import load_dotenv

from .models import (
    log, ConfigError, EXTRACT_TIMEOUT, MAX_RETRIES, RETRY_DELAY, IMG_RETRY_DELAY
)

DEFAULT_CONFIG_PATH = os.path.expanduser("~/.config/kindle_send/config.yaml")
ENV_PREFIX = "KINDLE_SEND_"

@dataclass(frozen=True)
class Config:
    """Settings loaded once per process and handed to the pipeline."""
    storage_path: str = ""
    staging_root: str = ""
    extract_timeout: float = EXTRACT_TIMEOUT
    max_retries: int = MAX_RETRIES
    retry_delay: float = RETRY_DELAY
    image_retry_delay: float = IMG_RETRY_DELAY
    language: str = "en"
    author: str = "kindle-send"

    def store_dir(self) -> str:
        if self.storage_path:
            return os.path.expanduser(self.storage_path)
        try:
            return os.getcwd()
        except OSError:
            log.error("Error getting current directory, trying fallback")
            return "./"

def _coerce(name: str, value):
    target = {f.name: f.type for f in fields(Config)}[name]
    try:
        if target is int: return int(value)
        if target is float: return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for '{name}': {value!r}")
    return "" if value is None else str(value)

def load_config(path: Optional[str] = None) -> Config:
    load_dotenv()
    config = Config()
    known = {f.name for f in fields(Config)}

    path = path or os.getenv(f"{ENV_PREFIX}CONFIG") or DEFAULT_CONFIG_PATH
    if os.path.exists(path):
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed config {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must be a mapping")
        unknown = set(data) - known
        if unknown:
            log.warning(f"Ignoring unknown config keys in {path}: {', '.join(sorted(unknown))}")
        config = replace(config, **{k: _coerce(k, v) for k, v in data.items() if k in known})
        log.info(f"Loaded config from {path}")

    overrides = {}
    for name in known:
        value = os.getenv(ENV_PREFIX + name.upper())
        if value is not None:
            overrides[name] = _coerce(name, value)
    if overrides:
        config = replace(config, **overrides)

    if config.max_retries < 1:
        raise ConfigError("max_retries must be at least 1")
    return config
