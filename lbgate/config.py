"""Application configuration: HTTP server, balancer, rate limiter and Redis."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

_UNIT_NANOS = {"ns": 1, "us": 10**3, "µs": 10**3, "μs": 10**3, "ms": 10**6,
               "s": 10**9, "m": 60 * 10**9, "h": 3600 * 10**9}
_UNITS = "ns|us|µs|μs|ms|s|m|h"
_PART = re.compile(rf"(\d+\.?\d*|\.\d+)({_UNITS})")
_DURATION = re.compile(rf"([+-]?)(0|(?:(?:\d+\.?\d*|\.\d+)(?:{_UNITS}))+)")


class ConfigError(ValueError):
    """Raised when the configuration file is missing or malformed."""


def parse_duration(value: Any) -> float:
    """Return a duration in seconds from "300ms"-style text or a bare number of seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = _DURATION.fullmatch(value) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"invalid duration {value!r}")
    nanos = sum(float(amount) * _UNIT_NANOS[unit] for amount, unit in _PART.findall(match.group(2)))
    return (-1 if match.group(1) == "-" else 1) * int(nanos) / 1e9


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (str, int, float)):
        return str(value)
    raise TypeError(f"expected a string, got {type(value).__name__}")


def _to_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, str):
        return int(value, 0)
    if isinstance(value, (int, float)):
        return int(value)
    raise TypeError(f"expected an integer, got {type(value).__name__}")


def _to_str_list(value: Any) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return value.split(",")
    if isinstance(value, (list, tuple)):
        return [_to_str(item) for item in value]
    raise TypeError(f"expected a list of strings, got {type(value).__name__}")


_DECODERS = {
    "str": _to_str,
    "int": _to_int,
    "float": lambda value: 0.0 if value is None else parse_duration(value),
    "list[str]": _to_str_list,
}


@dataclass
class HTTPConfig:
    """Listening port and timeouts (seconds) of the front HTTP server."""

    port: str = ""
    max_header_megabytes: int = 0
    read_timeout: float = 0.0
    write_timeout: float = 0.0


@dataclass
class BalancerConfig:
    """Backend addresses and the health-check interval in seconds."""

    backends: list[str] = field(default_factory=list)
    health_check_time: float = 0.0


@dataclass
class LimiterConfig:
    """Default token-bucket settings and the refill interval in seconds."""

    capacity: int = 0
    rate_per_sec: int = 0
    ttl: int = 0
    refill_time: float = 0.0


@dataclass
class RedisConfig:
    """Address of the Redis server that holds limiter state."""

    host: str = ""
    port: str = ""


@dataclass
class Config:
    """The whole configuration; ``directory`` is where it was loaded from."""

    http: HTTPConfig = field(default_factory=HTTPConfig)
    balancer: BalancerConfig = field(default_factory=BalancerConfig)
    limiter: LimiterConfig = field(default_factory=LimiterConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    directory: Path = field(default=Path("configs"), compare=False, repr=False)


def _normalise(raw: Mapping) -> dict[str, Any]:
    return {str(key).replace("_", "").replace("-", "").lower(): value for key, value in raw.items()}


def _decode_section(cls, raw: Any, section: str):
    if raw is None:
        return cls()
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{section}: expected a mapping, got {type(raw).__name__}")
    lookup = _normalise(raw)
    values = {}
    for spec in fields(cls):
        key = spec.name.replace("_", "")
        if key in lookup:
            try:
                values[spec.name] = _DECODERS[spec.type](lookup[key])
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"{section}.{spec.name}: {exc}") from exc
    return cls(**values)


def _read_config_file(directory: Path) -> Mapping[str, Any]:
    path = next((p for p in (directory / f"config.{ext}" for ext in ("json", "yaml", "yml")) if p.is_file()), None)
    if path is None:
        raise ConfigError(f'Config File "config" Not Found in "{directory}"')
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def load_config(configs_dir) -> Config:
    """Load config.json, config.yaml or config.yml from a directory."""
    directory = Path(configs_dir)
    data = _normalise(_read_config_file(directory))
    return Config(
        http=_decode_section(HTTPConfig, data.get("http"), "http"),
        balancer=_decode_section(BalancerConfig, data.get("balancer"), "balancer"),
        limiter=_decode_section(LimiterConfig, data.get("limiter"), "limiter"),
        redis=_decode_section(RedisConfig, data.get("redis"), "redis"),
        directory=directory,
    )