"""Load config.yaml into typed settings.

Each top-level section is shallow-merged over the defaults below, so a
partial file only overrides what it names. A missing file means defaults.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from fieldsync.infra import paths
from fieldsync.signal.conditioner import ConditioningProfile

LOG = logging.getLogger("fieldsync.config")

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "profiles": {
        "display": {
            "max_accuracy_m": 50.0,
            "max_jump_m": 200.0,
            "min_plausible_interval_ms": 5000.0,
            "movement_threshold_m": 5.0,
            "smoothing_alpha": 0.3,
        },
        "reported": {
            "max_accuracy_m": 50.0,
            "max_jump_m": 200.0,
            "min_plausible_interval_ms": 5000.0,
            "movement_threshold_m": 15.0,
            "smoothing_alpha": 0.15,
        },
    },
    "matching": {"radius_km": 0.05, "k": 2, "stale_after_sec": 15.0},
    "fleet": {"offline_after_sec": 60.0, "update_interval_sec": 12.0},
    "sos": {"duration_sec": 60.0},
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class MatchingConfig:
    radius_km: float
    k: int
    stale_after_sec: float


@dataclass(frozen=True)
class FleetConfig:
    offline_after_sec: float
    update_interval_sec: float


@dataclass(frozen=True)
class Settings:
    display: ConditioningProfile
    reported: ConditioningProfile
    matching: MatchingConfig
    fleet: FleetConfig
    sos_duration_sec: float


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    merged = dict(DEFAULTS[name])
    loaded = raw.get(name) or {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"config section '{name}' must be a mapping")
    merged.update(loaded)
    return merged


def _profile(profiles: Dict[str, Any], name: str) -> ConditioningProfile:
    merged = dict(DEFAULTS["profiles"][name])
    loaded = profiles.get(name) or {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"profiles.{name} must be a mapping")
    merged.update(loaded)
    unknown = set(merged) - set(DEFAULTS["profiles"][name])
    if unknown:
        raise ConfigError(f"profiles.{name}: unknown keys {sorted(unknown)}")
    try:
        return ConditioningProfile(name=name, **{k: float(v) for k, v in merged.items()})
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"profiles.{name}: {exc}") from exc


def _non_negative(section: str, key: str, value: Any) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{section}.{key} must be a number") from exc
    if v < 0.0 or v != v:
        raise ConfigError(f"{section}.{key} must be >= 0, got {value!r}")
    return v


def settings_from_dict(raw: Optional[Dict[str, Any]]) -> Settings:
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigError("config root must be a mapping")

    profiles = _section(raw, "profiles")
    matching = _section(raw, "matching")
    fleet = _section(raw, "fleet")
    sos = _section(raw, "sos")

    k = matching["k"]
    if isinstance(k, bool) or not isinstance(k, int) or k < 0:
        raise ConfigError(f"matching.k must be a non-negative integer, got {k!r}")

    return Settings(
        display=_profile(profiles, "display"),
        reported=_profile(profiles, "reported"),
        matching=MatchingConfig(
            radius_km=_non_negative("matching", "radius_km", matching["radius_km"]),
            k=k,
            stale_after_sec=_non_negative("matching", "stale_after_sec", matching["stale_after_sec"]),
        ),
        fleet=FleetConfig(
            offline_after_sec=_non_negative("fleet", "offline_after_sec", fleet["offline_after_sec"]),
            update_interval_sec=_non_negative("fleet", "update_interval_sec", fleet["update_interval_sec"]),
        ),
        sos_duration_sec=_non_negative("sos", "duration_sec", sos["duration_sec"]),
    )


def load_settings(path: Path = paths.CONFIG) -> Settings:
    path = Path(path)
    if not path.exists():
        LOG.info("no config at %s, using defaults", path)
        return settings_from_dict({})
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse {path}: {exc}") from exc
    return settings_from_dict(loaded)


__all__ = ["ConfigError", "MatchingConfig", "FleetConfig", "Settings", "settings_from_dict", "load_settings"]
