"""Settings loading: built-in defaults, optional YAML file, AEDMAP_* env overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

import yaml

DEFAULT_SETTINGS_PATH = Path("config/aedmap.yaml")

UNKNOWN_REGION = "不明"
ALL_REGIONS = "all"
PLACEHOLDER = "-"

# Ordered source keys per logical field; first present, non-empty value wins.
FIELD_CANDIDATES: Dict[str, List[str]] = {
    "name": ["施設名称", "施設名等", "name", "facility_name"],
    "location": ["設置場所", "location"],
    "prefecture": ["都道府県", "prefecture"],
    "region": ["市区町村", "region", "city", "municipality"],
    "address": ["住所", "address"],
    "phone": ["電話番号", "phone", "tel"],
    "available_days": ["利用可能日", "available_days"],
    "available_hours": ["利用可能時間", "available_hours"],
    "pad_type": ["パッドの種類", "pad_type"],
}

ID_CANDIDATES = ["OBJECTID", "objectid", "id"]


@dataclass
class Settings:
    data_url: str = "data/aed.geojson"
    metadata_url: str = ""
    metadata_path: Tuple[str, ...] = ("editingInfo", "lastEditDate")
    field_candidates: Dict[str, List[str]] = field(default_factory=lambda: {k: list(v) for k, v in FIELD_CANDIDATES.items()})
    id_candidates: List[str] = field(default_factory=lambda: list(ID_CANDIDATES))
    name_default: str = "名称未設定"
    placeholder: str = PLACEHOLDER
    default_prefecture: str = "埼玉県"
    unknown_region: str = UNKNOWN_REGION
    list_cap: int = 30
    chart_top_n: int = 20
    http_timeout: float = 30.0
    http_max_retries: int = 3
    http_backoff: float = 1.0
    geolocation_timeout: float = 10.0
    geolocation_max_age: float = 300.0
    geolocation_user_agent: str = "aedmap-viewer"
    refresh_interval: float = 600.0

    def field_default(self, name: str) -> str:
        if name == "name":
            return self.name_default
        if name == "prefecture":
            return self.default_prefecture
        if name == "region":
            return self.unknown_region
        if name == "phone":
            return ""
        return self.placeholder


ENV_PREFIX = "AEDMAP_"


def _coerce(current: Any, raw: Any) -> Any:
    if isinstance(current, bool):
        return str(raw).strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, tuple):
        if isinstance(raw, str):
            return tuple(p for p in raw.split(".") if p)
        return tuple(raw)
    if isinstance(current, list):
        if isinstance(raw, str):
            return [p.strip() for p in raw.split(",") if p.strip()]
        return [str(p) for p in raw]
    return raw


def _apply(settings: Settings, values: Mapping[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)}
    updates: Dict[str, Any] = {}
    for key, raw in values.items():
        if key not in known or raw is None:
            continue
        current = getattr(settings, key)
        if key == "field_candidates" and isinstance(raw, Mapping):
            merged = {k: list(v) for k, v in current.items()}
            merged.update({k: [str(c) for c in v] for k, v in raw.items() if isinstance(v, list)})
            updates[key] = merged
            continue
        updates[key] = _coerce(current, raw)
    return replace(settings, **updates)


def load_settings(path: str | Path | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """Build settings from defaults, then YAML (if present), then AEDMAP_* env vars."""
    settings = Settings()
    settings_path = Path(path or DEFAULT_SETTINGS_PATH)
    if settings_path.exists():
        with settings_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data, dict):
            settings = _apply(settings, data)

    env = os.environ if env is None else env
    overrides = {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in env.items()
        if key.startswith(ENV_PREFIX) and value != ""
    }
    overrides.pop("field_candidates", None)
    return _apply(settings, overrides)
