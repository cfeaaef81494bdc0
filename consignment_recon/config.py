from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

CONFIG_ENV_VAR = "CONSIGNMENT_RECON_CONFIG"
OUTPUT_STAMP_ENV_VAR = "CONSIGNMENT_RECON_OUTPUT_STAMP"
SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}


@dataclass(frozen=True)
class ReconSettings:
    sample_size: int = 10
    score_threshold: float = 5.0
    weak_key_length: int = 4
    invalid_ref_markers: tuple[str, ...] = ("DESTINATION:", "(Pre)")
    group_by: tuple[str, ...] = ("consignment_id", "supplier_ref")
    group_tolerance: int = 1
    orchard_fallback_index: int | None = 10
    date_fallback_index: int | None = 34
    date_epoch: str = "1899-12-30"
    strict_file_type: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["invalid_ref_markers"] = list(self.invalid_ref_markers)
        payload["group_by"] = list(self.group_by)
        return payload


DEFAULT_SETTINGS = ReconSettings()

_TUPLE_FIELDS = {"invalid_ref_markers", "group_by"}


def settings_from_dict(payload: dict[str, Any], base: ReconSettings = DEFAULT_SETTINGS) -> ReconSettings:
    known = {item.name for item in fields(ReconSettings)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
    updates: dict[str, Any] = {}
    for key, value in payload.items():
        if key in _TUPLE_FIELDS:
            if isinstance(value, str) or not isinstance(value, (list, tuple)):
                raise ValueError(f"Config key '{key}' must be a list of strings")
            value = tuple(str(item) for item in value)
        updates[key] = value
    return replace(base, **updates)


def load_settings(path: str | Path | None = None) -> ReconSettings:
    """
    Resolve settings from an explicit JSON file, then $CONSIGNMENT_RECON_CONFIG,
    then the built-in defaults.
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return DEFAULT_SETTINGS
        path = env_path

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ValueError("Config must be .json, .yml, or .yaml")
    if suffix in {".yml", ".yaml"}:
        raise ValueError("YAML config is not supported yet; use a .json config file")
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Config root must be a JSON object")
    return settings_from_dict(payload)
