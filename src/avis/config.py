from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from avis.paths import config_root, default_db_path

DEFAULT_NAME_FORMAT = "$(#File Name#)$( • ƒ#Aperture#)$( • #Shutter Speed#)$( • #ISO# ISO)"


def _default_metadata_tags() -> list[str]:
    return [
        "Date/Time Original",
        "Created Date",
        "Camera Model Name",
        "Lens Model",
        "Focal Length",
        "Aperture",
        "Shutter Speed",
        "ISO",
        "Image Size",
        "Profile Description",
    ]


@dataclass(slots=True)
class GeneralConfig:
    limit_cached: int = 100000
    output_icc_profile: str = "srgb"
    metadata_tags: list[str] = field(default_factory=_default_metadata_tags)
    icc_dirs: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ImageViewConfig:
    nr_loaded_images: int = 4
    should_wait: bool = True
    name_format: str = DEFAULT_NAME_FORMAT


@dataclass(slots=True)
class GridViewConfig:
    images_per_row: int = 5
    preloaded_rows: int = 1
    simultaneous_load: int = 8


@dataclass(slots=True)
class MetadataConfig:
    exiftool: str = "exiftool"
    chunk_size: int = 500
    workers: int = 4


@dataclass(slots=True)
class AppConfig:
    db_path: Path = field(default_factory=default_db_path)
    general: GeneralConfig = field(default_factory=GeneralConfig)
    image_view: ImageViewConfig = field(default_factory=ImageViewConfig)
    grid_view: GridViewConfig = field(default_factory=GridViewConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def _to_config(data: dict[str, Any]) -> AppConfig:
    general = GeneralConfig(**data.get("general", {}))
    image_view = ImageViewConfig(**data.get("image_view", {}))
    grid_view = GridViewConfig(**data.get("grid_view", {}))
    metadata = MetadataConfig(**data.get("metadata", {}))
    return AppConfig(
        db_path=Path(data.get("db_path", str(default_db_path()))).expanduser(),
        general=general,
        image_view=image_view,
        grid_view=grid_view,
        metadata=metadata,
    )


def default_config_path() -> Path:
    return config_root() / "config.yaml"


def load_config(config_path: Path | None = None, overrides: dict[str, Any] | None = None) -> AppConfig:
    path = config_path or default_config_path()
    base: dict[str, Any] = {}
    if path.exists():
        loaded = yaml.safe_load(path.read_text())
        if isinstance(loaded, dict):
            base = loaded
    if overrides:
        base = _merge(base, overrides)
    cfg = _to_config(base)
    cfg.db_path.parent.mkdir(parents=True, exist_ok=True)
    return cfg


def write_default_config(path: Path | None = None) -> Path:
    target = path or default_config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        return target
    target.write_text(
        yaml.safe_dump(
            {
                "db_path": str(default_db_path()),
                "general": {
                    "limit_cached": 100000,
                    "output_icc_profile": "srgb",
                    "metadata_tags": _default_metadata_tags(),
                    "icc_dirs": [],
                },
                "image_view": {
                    "nr_loaded_images": 4,
                    "should_wait": True,
                    "name_format": DEFAULT_NAME_FORMAT,
                },
                "grid_view": {
                    "images_per_row": 5,
                    "preloaded_rows": 1,
                    "simultaneous_load": 8,
                },
                "metadata": {
                    "exiftool": "exiftool",
                    "chunk_size": 500,
                    "workers": 4,
                },
            },
            sort_keys=False,
            allow_unicode=True,
        )
    )
    return target
