from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

METADATA_PROFILE_DESCRIPTION = "Profile Description"
METADATA_ORIENTATION = "Orientation"


def parse_float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value.strip())
    except ValueError:
        return None


@dataclass(slots=True)
class MetadataRecord:
    path: str
    fields: dict[str, str] = field(default_factory=dict)
    cached_at: str | None = None

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.fields.get(key, default)

    def get_float(self, key: str) -> float | None:
        return parse_float(self.fields.get(key))

    @property
    def orientation(self) -> str | None:
        return self.fields.get(METADATA_ORIENTATION)

    @property
    def profile_description(self) -> str | None:
        return self.fields.get(METADATA_PROFILE_DESCRIPTION)


class LoadingState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    SHOULD_UNLOAD = "should_unload"
