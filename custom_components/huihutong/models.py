"""Data models for the HuiHuTong integration."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from .const import (
    COLOR_MODES,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_SCALE_FACTOR,
    STARTUP_VIEWS,
)


class RefreshState(StrEnum):
    """States of the access code refresh cycle."""

    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    FETCHING_ARTIFACT = "fetching_artifact"
    DISPLAYING = "displaying"
    RETRY_SCHEDULED = "retry_scheduled"
    ERROR = "error"


class DirectoryLevel(StrEnum):
    """Levels of the building directory."""

    BUILDING = "building"
    FLOOR = "floor"
    ROOM = "room"


@dataclass(frozen=True)
class DirectoryNode:
    """A building, floor or room returned by the directory endpoints."""

    level: DirectoryLevel
    id: str
    name: str
    apartment_id: str
    building_id: str
    floor_id: str | None = None

    @classmethod
    def from_api(cls, level: DirectoryLevel, item: dict[str, Any]) -> DirectoryNode:
        """Build a node from one row of a listBuilding/listFloor/listRoom result."""
        id_key = f"{level.value}Id"
        name_key = f"{level.value}Name"
        return cls(
            level=level,
            id=str(item[id_key]),
            name=str(item.get(name_key) or ""),
            apartment_id=str(item.get("apartmentId") or ""),
            building_id=str(item.get("buildingId") or ""),
            floor_id=(
                str(item["floorId"])
                if level is DirectoryLevel.ROOM and item.get("floorId")
                else None
            ),
        )


@dataclass
class DirectorySelection:
    """Last resolved apartment/building/floor/room selection."""

    apartment_id: int = 0
    apartment_name: str = ""
    building_id: str = ""
    building_name: str = ""
    floor_id: str = ""
    floor_name: str = ""
    room_id: str = ""
    room_name: str = ""

    @property
    def complete(self) -> bool:
        """Return True when a room is selected."""
        return bool(self.apartment_id and self.room_id)


@dataclass
class Preferences:
    """User preferences, each persisted and effective immediately."""

    scale_factor: float = DEFAULT_SCALE_FACTOR
    refresh_interval: int = DEFAULT_REFRESH_INTERVAL
    startup_view: str = STARTUP_VIEWS[0]
    color_mode: str = COLOR_MODES[0]


@dataclass(frozen=True)
class ProfileSummary:
    """Profile fields shown next to the access code."""

    name: str
    apartment: str
    pass_time: str
    company_name: str
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ProfileSummary:
        """Build a profile summary from a make-code-info ``data`` object."""
        return cls(
            name=str(data.get("name") or ""),
            apartment=clean_apartment(str(data.get("apartment") or "")),
            pass_time=str(data.get("passTime") or ""),
            company_name=str(data.get("companyName") or ""),
            raw=data,
        )


def clean_apartment(value: str) -> str:
    """Tidy an apartment string for display, returning "-" when empty."""
    cleaned = value.strip().replace(" ,", "")
    return cleaned or "-"


@dataclass
class SessionRecord:
    """The single persisted settings record."""

    openid: str = ""
    satoken: str = ""
    preferences: Preferences = field(default_factory=Preferences)
    selection: DirectorySelection = field(default_factory=DirectorySelection)
    profile_json: dict[str, Any] | None = None
    login_info_json: dict[str, Any] | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        """Restore a record, falling back to defaults for missing fields."""
        preferences = Preferences(
            **{
                key: value
                for key, value in (data.get("preferences") or {}).items()
                if key in Preferences.__dataclass_fields__
            }
        )
        selection = DirectorySelection(
            **{
                key: value
                for key, value in (data.get("selection") or {}).items()
                if key in DirectorySelection.__dataclass_fields__
            }
        )
        return cls(
            openid=data.get("openid", ""),
            satoken=data.get("satoken", ""),
            preferences=preferences,
            selection=selection,
            profile_json=data.get("profile_json"),
            login_info_json=data.get("login_info_json"),
        )
