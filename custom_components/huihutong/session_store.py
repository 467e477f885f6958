"""Persisted session record for the HuiHuTong integration.

The record holds the OpenID, the cached satoken, preferences, the last
directory selection and cached profile JSON. All read-modify-write
sequences run under one lock so concurrent writers cannot interleave.
Interested components register typed listeners instead of relying on a
global broadcast.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from .const import (
    APARTMENTS,
    COLOR_MODES,
    EVENT_COLOR_MODE_CHANGED,
    EVENT_IDENTITY_CHANGED,
    EVENT_REFRESH_INTERVAL_CHANGED,
    EVENT_SCALE_FACTOR_CHANGED,
    EVENT_SELECTION_CHANGED,
    MAX_REFRESH_INTERVAL,
    MAX_SCALE_FACTOR,
    MIN_REFRESH_INTERVAL,
    MIN_SCALE_FACTOR,
    STARTUP_VIEWS,
)
from .models import DirectorySelection, SessionRecord

if TYPE_CHECKING:
    from homeassistant.helpers.storage import Store

_LOGGER = logging.getLogger(__name__)


class InvalidPreferenceError(ValueError):
    """Raised when a preference value is outside its allowed range."""


class SessionStore:
    """Get-or-create holder of the single persisted session record."""

    def __init__(self, store: Store) -> None:
        """Initialize the session store.

        Args:
            store: Backend with ``async_load``/``async_save``, normally a
                Home Assistant ``Store``.

        """
        self._store = store
        self._record: SessionRecord | None = None
        self._lock = asyncio.Lock()
        self._listeners: dict[str, list[Callable[[Any], None]]] = {}

    @property
    def record(self) -> SessionRecord:
        """Return the loaded record."""
        if self._record is None:
            error_msg = "Session store has not been loaded"
            raise RuntimeError(error_msg)
        return self._record

    async def async_load(self) -> SessionRecord:
        """Load the record, creating and persisting a default one if missing."""
        async with self._lock:
            return await self._async_get_or_create()

    async def _async_get_or_create(self) -> SessionRecord:
        if self._record is not None:
            return self._record

        data = await self._store.async_load()
        if data:
            self._record = SessionRecord.from_dict(data)
            _LOGGER.debug("Loaded session record")
        else:
            self._record = SessionRecord()
            await self._store.async_save(self._record.as_dict())
            _LOGGER.debug("Created new session record")
        return self._record

    async def async_update(
        self, mutate: Callable[[SessionRecord], bool | None]
    ) -> SessionRecord:
        """Apply ``mutate`` to the record and persist it.

        The mutation may return False to skip the save.
        """
        async with self._lock:
            record = await self._async_get_or_create()
            if mutate(record) is not False:
                await self._store.async_save(record.as_dict())
            return record

    def async_add_listener(
        self, event: str, callback: Callable[[Any], None]
    ) -> Callable[[], None]:
        """Register a callback for one change event.

        Returns:
            A function to unregister the callback.

        """
        callbacks = self._listeners.setdefault(event, [])
        callbacks.append(callback)

        def unregister() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unregister

    def _notify(self, event: str, value: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            callback(value)

    async def async_set_identity_token(self, openid: str) -> bool:
        """Replace the OpenID, clearing any cached satoken.

        Returns:
            True if the OpenID changed.

        """
        openid = openid.strip()
        changed = False

        def mutate(record: SessionRecord) -> bool:
            nonlocal changed
            if record.openid == openid:
                return False
            record.openid = openid
            record.satoken = ""
            changed = True
            return True

        await self.async_update(mutate)
        if changed:
            _LOGGER.info("OpenID updated, cached session credential cleared")
            self._notify(EVENT_IDENTITY_CHANGED, openid)
        return changed

    async def async_set_session_credential(self, satoken: str, owner: str) -> bool:
        """Cache a satoken obtained for ``owner``.

        The write is dropped if the OpenID changed while the exchange was
        in flight.
        """
        stored = False

        def mutate(record: SessionRecord) -> bool:
            nonlocal stored
            if record.openid != owner:
                return False
            record.satoken = satoken
            stored = True
            return True

        await self.async_update(mutate)
        if not stored:
            _LOGGER.debug("Discarded session credential for a replaced OpenID")
        return stored

    async def async_clear_session_credential(self, expected: str | None = None) -> None:
        """Clear the cached satoken, optionally only if it equals ``expected``."""

        def mutate(record: SessionRecord) -> bool:
            if not record.satoken:
                return False
            if expected is not None and record.satoken != expected:
                return False
            record.satoken = ""
            return True

        await self.async_update(mutate)

    async def async_set_refresh_interval(self, seconds: int) -> None:
        """Set the access code refresh interval.

        Raises:
            InvalidPreferenceError: If the value is outside 5-300 seconds.
                The previous interval is kept.

        """
        if (
            isinstance(seconds, bool)
            or not isinstance(seconds, int)
            or not MIN_REFRESH_INTERVAL <= seconds <= MAX_REFRESH_INTERVAL
        ):
            _LOGGER.warning(
                "Rejected refresh interval %s, keeping %d",
                seconds,
                self.record.preferences.refresh_interval,
            )
            error_msg = (
                f"Refresh interval must be between {MIN_REFRESH_INTERVAL} "
                f"and {MAX_REFRESH_INTERVAL} seconds"
            )
            raise InvalidPreferenceError(error_msg)

        if await self._async_set_preference("refresh_interval", seconds):
            self._notify(EVENT_REFRESH_INTERVAL_CHANGED, seconds)

    async def async_set_scale_factor(self, scale: float) -> None:
        """Set the display scale, clamped to 0.4-1.0."""
        clamped = max(MIN_SCALE_FACTOR, min(MAX_SCALE_FACTOR, float(scale)))
        if await self._async_set_preference("scale_factor", clamped):
            self._notify(EVENT_SCALE_FACTOR_CHANGED, clamped)

    async def async_set_startup_view(self, view: str) -> None:
        """Set the view shown at startup."""
        if view not in STARTUP_VIEWS:
            error_msg = f"Unknown startup view: {view}"
            raise InvalidPreferenceError(error_msg)
        await self._async_set_preference("startup_view", view)

    async def async_set_color_mode(self, mode: str) -> None:
        """Set the color mode."""
        if mode not in COLOR_MODES:
            error_msg = f"Unknown color mode: {mode}"
            raise InvalidPreferenceError(error_msg)
        if await self._async_set_preference("color_mode", mode):
            self._notify(EVENT_COLOR_MODE_CHANGED, mode)

    async def _async_set_preference(self, name: str, value: Any) -> bool:
        changed = False

        def mutate(record: SessionRecord) -> bool:
            nonlocal changed
            if getattr(record.preferences, name) == value:
                return False
            setattr(record.preferences, name, value)
            changed = True
            return True

        await self.async_update(mutate)
        return changed

    async def async_select_apartment(self, apartment_id: int) -> None:
        """Select an apartment, clearing building, floor and room."""
        if apartment_id not in APARTMENTS:
            error_msg = f"Unknown apartment: {apartment_id}"
            raise InvalidPreferenceError(error_msg)

        def mutate(record: SessionRecord) -> None:
            record.selection = DirectorySelection(
                apartment_id=apartment_id,
                apartment_name=APARTMENTS[apartment_id],
            )

        await self._async_select(mutate)

    async def async_select_building(self, building_id: str, name: str) -> None:
        """Select a building, clearing floor and room."""

        def mutate(record: SessionRecord) -> None:
            selection = record.selection
            selection.building_id = building_id
            selection.building_name = name
            selection.floor_id = selection.floor_name = ""
            selection.room_id = selection.room_name = ""

        await self._async_select(mutate)

    async def async_select_floor(self, floor_id: str, name: str) -> None:
        """Select a floor, clearing the room."""

        def mutate(record: SessionRecord) -> None:
            selection = record.selection
            selection.floor_id = floor_id
            selection.floor_name = name
            selection.room_id = selection.room_name = ""

        await self._async_select(mutate)

    async def async_select_room(self, room_id: str, name: str) -> None:
        """Select a room."""

        def mutate(record: SessionRecord) -> None:
            record.selection.room_id = room_id
            record.selection.room_name = name

        await self._async_select(mutate)

    async def _async_select(self, mutate: Callable[[SessionRecord], None]) -> None:
        record = await self.async_update(mutate)
        self._notify(EVENT_SELECTION_CHANGED, record.selection)

    async def async_save_profile(self, profile_json: dict[str, Any]) -> None:
        """Cache the last fetched profile summary JSON."""

        def mutate(record: SessionRecord) -> bool:
            if record.profile_json == profile_json:
                return False
            record.profile_json = profile_json
            return True

        await self.async_update(mutate)

    async def async_save_login_info(self, login_info_json: dict[str, Any]) -> None:
        """Cache the last fetched extended login info JSON."""

        def mutate(record: SessionRecord) -> None:
            record.login_info_json = login_info_json

        await self.async_update(mutate)
