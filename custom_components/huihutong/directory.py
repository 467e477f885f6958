"""Building directory and utility balance lookups."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any, TypeVar

from . import api
from .const import DEFAULT_REQUEST_TIMEOUT
from .models import DirectoryLevel, DirectoryNode, DirectorySelection

if TYPE_CHECKING:
    import httpx

    from .credential import CredentialManager
    from .session_store import SessionStore

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")


def dedupe_nodes(nodes: Iterable[DirectoryNode]) -> list[DirectoryNode]:
    """Drop nodes whose id was already seen, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for node in nodes:
        if not node.id or node.id in seen:
            continue
        seen.add(node.id)
        unique.append(node)
    return unique


def _to_nodes(level: DirectoryLevel, rows: list[dict[str, Any]]) -> list[DirectoryNode]:
    key = f"{level.value}Id"
    return dedupe_nodes(
        DirectoryNode.from_api(level, row) for row in rows if row.get(key)
    )


class DirectoryAndBalanceService:
    """Cascading building/floor/room lookups and balance queries.

    Errors are raised to the caller; the only repair performed is the
    shared one-time session re-exchange.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        store: SessionStore,
        credentials: CredentialManager,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the service."""
        self._session = session
        self._store = store
        self._credentials = credentials
        self._timeout = timeout

    @property
    def selection(self) -> DirectorySelection:
        """Return the persisted directory selection."""
        return self._store.record.selection

    async def _async_fetch(self, fetch: Callable[[str], Awaitable[_T]]) -> _T:
        return await self._credentials.async_authenticated_fetch(
            self._store.record.openid, fetch
        )

    async def async_list_buildings(self, apartment_id: int) -> list[DirectoryNode]:
        """List the buildings of an apartment."""
        rows = await self._async_fetch(
            lambda satoken: api.async_list_buildings(
                self._session, satoken, apartment_id, timeout=self._timeout
            )
        )
        nodes = _to_nodes(DirectoryLevel.BUILDING, rows)
        _LOGGER.debug("Apartment %s has %d buildings", apartment_id, len(nodes))
        return nodes

    async def async_list_floors(
        self, apartment_id: int, building_id: str
    ) -> list[DirectoryNode]:
        """List the floors of a building."""
        rows = await self._async_fetch(
            lambda satoken: api.async_list_floors(
                self._session, satoken, apartment_id, building_id, timeout=self._timeout
            )
        )
        return _to_nodes(DirectoryLevel.FLOOR, rows)

    async def async_list_rooms(
        self, apartment_id: int, building_id: str, floor_id: str
    ) -> list[DirectoryNode]:
        """List the rooms of a floor."""
        rows = await self._async_fetch(
            lambda satoken: api.async_list_rooms(
                self._session,
                satoken,
                apartment_id,
                building_id,
                floor_id,
                timeout=self._timeout,
            )
        )
        return _to_nodes(DirectoryLevel.ROOM, rows)

    async def async_query_balance(self, apartment_id: int, room_id: str) -> str:
        """Return the room balance formatted with two decimals."""
        return await self._async_fetch(
            lambda satoken: api.async_get_room_balance(
                self._session, satoken, apartment_id, room_id, timeout=self._timeout
            )
        )

    async def async_query_selected_balance(self) -> str | None:
        """Return the balance of the selected room, or None without a selection."""
        selection = self.selection
        if not selection.complete:
            return None
        return await self.async_query_balance(
            selection.apartment_id, selection.room_id
        )

    async def async_get_login_info(self) -> dict[str, Any]:
        """Fetch extended account details and cache them for offline display."""
        info = await self._async_fetch(
            lambda satoken: api.async_get_login_info(
                self._session, satoken, timeout=self._timeout
            )
        )
        await self._store.async_save_login_info(info)
        return info

    async def async_select_apartment(self, apartment_id: int) -> None:
        """Select an apartment; deeper selections are cleared."""
        await self._store.async_select_apartment(apartment_id)

    async def async_select_building(self, node: DirectoryNode) -> None:
        """Select a building; floor and room are cleared."""
        await self._store.async_select_building(node.id, node.name)

    async def async_select_floor(self, node: DirectoryNode) -> None:
        """Select a floor; the room is cleared."""
        await self._store.async_select_floor(node.id, node.name)

    async def async_select_room(self, node: DirectoryNode) -> None:
        """Select a room."""
        await self._store.async_select_room(node.id, node.name)
