"""Coordinator for the HuiHuTong integration."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from . import api
from .const import BALANCE_POLL_INTERVAL, DOMAIN, EVENT_SELECTION_CHANGED

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .directory import DirectoryAndBalanceService
    from .session_store import SessionStore

_LOGGER = logging.getLogger(__name__)


class HuiHuTongBalanceCoordinator(DataUpdateCoordinator[str | None]):
    """Coordinator that polls the utility balance of the selected room."""

    def __init__(
        self,
        hass: HomeAssistant,
        directory: DirectoryAndBalanceService,
        store: SessionStore,
    ) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            name=f"{DOMAIN}_balance",
            update_interval=timedelta(seconds=BALANCE_POLL_INTERVAL),
        )
        self._directory = directory
        self._unsub_selection = store.async_add_listener(
            EVENT_SELECTION_CHANGED, self._handle_selection_changed
        )

    async def _async_update_data(self) -> str | None:
        selection = self._directory.selection
        if not selection.complete:
            _LOGGER.debug("No room selected, skipping balance query")
            return None

        try:
            balance = await self._directory.async_query_selected_balance()
        except api.HuiHuTongMissingIdentityError as err:
            raise UpdateFailed(f"No OpenID configured: {err}") from err
        except api.HuiHuTongApiClientError as err:
            raise UpdateFailed(f"Error querying balance: {err}") from err

        _LOGGER.debug("Balance for room %s: %s", selection.room_name, balance)
        return balance

    def _handle_selection_changed(self, _selection: object) -> None:
        self.hass.async_create_task(self.async_request_refresh())

    def close(self) -> None:
        """Stop listening to selection changes."""
        self._unsub_selection()
