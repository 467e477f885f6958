"""Sensor entities for the HuiHuTong integration."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from homeassistant.components.sensor import SensorEntity
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import DOMAIN

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .coordinator import HuiHuTongBalanceCoordinator
    from .polling import PollingController
    from .session_store import SessionStore


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up HuiHuTong sensors."""
    runtime = hass.data[DOMAIN][entry.entry_id]
    async_add_entities(
        [
            HuiHuTongStatusSensor(entry, runtime.controller),
            HuiHuTongProfileSensor(entry, runtime.controller),
            HuiHuTongBalanceSensor(entry, runtime.balance_coordinator, runtime.store),
        ]
    )


class _ControllerSensor(SensorEntity):
    """Base for sensors that follow the polling controller."""

    _attr_has_entity_name = True
    _attr_should_poll = False

    def __init__(self, entry: ConfigEntry, controller: PollingController) -> None:
        self._controller = controller
        self._entry = entry
        self._unsub = None

    async def async_added_to_hass(self) -> None:
        await super().async_added_to_hass()
        self._unsub = self._controller.async_add_listener(self.async_write_ha_state)

    async def async_will_remove_from_hass(self) -> None:
        await super().async_will_remove_from_hass()
        if self._unsub is not None:
            self._unsub()
            self._unsub = None


class HuiHuTongStatusSensor(_ControllerSensor):
    """Human readable status of the access code refresh."""

    _attr_icon = "mdi:qrcode-scan"

    def __init__(self, entry: ConfigEntry, controller: PollingController) -> None:
        """Initialize the status sensor."""
        super().__init__(entry, controller)
        self._attr_unique_id = f"{entry.entry_id}_status"
        self._attr_name = "Access code status"

    @property
    def native_value(self) -> str:
        """Return the status message."""
        return self._controller.status_message

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the raw refresh state and the last error detail."""
        return {
            "refresh_state": self._controller.state.value,
            "error": self._controller.error_message,
            "last_updated": self._controller.last_updated,
        }


class HuiHuTongProfileSensor(_ControllerSensor):
    """Name of the access code holder, with profile details as attributes."""

    _attr_icon = "mdi:account-card"

    def __init__(self, entry: ConfigEntry, controller: PollingController) -> None:
        """Initialize the profile sensor."""
        super().__init__(entry, controller)
        self._attr_unique_id = f"{entry.entry_id}_profile"
        self._attr_name = "Profile"

    @property
    def native_value(self) -> str | None:
        profile = self._controller.profile
        return profile.name if profile else None

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        profile = self._controller.profile
        if profile is None:
            return {}
        return {
            "apartment": profile.apartment,
            "company": profile.company_name,
            "pass_time": profile.pass_time,
        }


class HuiHuTongBalanceSensor(
    CoordinatorEntity["HuiHuTongBalanceCoordinator"], SensorEntity
):
    """Utility balance of the selected room."""

    _attr_has_entity_name = True
    _attr_icon = "mdi:cash"
    _attr_native_unit_of_measurement = "CNY"
    _attr_suggested_display_precision = 2

    def __init__(
        self,
        entry: ConfigEntry,
        coordinator: HuiHuTongBalanceCoordinator,
        store: SessionStore,
    ) -> None:
        """Initialize the balance sensor."""
        super().__init__(coordinator)
        self._store = store
        self._attr_unique_id = f"{entry.entry_id}_balance"
        self._attr_name = "Utility balance"

    @property
    def native_value(self) -> Decimal | None:
        """Return the balance, which keeps its two decimal digits."""
        if self.coordinator.data is None:
            return None
        return Decimal(self.coordinator.data)

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the selected room."""
        selection = self._store.record.selection
        return {
            "apartment": selection.apartment_name,
            "building": selection.building_name,
            "floor": selection.floor_name,
            "room": selection.room_name,
        }
