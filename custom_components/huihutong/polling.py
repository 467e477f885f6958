"""Access code polling for the HuiHuTong integration.

The controller drives the refresh cycle:

    IDLE -> AUTHENTICATING -> FETCHING_ARTIFACT -> DISPLAYING -> (interval)
    AUTHENTICATING -> ...

with RETRY_SCHEDULED for network blips and ERROR for everything the
server rejected or that could not be rendered. Both re-arm with a growing
backoff. Every cycle
carries an id; callbacks and late results from an older cycle are
discarded without touching controller state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from . import api
from .const import (
    EVENT_IDENTITY_CHANGED,
    EVENT_REFRESH_INTERVAL_CHANGED,
    EVENT_SCALE_FACTOR_CHANGED,
    MAX_RETRY_BACKOFF,
    PROFILE_REFRESH_TIMEOUT,
    RETRY_BACKOFF,
    STATUS_FAILED,
    STATUS_IDLE,
    STATUS_MISSING_IDENTITY,
    STATUS_RETRYING,
    STATUS_UPDATED,
    STATUS_UPDATING,
)
from .models import ProfileSummary, RefreshState
from .renderer import ArtifactRenderError, render_qr_code

if TYPE_CHECKING:
    import httpx

    from .credential import CredentialManager
    from .session_store import SessionStore

_LOGGER = logging.getLogger(__name__)

# Network blips retry quietly; anything the server actually answered is surfaced.
TRANSIENT_ERRORS = (api.HuiHuTongTimeoutError, api.HuiHuTongTransportError)


class PollingController:
    """State machine that keeps the access code fresh while it is visible."""

    def __init__(
        self,
        session: httpx.AsyncClient,
        store: SessionStore,
        credentials: CredentialManager,
        *,
        renderer: Callable[[str, float], bytes] = render_qr_code,
        retry_backoff: float = RETRY_BACKOFF,
        max_retry_backoff: float = MAX_RETRY_BACKOFF,
        profile_timeout: float = PROFILE_REFRESH_TIMEOUT,
    ) -> None:
        """Initialize the controller.

        Args:
            session: HTTP client session.
            store: Session store holding the OpenID and preferences.
            credentials: Credential manager shared with other components.
            renderer: Function turning a payload into image bytes.
            retry_backoff: First retry delay; never lowered below 5 seconds.
            max_retry_backoff: Upper bound for growing retry delays.
            profile_timeout: Deadline for the best-effort profile refresh.

        """
        self._session = session
        self._store = store
        self._credentials = credentials
        self._renderer = renderer
        self._retry_backoff = max(RETRY_BACKOFF, retry_backoff)
        self._max_retry_backoff = max(self._retry_backoff, max_retry_backoff)
        self._profile_timeout = profile_timeout

        self.state = RefreshState.IDLE
        self.status_message = STATUS_IDLE
        self.error_message: str | None = None
        self.payload: str | None = None
        self.image: bytes | None = None
        self.last_updated: datetime | None = None
        self.next_refresh_in: float | None = None
        self.profile: ProfileSummary | None = None
        if profile_json := store.record.profile_json:
            self.profile = ProfileSummary.from_api(profile_json)

        self._active = False
        self._cycle_id = 0
        self._failures = 0
        self._showing = False
        self._task: asyncio.Task[None] | None = None
        self._profile_task: asyncio.Task[None] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._listeners: list[Callable[[], None]] = []
        self._display_listeners: list[Callable[[], None]] = []
        self._unsubs = [
            store.async_add_listener(EVENT_IDENTITY_CHANGED, self._handle_restart),
            store.async_add_listener(
                EVENT_REFRESH_INTERVAL_CHANGED, self._handle_restart
            ),
            store.async_add_listener(EVENT_SCALE_FACTOR_CHANGED, self._handle_restart),
        ]

    @property
    def active(self) -> bool:
        """Return True while the controller is running."""
        return self._active

    @property
    def cycle_id(self) -> int:
        """Return the id of the current cycle."""
        return self._cycle_id

    def async_add_listener(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback for any state change."""
        return self._register(self._listeners, callback)

    def async_add_display_listener(
        self, callback: Callable[[], None]
    ) -> Callable[[], None]:
        """Register a callback fired when an access code starts being shown."""
        return self._register(self._display_listeners, callback)

    @staticmethod
    def _register(
        callbacks: list[Callable[[], None]], callback: Callable[[], None]
    ) -> Callable[[], None]:
        callbacks.append(callback)

        def unregister() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unregister

    def start(self) -> None:
        """Start a new cycle, superseding any running or scheduled one."""
        self._active = True
        self._begin_cycle()

    def refresh(self) -> None:
        """Handle a manual refresh request."""
        _LOGGER.debug("Manual access code refresh requested")
        self._failures = 0
        self.start()

    def stop(self) -> None:
        """Cancel the running cycle and any scheduled one.

        Safe to call repeatedly.
        """
        was_active = self._active
        self._active = False
        self._cancel_pending()
        if self._profile_task is not None and not self._profile_task.done():
            self._profile_task.cancel()
        self._profile_task = None
        self._showing = False
        self.next_refresh_in = None
        if was_active or self.state is not RefreshState.IDLE:
            self._set_state(RefreshState.IDLE, STATUS_IDLE)

    def close(self) -> None:
        """Stop the controller and detach from the session store."""
        self.stop()
        for unsub in self._unsubs:
            unsub()
        self._unsubs.clear()

    def _handle_restart(self, _value: object) -> None:
        if self._active:
            _LOGGER.debug("Settings changed, restarting access code cycle")
            self._failures = 0
            self.start()

    def _cancel_pending(self) -> None:
        self._cycle_id += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _is_current(self, cycle_id: int) -> bool:
        return self._active and cycle_id == self._cycle_id

    def _begin_cycle(self) -> None:
        self._cancel_pending()
        cycle_id = self._cycle_id
        self.next_refresh_in = None

        openid = self._store.record.openid
        if not openid:
            _LOGGER.warning("No OpenID configured, access code cannot be fetched")
            self._showing = False
            self.error_message = STATUS_MISSING_IDENTITY
            self._set_state(RefreshState.ERROR, STATUS_MISSING_IDENTITY)
            return

        self._task = asyncio.create_task(self._async_run_cycle(cycle_id, openid))

    async def _async_run_cycle(self, cycle_id: int, openid: str) -> None:
        try:
            payload = await self._credentials.async_authenticated_fetch(
                openid,
                self._async_fetch_artifact,
                on_authenticate=lambda: self._transition(
                    cycle_id, RefreshState.AUTHENTICATING
                ),
                on_fetch=lambda: self._transition(
                    cycle_id, RefreshState.FETCHING_ARTIFACT
                ),
            )
            image = self._renderer(payload, self._store.record.preferences.scale_factor)
        except api.HuiHuTongApiClientError as err:
            if self._is_current(cycle_id):
                self._handle_failure(cycle_id, err)
            return
        except ArtifactRenderError as err:
            if self._is_current(cycle_id):
                self._enter_error(cycle_id, str(err))
            return
        except Exception as err:
            if self._is_current(cycle_id):
                _LOGGER.exception("Unexpected error refreshing the access code")
                self._enter_error(cycle_id, f"Unexpected error: {err!r}")
            return

        if not self._is_current(cycle_id):
            _LOGGER.debug("Discarding access code from superseded cycle %d", cycle_id)
            return

        self._display(cycle_id, payload, image, openid)

    async def _async_fetch_artifact(self, satoken: str) -> str:
        return await api.async_get_qrcode(self._session, satoken)

    def _transition(self, cycle_id: int, state: RefreshState) -> None:
        if self._is_current(cycle_id):
            self._set_state(state, STATUS_UPDATING)

    def _handle_failure(self, cycle_id: int, err: api.HuiHuTongApiClientError) -> None:
        if self.state is RefreshState.AUTHENTICATING or api.is_auth_failure(err):
            # Exchange failed, or the session was still rejected after one repair.
            _LOGGER.warning("Access code authentication failed: %s", err)
            self._enter_error(cycle_id, str(err))
            return
        if not isinstance(err, TRANSIENT_ERRORS):
            _LOGGER.warning("Access code refresh failed: %s", err)
            self._enter_error(cycle_id, str(err))
            return

        self._failures += 1
        delay = self._retry_delay()
        _LOGGER.warning(
            "Access code refresh failed (attempt %d), retrying in %ss: %s",
            self._failures,
            delay,
            err,
        )
        self._showing = False
        self.error_message = str(err)
        self._schedule(cycle_id, delay)
        self._set_state(
            RefreshState.RETRY_SCHEDULED, STATUS_RETRYING.format(delay=f"{delay:g}")
        )

    def _enter_error(self, cycle_id: int, message: str) -> None:
        self._failures += 1
        self._showing = False
        self.error_message = message
        self._schedule(cycle_id, self._retry_delay())
        self._set_state(RefreshState.ERROR, STATUS_FAILED)

    def _retry_delay(self) -> float:
        exponent = max(0, self._failures - 1)
        return min(self._retry_backoff * 2**exponent, self._max_retry_backoff)

    def _display(self, cycle_id: int, payload: str, image: bytes, openid: str) -> None:
        self.payload = payload
        self.image = image
        self.last_updated = datetime.now(UTC)
        self.error_message = None
        self._failures = 0
        self._schedule(cycle_id, self._store.record.preferences.refresh_interval)
        self._set_state(RefreshState.DISPLAYING, STATUS_UPDATED)

        if not self._showing:
            self._showing = True
            for callback in list(self._display_listeners):
                callback()

        if self._profile_task is None or self._profile_task.done():
            self._profile_task = asyncio.create_task(
                self._async_refresh_profile(openid)
            )

    def _schedule(self, cycle_id: int, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._handle_timer, cycle_id)
        self.next_refresh_in = delay

    def _handle_timer(self, cycle_id: int) -> None:
        if not self._is_current(cycle_id):
            return
        self._timer = None
        self._begin_cycle()

    async def _async_refresh_profile(self, openid: str) -> None:
        """Refresh the cached profile without affecting the access code."""
        try:
            async with asyncio.timeout(self._profile_timeout):
                satoken = await self._credentials.async_ensure_credential(openid)
                profile = await api.async_get_code_info(
                    self._session, satoken, timeout=self._profile_timeout
                )
        except (api.HuiHuTongApiClientError, TimeoutError) as err:
            _LOGGER.debug("Ignoring profile refresh failure: %s", err)
            return

        if not self._active or self._store.record.openid != openid:
            return
        self.profile = profile
        await self._store.async_save_profile(profile.raw)
        self._notify()

    def _set_state(self, state: RefreshState, status_message: str) -> None:
        if state is not self.state:
            _LOGGER.debug("Access code state %s -> %s", self.state, state)
        self.state = state
        self.status_message = status_message
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback()
