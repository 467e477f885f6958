"""Session credential management for the HuiHuTong integration."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from . import api
from .const import DEFAULT_REQUEST_TIMEOUT, EVENT_IDENTITY_CHANGED

if TYPE_CHECKING:
    import httpx

    from .session_store import SessionStore

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")


class CredentialManager:
    """Produce a usable satoken for an OpenID, re-exchanging when necessary.

    At most one exchange per OpenID is in flight; concurrent callers await
    the same task.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        store: SessionStore,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the credential manager."""
        self._session = session
        self._store = store
        self._timeout = timeout
        self._inflight: dict[str, asyncio.Task[str]] = {}
        self._unsub_identity = store.async_add_listener(
            EVENT_IDENTITY_CHANGED, self._handle_identity_changed
        )

    @property
    def credential(self) -> str:
        """Return the cached satoken, or an empty string."""
        return self._store.record.satoken

    def _cached_for(self, openid: str) -> str:
        record = self._store.record
        if record.openid == openid:
            return record.satoken
        return ""

    async def async_ensure_credential(self, openid: str) -> str:
        """Return the cached satoken, exchanging the OpenID if there is none.

        No network call is made when a credential is cached; its validity
        is checked by the next authenticated request.

        Raises:
            HuiHuTongMissingIdentityError: If ``openid`` is empty.
            HuiHuTongApiClientError: If the exchange fails.

        """
        if not openid:
            error_msg = "No OpenID configured"
            raise api.HuiHuTongMissingIdentityError(error_msg)

        if cached := self._cached_for(openid):
            return cached
        return await self._async_exchange(openid)

    async def async_handle_auth_failure(
        self, openid: str, failed_credential: str | None = None
    ) -> str:
        """Drop the rejected satoken and perform one re-exchange.

        If another caller already replaced ``failed_credential``, the newer
        satoken is returned without a second exchange. Repeated failure is
        raised to the caller.
        """
        if not openid:
            error_msg = "No OpenID configured"
            raise api.HuiHuTongMissingIdentityError(error_msg)

        cached = self._cached_for(openid)
        if failed_credential is not None and cached and cached != failed_credential:
            _LOGGER.debug("Credential already renewed by another caller")
            return cached

        await self._store.async_clear_session_credential(failed_credential)
        return await self._async_exchange(openid)

    async def async_authenticated_fetch(
        self,
        openid: str,
        fetch: Callable[[str], Awaitable[_T]],
        *,
        on_authenticate: Callable[[], None] | None = None,
        on_fetch: Callable[[], None] | None = None,
    ) -> _T:
        """Run ``fetch`` with a valid satoken, repairing the session once.

        An auth failure from ``fetch`` triggers exactly one re-exchange and
        one more attempt. Any auth failure raised from here has already
        been retried.

        Args:
            openid: Identity token to authenticate with.
            fetch: Request to run with the satoken.
            on_authenticate: Called before each credential step.
            on_fetch: Called before each call to ``fetch``.

        """
        if on_authenticate:
            on_authenticate()
        satoken = await self.async_ensure_credential(openid)

        if on_fetch:
            on_fetch()
        try:
            return await fetch(satoken)
        except api.HuiHuTongApiClientError as err:
            if not api.is_auth_failure(err):
                raise
            _LOGGER.info("Session credential rejected, re-exchanging OpenID")

        if on_authenticate:
            on_authenticate()
        satoken = await self.async_handle_auth_failure(openid, satoken)

        if on_fetch:
            on_fetch()
        return await fetch(satoken)

    async def _async_exchange(self, openid: str) -> str:
        task = self._inflight.get(openid)
        if task is None:
            task = asyncio.create_task(self._async_do_exchange(openid))
            self._inflight[openid] = task
            task.add_done_callback(lambda done: self._forget(openid, done))
        else:
            _LOGGER.debug("Joining in-flight credential exchange")
        # A cancelled waiter must not cancel the exchange other callers share.
        return await asyncio.shield(task)

    def _forget(self, openid: str, task: asyncio.Task[str]) -> None:
        if self._inflight.get(openid) is task:
            del self._inflight[openid]
        if not task.cancelled():
            # Mark the exception retrieved when every waiter was cancelled.
            task.exception()

    async def _async_do_exchange(self, openid: str) -> str:
        satoken = await api.async_certificate_login(
            self._session, openid, timeout=self._timeout
        )
        await self._store.async_set_session_credential(satoken, owner=openid)
        _LOGGER.info("Obtained new session credential")
        return satoken

    def _handle_identity_changed(self, openid: str) -> None:
        _LOGGER.debug("OpenID changed, forgetting pending exchanges")
        self._inflight = {
            key: task for key, task in self._inflight.items() if key == openid
        }

    def close(self) -> None:
        """Stop listening to the session store."""
        self._unsub_identity()
