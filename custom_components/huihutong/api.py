"""API client for the HuiHuTong access service.

This module provides functions to interact with the HuiHuTong API,
including the OpenID to satoken exchange, access code retrieval,
profile lookups and the utility directory/balance endpoints.
"""

import asyncio
import json
import logging
import math
from typing import Any

import httpx
from homeassistant.core import HomeAssistant
from homeassistant.helpers.httpx_client import create_async_httpx_client

from .const import (
    APPLICATION_AUTH_CODES,
    APPLICATION_SUCCESS_CODE,
    BASE_URL,
    DEFAULT_REQUEST_TIMEOUT,
    HEADER_SATOKEN,
    PATH_CERTIFICATE_LOGIN,
    PATH_LIST_BUILDING,
    PATH_LIST_FLOOR,
    PATH_LIST_ROOM,
    PATH_LOGIN_INFO,
    PATH_MAKE_CODE_INFO,
    PATH_MAKE_QRCODE,
    PATH_ROOM_BALANCE,
    USER_AGENT,
)
from .models import ProfileSummary

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401


class HuiHuTongApiClientError(Exception):
    """Base exception for HuiHuTong API client errors."""


class HuiHuTongMissingIdentityError(HuiHuTongApiClientError):
    """Exception raised when no OpenID has been configured."""


class HuiHuTongTimeoutError(HuiHuTongApiClientError):
    """Exception raised when a request exceeds its deadline."""


class HuiHuTongTransportError(HuiHuTongApiClientError):
    """Exception raised when no response was received."""


class HuiHuTongServerError(HuiHuTongApiClientError):
    """Exception raised for non-success HTTP status codes."""

    def __init__(self, status: int, raw_body: str) -> None:
        """Keep the status and the response body verbatim."""
        super().__init__(f"Server error ({status}): {raw_body}")
        self.status = status
        self.raw_body = raw_body


class HuiHuTongDecodeError(HuiHuTongApiClientError):
    """Exception raised when a response does not have the expected shape."""

    def __init__(self, raw_body: str, reason: str = "Unexpected response") -> None:
        """Keep the raw body for diagnostics."""
        super().__init__(f"{reason}: {raw_body}")
        self.raw_body = raw_body


class HuiHuTongApplicationError(HuiHuTongApiClientError):
    """Exception raised when the response envelope reports a failure."""

    def __init__(self, code: int | None, message: str) -> None:
        """Keep the envelope code and message."""
        super().__init__(message)
        self.code = code
        self.message = message


def create_headers(satoken: str | None = None) -> dict[str, str]:
    """Create HTTP headers for HuiHuTong API requests.

    Args:
        satoken: Optional session credential to include in headers.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    headers = {
        "accept": "application/json, text/plain, */*",
        "accept-language": "zh-CN,zh;q=0.9",
        "user-agent": USER_AGENT,
    }
    if satoken:
        headers[HEADER_SATOKEN] = satoken
    return headers


def is_http_error(status: int) -> bool:
    """Check if HTTP status code indicates an error."""
    return status >= HTTP_BAD_REQUEST


def is_auth_failure(err: Exception) -> bool:
    """Check if an error means the session credential is invalid or expired.

    Only HTTP 401 and an envelope ``code`` of 401 count; error text is
    never inspected.

    Args:
        err: Error raised by a request.

    Returns:
        True if the caller should re-exchange the credential.

    """
    if isinstance(err, HuiHuTongServerError):
        return err.status == HTTP_UNAUTHORIZED
    if isinstance(err, HuiHuTongApplicationError):
        return err.code in APPLICATION_AUTH_CODES
    return False


def decode_response(response: httpx.Response) -> Any:
    """Validate HTTP status and return parsed JSON data.

    Args:
        response: HTTP response object to validate.

    Returns:
        Parsed JSON data from response.

    Raises:
        HuiHuTongServerError: If the status code indicates an error.
        HuiHuTongDecodeError: If the body is not valid JSON.

    """
    raw_body = response.text
    if is_http_error(response.status_code):
        raise HuiHuTongServerError(response.status_code, raw_body)

    try:
        return json.loads(raw_body)
    except ValueError as err:
        raise HuiHuTongDecodeError(raw_body, "Invalid JSON") from err


def validate_envelope(data: Any, raw_body: str) -> dict[str, Any]:
    """Check the common response envelope.

    A ``code`` other than 200 or ``success: false`` is an application
    error even on HTTP 200.

    Raises:
        HuiHuTongDecodeError: If the body is not a JSON object.
        HuiHuTongApplicationError: If the envelope reports a failure.

    """
    if not isinstance(data, dict):
        raise HuiHuTongDecodeError(raw_body)

    code = data.get("code")
    if code is not None and code != APPLICATION_SUCCESS_CODE:
        raise HuiHuTongApplicationError(
            code if isinstance(code, int) else None,
            str(data.get("message") or f"Request failed with code {code}"),
        )
    if data.get("success") is False:
        raise HuiHuTongApplicationError(
            code if isinstance(code, int) else None,
            str(data.get("message") or "Request was not successful"),
        )
    return data


def _require(data: dict[str, Any], key: str, kind: type, raw_body: str) -> Any:
    value = data.get(key)
    if not isinstance(value, kind):
        raise HuiHuTongDecodeError(raw_body, f"Missing '{key}' in response")
    return value


def format_balance(value: Any) -> str:
    """Format a balance with exactly two decimal digits.

    Args:
        value: Number or numeric string from the balance endpoint.

    Returns:
        Balance string such as "12.50".

    Raises:
        HuiHuTongDecodeError: If the value is not numeric.

    """
    if isinstance(value, bool):
        raise HuiHuTongDecodeError(str(value), "Balance is not numeric")
    try:
        amount = float(value)
    except (TypeError, ValueError) as err:
        raise HuiHuTongDecodeError(str(value), "Balance is not numeric") from err
    if not math.isfinite(amount):
        raise HuiHuTongDecodeError(str(value), "Balance is not a finite number")
    return f"{amount:.2f}"


def create_session_client(hass: HomeAssistant) -> httpx.AsyncClient:
    """Create HTTP client for the HuiHuTong API.

    Retries are not handled at this level.

    Args:
        hass: Home Assistant instance.

    Returns:
        Configured httpx AsyncClient.

    """
    return create_async_httpx_client(hass, timeout=DEFAULT_REQUEST_TIMEOUT)


async def async_request(
    session: httpx.AsyncClient,
    path: str,
    *,
    method: str = "GET",
    satoken: str | None = None,
    params: dict[str, Any] | None = None,
    body: dict[str, Any] | None = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> tuple[Any, str]:
    """Perform one request and decode its JSON body.

    Args:
        session: HTTP client session.
        path: Endpoint path below the base URL.
        method: HTTP method.
        satoken: Session credential sent as the ``satoken`` header.
        params: Query parameters.
        body: JSON body for POST requests.
        timeout: Deadline for the whole call in seconds.

    Returns:
        Tuple of (decoded JSON, raw body text).

    Raises:
        HuiHuTongTimeoutError: If the deadline was exceeded.
        HuiHuTongTransportError: If the connection failed.
        HuiHuTongServerError: If the status code indicates an error.
        HuiHuTongDecodeError: If the body cannot be decompressed or is not valid JSON.

    """
    url = f"{BASE_URL}{path}"
    headers = create_headers(satoken)

    try:
        async with asyncio.timeout(timeout):
            response = await session.request(
                method,
                url,
                headers=headers,
                params=params,
                json=body,
                timeout=timeout,
            )
    except (TimeoutError, httpx.TimeoutException) as err:
        _LOGGER.debug("Request to %s timed out after %.1fs", path, timeout)
        error_msg = f"Request to {path} timed out after {timeout:g}s"
        raise HuiHuTongTimeoutError(error_msg) from err
    except httpx.DecodingError as err:
        _LOGGER.debug("Undecodable response from %s: %s", path, err)
        raise HuiHuTongDecodeError(str(err), "Undecodable response body") from err
    except httpx.RequestError as err:
        _LOGGER.debug("Transport error for %s: %s", path, err)
        error_msg = f"Network error: {err}"
        raise HuiHuTongTransportError(error_msg) from err

    _LOGGER.debug("%s %s -> %d", method, path, response.status_code)
    return decode_response(response), response.text


async def async_certificate_login(
    session: httpx.AsyncClient,
    openid: str,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> str:
    """Exchange an OpenID for a satoken.

    Args:
        session: HTTP client session.
        openid: User supplied identity token.
        timeout: Deadline in seconds.

    Returns:
        The session credential.

    Raises:
        HuiHuTongApiClientError: If the exchange fails.

    """
    _LOGGER.debug("Exchanging OpenID for a session credential")
    data, raw_body = await async_request(
        session,
        PATH_CERTIFICATE_LOGIN,
        params={"openId": openid},
        timeout=timeout,
    )
    envelope = validate_envelope(data, raw_body)
    login_data = _require(envelope, "data", dict, raw_body)
    token = login_data.get("token")
    if not isinstance(token, str) or not token:
        raise HuiHuTongDecodeError(raw_body, "Missing 'token' in response")
    return token


async def async_get_qrcode(
    session: httpx.AsyncClient,
    satoken: str,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> str:
    """Fetch the current access code payload."""
    data, raw_body = await async_request(
        session, PATH_MAKE_QRCODE, satoken=satoken, timeout=timeout
    )
    envelope = validate_envelope(data, raw_body)
    payload = _require(envelope, "data", str, raw_body)
    if not payload:
        raise HuiHuTongDecodeError(raw_body, "Empty access code")
    return payload


async def async_get_code_info(
    session: httpx.AsyncClient,
    satoken: str,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> ProfileSummary:
    """Fetch the profile summary shown next to the access code."""
    data, raw_body = await async_request(
        session, PATH_MAKE_CODE_INFO, satoken=satoken, timeout=timeout
    )
    envelope = validate_envelope(data, raw_body)
    return ProfileSummary.from_api(_require(envelope, "data", dict, raw_body))


async def async_get_login_info(
    session: httpx.AsyncClient,
    satoken: str,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> dict[str, Any]:
    """Fetch extended account details.

    Raises:
        HuiHuTongApplicationError: If ``code`` is not 200 or ``data`` is null.

    """
    data, raw_body = await async_request(
        session, PATH_LOGIN_INFO, satoken=satoken, timeout=timeout
    )
    envelope = validate_envelope(data, raw_body)
    if envelope.get("data") is None:
        raise HuiHuTongApplicationError(
            envelope.get("code"), str(envelope.get("message") or "No account data")
        )
    return _require(envelope, "data", dict, raw_body)


async def _async_list(
    session: httpx.AsyncClient,
    path: str,
    satoken: str,
    params: dict[str, Any],
    timeout: float,
) -> list[dict[str, Any]]:
    data, raw_body = await async_request(
        session, path, satoken=satoken, params=params, timeout=timeout
    )
    envelope = validate_envelope(data, raw_body)
    rows = _require(envelope, "result", list, raw_body)
    return [row for row in rows if isinstance(row, dict)]


async def async_list_buildings(
    session: httpx.AsyncClient,
    satoken: str,
    apartment_id: int,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> list[dict[str, Any]]:
    """List the buildings of an apartment."""
    params = {"apartmentId": apartment_id, "buildingId": "", "floorId": "", "roomId": ""}
    return await _async_list(session, PATH_LIST_BUILDING, satoken, params, timeout)


async def async_list_floors(
    session: httpx.AsyncClient,
    satoken: str,
    apartment_id: int,
    building_id: str,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> list[dict[str, Any]]:
    """List the floors of a building."""
    params = {
        "apartmentId": apartment_id,
        "buildingId": building_id,
        "floorId": "",
        "roomId": "",
    }
    return await _async_list(session, PATH_LIST_FLOOR, satoken, params, timeout)


async def async_list_rooms(
    session: httpx.AsyncClient,
    satoken: str,
    apartment_id: int,
    building_id: str,
    floor_id: str,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> list[dict[str, Any]]:
    """List the rooms of a floor."""
    params = {
        "apartmentId": apartment_id,
        "buildingId": building_id,
        "floorId": floor_id,
        "roomId": "",
    }
    return await _async_list(session, PATH_LIST_ROOM, satoken, params, timeout)


async def async_get_room_balance(
    session: httpx.AsyncClient,
    satoken: str,
    apartment_id: int,
    room_id: str,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> str:
    """Query the utility balance of a room, formatted to two decimals."""
    data, raw_body = await async_request(
        session,
        PATH_ROOM_BALANCE,
        satoken=satoken,
        params={"apartmentId": apartment_id, "roomId": room_id},
        timeout=timeout,
    )
    envelope = validate_envelope(data, raw_body)
    if "result" not in envelope:
        raise HuiHuTongDecodeError(raw_body, "Missing 'result' in response")
    return format_balance(envelope["result"])
