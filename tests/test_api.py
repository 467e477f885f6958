"""Tests for the HuiHuTong API client."""

import re

import httpx
import pytest
from pytest_httpx import HTTPXMock

from custom_components.huihutong import api
from custom_components.huihutong.api import (
    HuiHuTongApiClientError,
    HuiHuTongApplicationError,
    HuiHuTongDecodeError,
    HuiHuTongServerError,
    HuiHuTongTimeoutError,
    HuiHuTongTransportError,
)
from custom_components.huihutong.const import BASE_URL, USER_AGENT
from custom_components.huihutong.models import ProfileSummary

QRCODE_URL = f"{BASE_URL}/pms/welcome/make-qrcode"
LOGIN_URL = f"{BASE_URL}/web-app/auth/certificateLogin?openId=OPENID"


@pytest.fixture
async def client() -> httpx.AsyncClient:
    """Create a real async client routed through pytest-httpx."""
    async with httpx.AsyncClient() as session:
        yield session


class TestErrorHierarchy:
    """Tests for the exception classes."""

    def test_all_errors_are_client_errors(self) -> None:
        """Test that every classified error derives from the base error."""
        for error in (
            HuiHuTongTimeoutError("t"),
            HuiHuTongTransportError("t"),
            HuiHuTongServerError(500, "body"),
            HuiHuTongDecodeError("body"),
            HuiHuTongApplicationError(500, "msg"),
        ):
            assert isinstance(error, HuiHuTongApiClientError)

    def test_server_error_keeps_status_and_body(self) -> None:
        """Test that ServerError keeps the raw body verbatim."""
        error = HuiHuTongServerError(500, "internal error xyz")
        assert error.status == 500
        assert error.raw_body == "internal error xyz"
        assert "internal error xyz" in str(error)

    def test_decode_error_keeps_body(self) -> None:
        """Test that DecodeError keeps the raw body."""
        error = HuiHuTongDecodeError('{"msg": "nope"}')
        assert error.raw_body == '{"msg": "nope"}'
        assert '{"msg": "nope"}' in str(error)


class TestCreateHeaders:
    """Tests for create_headers function."""

    def test_create_headers_without_satoken(self) -> None:
        """Test that base headers carry no satoken."""
        headers = api.create_headers()
        assert headers["user-agent"] == USER_AGENT
        assert "satoken" not in headers

    def test_create_headers_with_satoken(self) -> None:
        """Test that the satoken is sent as its own header."""
        assert api.create_headers("T1")["satoken"] == "T1"


class TestIsAuthFailure:
    """Tests for is_auth_failure classification."""

    def test_http_401_is_auth_failure(self) -> None:
        """Test that HTTP 401 routes to re-authentication."""
        assert api.is_auth_failure(HuiHuTongServerError(401, "")) is True

    def test_envelope_401_is_auth_failure(self) -> None:
        """Test that an envelope code of 401 routes to re-authentication."""
        assert api.is_auth_failure(HuiHuTongApplicationError(401, "token无效")) is True

    def test_other_errors_are_not_auth_failures(self) -> None:
        """Test that other statuses and error text do not count."""
        assert api.is_auth_failure(HuiHuTongServerError(500, "token 401")) is False
        assert api.is_auth_failure(HuiHuTongApplicationError(500, "token")) is False
        assert api.is_auth_failure(HuiHuTongDecodeError("401")) is False
        assert api.is_auth_failure(HuiHuTongTimeoutError("token")) is False


class TestValidateEnvelope:
    """Tests for validate_envelope function."""

    def test_plain_data_object_passes(self) -> None:
        """Test that a body without code/success passes."""
        data = {"data": "x"}
        assert api.validate_envelope(data, "") is data

    def test_success_code_passes(self) -> None:
        """Test that code 200 passes."""
        data = {"code": 200, "success": True, "data": {}}
        assert api.validate_envelope(data, "") is data

    def test_error_code_raises_application_error(self) -> None:
        """Test that a non-200 code raises with the message verbatim."""
        with pytest.raises(HuiHuTongApplicationError, match="未登录") as exc_info:
            api.validate_envelope({"code": 401, "message": "未登录"}, "")
        assert exc_info.value.code == 401

    def test_success_false_raises_application_error(self) -> None:
        """Test that success=false raises."""
        with pytest.raises(HuiHuTongApplicationError, match="failed"):
            api.validate_envelope({"success": False, "message": "failed"}, "")

    def test_non_object_raises_decode_error(self) -> None:
        """Test that a JSON list is a shape mismatch."""
        with pytest.raises(HuiHuTongDecodeError):
            api.validate_envelope([1, 2], "[1, 2]")


class TestFormatBalance:
    """Tests for format_balance function."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(12.5, "12.50"), (12, "12.00"), ("7.456", "7.46"), (0, "0.00"), (-3.1, "-3.10")],
    )
    def test_two_decimal_digits(self, value: object, expected: str) -> None:
        """Test that balances always have exactly two decimals."""
        assert api.format_balance(value) == expected

    @pytest.mark.parametrize(
        "value", ["abc", None, True, {}, "nan", "1e400", float("inf"), float("-inf")]
    )
    def test_non_numeric_raises_decode_error(self, value: object) -> None:
        """Test that non-numeric balances are not silently accepted."""
        with pytest.raises(HuiHuTongDecodeError):
            api.format_balance(value)


class TestAsyncRequest:
    """Tests for request classification."""

    @pytest.mark.asyncio
    async def test_server_error_keeps_raw_body(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that a 500 response raises ServerError with the body."""
        httpx_mock.add_response(url=QRCODE_URL, status_code=500, text="internal error xyz")
        with pytest.raises(HuiHuTongServerError) as exc_info:
            await api.async_request(client, "/pms/welcome/make-qrcode")
        assert exc_info.value.status == 500
        assert exc_info.value.raw_body == "internal error xyz"

    @pytest.mark.asyncio
    async def test_invalid_json_raises_decode_error(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that a non-JSON body raises DecodeError with the body."""
        httpx_mock.add_response(url=QRCODE_URL, text="<html>gateway</html>")
        with pytest.raises(HuiHuTongDecodeError) as exc_info:
            await api.async_request(client, "/pms/welcome/make-qrcode")
        assert exc_info.value.raw_body == "<html>gateway</html>"

    @pytest.mark.asyncio
    async def test_timeout_is_classified(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that httpx timeouts become TimeoutError."""
        httpx_mock.add_exception(httpx.ReadTimeout("timed out"), url=QRCODE_URL)
        with pytest.raises(HuiHuTongTimeoutError):
            await api.async_request(client, "/pms/welcome/make-qrcode")

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_error(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that connection failures become TransportError."""
        httpx_mock.add_exception(httpx.ConnectError("refused"), url=QRCODE_URL)
        with pytest.raises(HuiHuTongTransportError):
            await api.async_request(client, "/pms/welcome/make-qrcode")

    @pytest.mark.asyncio
    async def test_corrupt_compressed_body_is_decode_error(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that a body that fails to decompress is classified."""
        httpx_mock.add_response(
            url=QRCODE_URL,
            headers={"content-encoding": "gzip"},
            content=b"not gzip at all",
        )
        with pytest.raises(HuiHuTongDecodeError):
            await api.async_get_qrcode(client, "T1")

    @pytest.mark.asyncio
    async def test_other_request_errors_are_transport_errors(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that every httpx request error is classified."""
        httpx_mock.add_exception(httpx.TooManyRedirects("loop"), url=QRCODE_URL)
        with pytest.raises(HuiHuTongTransportError):
            await api.async_request(client, "/pms/welcome/make-qrcode")


class TestEndpoints:
    """Tests for the endpoint functions."""

    @pytest.mark.asyncio
    async def test_certificate_login_returns_token(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test the OpenID exchange."""
        httpx_mock.add_response(url=LOGIN_URL, json={"data": {"token": "T1"}})
        assert await api.async_certificate_login(client, "OPENID") == "T1"
        request = httpx_mock.get_request()
        assert "satoken" not in request.headers

    @pytest.mark.asyncio
    async def test_certificate_login_missing_token_raises(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that a different shape surfaces as DecodeError."""
        httpx_mock.add_response(url=LOGIN_URL, json={"data": None, "msg": "bad"})
        with pytest.raises(HuiHuTongDecodeError, match="bad"):
            await api.async_certificate_login(client, "OPENID")

    @pytest.mark.asyncio
    async def test_get_qrcode_sends_satoken(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that the artifact request carries the satoken header."""
        httpx_mock.add_response(
            url=QRCODE_URL, match_headers={"satoken": "T1"}, json={"data": "PAYLOAD1"}
        )
        assert await api.async_get_qrcode(client, "T1") == "PAYLOAD1"

    @pytest.mark.asyncio
    async def test_get_qrcode_auth_envelope_raises_auth_failure(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that an expired session envelope is classified as auth failure."""
        httpx_mock.add_response(
            url=QRCODE_URL, json={"code": 401, "message": "token无效", "data": None}
        )
        with pytest.raises(HuiHuTongApplicationError) as exc_info:
            await api.async_get_qrcode(client, "T1")
        assert api.is_auth_failure(exc_info.value)

    @pytest.mark.asyncio
    async def test_get_qrcode_error_envelope_is_not_empty_success(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that a missing payload is surfaced rather than swallowed."""
        httpx_mock.add_response(url=QRCODE_URL, json={"error": "unexpected"})
        with pytest.raises(HuiHuTongDecodeError, match="unexpected"):
            await api.async_get_qrcode(client, "T1")

    @pytest.mark.asyncio
    async def test_get_code_info_returns_profile(
        self,
        client: httpx.AsyncClient,
        httpx_mock: HTTPXMock,
        sample_code_info_response: dict,
    ) -> None:
        """Test that the profile summary is parsed and cleaned."""
        httpx_mock.add_response(
            url=f"{BASE_URL}/pms/welcome/make-code-info", json=sample_code_info_response
        )
        profile = await api.async_get_code_info(client, "T1")
        assert isinstance(profile, ProfileSummary)
        assert profile.name == "张三"
        assert profile.apartment == "文星学生公寓1栋3层301"
        assert profile.company_name == "某某大学"

    @pytest.mark.asyncio
    async def test_get_login_info_null_data_is_application_error(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that code 200 with null data is still a failure."""
        httpx_mock.add_response(
            url=f"{BASE_URL}/pms/welcome/login-info",
            json={"success": True, "message": "无数据", "code": 200, "data": None},
        )
        with pytest.raises(HuiHuTongApplicationError, match="无数据"):
            await api.async_get_login_info(client, "T1")

    @pytest.mark.asyncio
    async def test_list_buildings_returns_rows(
        self,
        client: httpx.AsyncClient,
        httpx_mock: HTTPXMock,
        sample_building_rows: list[dict],
    ) -> None:
        """Test the building listing and its query parameters."""
        httpx_mock.add_response(
            url=re.compile(rf"{re.escape(BASE_URL)}/proxy/qy/sdcz/listBuilding\?.*"),
            json={"success": True, "code": 200, "result": sample_building_rows},
        )
        rows = await api.async_list_buildings(client, "T1", 1)
        assert rows == sample_building_rows
        request = httpx_mock.get_request()
        assert request.url.params["apartmentId"] == "1"
        assert request.url.params["buildingId"] == ""

    @pytest.mark.asyncio
    async def test_get_room_balance_formats_result(
        self, client: httpx.AsyncClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test that the numeric balance is formatted to two decimals."""
        httpx_mock.add_response(
            url=re.compile(rf"{re.escape(BASE_URL)}/proxy/qy/sdcz/getRoomBalance\?.*"),
            json={"success": True, "code": 200, "result": 12.5, "data": None},
        )
        assert await api.async_get_room_balance(client, "T1", 1, "r1") == "12.50"
