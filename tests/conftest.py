"""Pytest configuration and fixtures for HuiHuTong tests."""

from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from custom_components.huihutong.credential import CredentialManager
from custom_components.huihutong.session_store import SessionStore

TEST_OPENID = "oTestOpenId0123456789"
TEST_SATOKEN = "T1"


@pytest.fixture
def mock_session() -> Mock:
    """Create a mock HTTP session."""
    return Mock(spec=httpx.AsyncClient)


@pytest.fixture
def store_backend() -> Mock:
    """Create an empty storage backend with the Home Assistant Store interface."""
    backend = Mock()
    backend.async_load = AsyncMock(return_value=None)
    backend.async_save = AsyncMock()
    return backend


@pytest.fixture
async def store(store_backend: Mock) -> SessionStore:
    """Fixture providing a loaded session store with an OpenID set."""
    session_store = SessionStore(store_backend)
    await session_store.async_load()
    await session_store.async_set_identity_token(TEST_OPENID)
    return session_store


@pytest.fixture
def credentials(mock_session: Mock, store: SessionStore) -> CredentialManager:
    """Fixture providing a credential manager over the loaded store."""
    return CredentialManager(mock_session, store)


@pytest.fixture
def sample_login_response() -> dict:
    """Fixture providing a certificateLogin response."""
    return {"data": {"token": TEST_SATOKEN}}


@pytest.fixture
def sample_qrcode_response() -> dict:
    """Fixture providing a make-qrcode response."""
    return {"data": "PAYLOAD1"}


@pytest.fixture
def sample_code_info_response() -> dict:
    """Fixture providing a make-code-info response."""
    return {
        "success": True,
        "message": "操作成功",
        "code": 200,
        "data": {
            "name": "张三",
            "apartment": " 文星学生公寓 ,1栋 ,3层 ,301",
            "passTime": "2024-09-01 至 2025-07-01",
            "companyName": "某某大学",
            "qrCodeStatus": 1,
        },
        "timestamp": 1700000000000,
        "requestId": "req-1",
    }


@pytest.fixture
def sample_building_rows() -> list[dict]:
    """Fixture providing directory rows with a duplicated building."""
    return [
        {
            "roomId": "r1",
            "roomName": "301",
            "apartmentName": "文星学生公寓",
            "floorName": "3层",
            "apartmentId": "1",
            "buildingId": "b1",
            "buildingName": "1栋",
            "floorId": "f3",
        },
        {
            "roomId": "r2",
            "roomName": "302",
            "apartmentName": "文星学生公寓",
            "floorName": "3层",
            "apartmentId": "1",
            "buildingId": "b1",
            "buildingName": "1栋",
            "floorId": "f3",
        },
        {
            "roomId": "r3",
            "roomName": "101",
            "apartmentName": "文星学生公寓",
            "floorName": "1层",
            "apartmentId": "1",
            "buildingId": "b2",
            "buildingName": "2栋",
            "floorId": "f1",
        },
    ]
