"""Tests for the HuiHuTong directory and balance service."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from custom_components.huihutong import api
from custom_components.huihutong.credential import CredentialManager
from custom_components.huihutong.directory import (
    DirectoryAndBalanceService,
    dedupe_nodes,
)
from custom_components.huihutong.models import DirectoryLevel, DirectoryNode
from custom_components.huihutong.session_store import SessionStore

from .conftest import TEST_OPENID


@pytest.fixture
async def directory(
    mock_session: Mock, store: SessionStore, credentials: CredentialManager
) -> DirectoryAndBalanceService:
    """Fixture providing a directory service with a cached satoken."""
    await store.async_set_session_credential("T0", owner=TEST_OPENID)
    return DirectoryAndBalanceService(mock_session, store, credentials)


def _node(level: DirectoryLevel, node_id: str, name: str) -> DirectoryNode:
    return DirectoryNode(level, node_id, name, apartment_id="1", building_id="b1")


class TestDedupeNodes:
    """Tests for dedupe_nodes function."""

    def test_keeps_first_occurrence_in_order(self) -> None:
        """Test that duplicate ids are dropped and order kept."""
        nodes = [
            _node(DirectoryLevel.BUILDING, "b2", "2栋"),
            _node(DirectoryLevel.BUILDING, "b1", "1栋"),
            _node(DirectoryLevel.BUILDING, "b2", "2栋 (dup)"),
        ]
        assert [node.name for node in dedupe_nodes(nodes)] == ["2栋", "1栋"]

    def test_drops_nodes_without_id(self) -> None:
        """Test that rows with an empty id are skipped."""
        assert dedupe_nodes([_node(DirectoryLevel.FLOOR, "", "?")]) == []


class TestListing:
    """Tests for the cascading listings."""

    @pytest.mark.asyncio
    async def test_list_buildings_dedupes_rows(
        self,
        directory: DirectoryAndBalanceService,
        sample_building_rows: list[dict],
    ) -> None:
        """Test that building rows collapse into unique nodes."""
        with patch.object(
            api, "async_list_buildings", AsyncMock(return_value=sample_building_rows)
        ) as mock_list:
            nodes = await directory.async_list_buildings(1)

        assert [(node.id, node.name) for node in nodes] == [("b1", "1栋"), ("b2", "2栋")]
        assert mock_list.await_args.args[1:] == ("T0", 1)

    @pytest.mark.asyncio
    async def test_list_floors_and_rooms(
        self,
        directory: DirectoryAndBalanceService,
        sample_building_rows: list[dict],
    ) -> None:
        """Test the floor and room levels of the cascade."""
        with (
            patch.object(
                api, "async_list_floors", AsyncMock(return_value=sample_building_rows)
            ),
            patch.object(
                api, "async_list_rooms", AsyncMock(return_value=sample_building_rows)
            ),
        ):
            floors = await directory.async_list_floors(1, "b1")
            rooms = await directory.async_list_rooms(1, "b1", "f3")

        assert [node.id for node in floors] == ["f3", "f1"]
        assert [node.id for node in rooms] == ["r1", "r2", "r3"]
        assert rooms[0].floor_id == "f3"
        assert rooms[0].level is DirectoryLevel.ROOM

    @pytest.mark.asyncio
    async def test_errors_are_raised_to_caller(
        self, directory: DirectoryAndBalanceService
    ) -> None:
        """Test that classified errors propagate without retry."""
        with patch.object(
            api,
            "async_list_buildings",
            AsyncMock(side_effect=api.HuiHuTongTimeoutError("slow")),
        ) as mock_list:
            with pytest.raises(api.HuiHuTongTimeoutError):
                await directory.async_list_buildings(1)
        mock_list.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejected_session_is_repaired_once(
        self,
        directory: DirectoryAndBalanceService,
        store: SessionStore,
        sample_building_rows: list[dict],
    ) -> None:
        """Test that directory calls share the session-repair helper."""
        with (
            patch.object(
                api, "async_certificate_login", AsyncMock(return_value="T1")
            ) as mock_login,
            patch.object(
                api,
                "async_list_buildings",
                AsyncMock(
                    side_effect=[
                        api.HuiHuTongApplicationError(401, "token无效"),
                        sample_building_rows,
                    ]
                ),
            ),
        ):
            nodes = await directory.async_list_buildings(1)

        mock_login.assert_awaited_once()
        assert len(nodes) == 2
        assert store.record.satoken == "T1"


class TestBalance:
    """Tests for balance queries."""

    @pytest.mark.asyncio
    async def test_query_balance(self, directory: DirectoryAndBalanceService) -> None:
        """Test that the formatted balance is returned."""
        with patch.object(
            api, "async_get_room_balance", AsyncMock(return_value="12.50")
        ) as mock_balance:
            assert await directory.async_query_balance(1, "r1") == "12.50"
        assert mock_balance.await_args.args[1:] == ("T0", 1, "r1")

    @pytest.mark.asyncio
    async def test_selected_balance_without_room_is_none(
        self, directory: DirectoryAndBalanceService
    ) -> None:
        """Test that no request is made before a room is selected."""
        with patch.object(api, "async_get_room_balance", AsyncMock()) as mock_balance:
            assert await directory.async_query_selected_balance() is None
        mock_balance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_selected_balance_uses_selection(
        self, directory: DirectoryAndBalanceService
    ) -> None:
        """Test that the persisted selection drives the balance query."""
        await directory.async_select_apartment(2)
        await directory.async_select_building(_node(DirectoryLevel.BUILDING, "b1", "1栋"))
        await directory.async_select_floor(_node(DirectoryLevel.FLOOR, "f3", "3层"))
        await directory.async_select_room(_node(DirectoryLevel.ROOM, "r1", "301"))

        with patch.object(
            api, "async_get_room_balance", AsyncMock(return_value="3.00")
        ) as mock_balance:
            assert await directory.async_query_selected_balance() == "3.00"
        assert mock_balance.await_args.args[1:] == ("T0", 2, "r1")


class TestSelection:
    """Tests for selection delegation."""

    @pytest.mark.asyncio
    async def test_selecting_building_clears_deeper_levels(
        self, directory: DirectoryAndBalanceService
    ) -> None:
        """Test that a new building clears floor and room."""
        await directory.async_select_apartment(1)
        await directory.async_select_building(_node(DirectoryLevel.BUILDING, "b1", "1栋"))
        await directory.async_select_floor(_node(DirectoryLevel.FLOOR, "f3", "3层"))
        await directory.async_select_room(_node(DirectoryLevel.ROOM, "r1", "301"))

        await directory.async_select_building(_node(DirectoryLevel.BUILDING, "b2", "2栋"))

        selection = directory.selection
        assert selection.building_name == "2栋"
        assert selection.floor_id == ""
        assert selection.room_id == ""
        assert not selection.complete


class TestLoginInfo:
    """Tests for the extended account details."""

    @pytest.mark.asyncio
    async def test_login_info_is_cached(
        self, directory: DirectoryAndBalanceService, store: SessionStore
    ) -> None:
        """Test that fetched login info is persisted."""
        info = {"name": "张三", "phone": "138****0000"}
        with patch.object(api, "async_get_login_info", AsyncMock(return_value=info)):
            assert await directory.async_get_login_info() == info
        assert store.record.login_info_json == info
