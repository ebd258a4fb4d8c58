# tests/services/test_refresh.py
"""Tests for the single-retry refresh helper."""

from unittest.mock import AsyncMock

from openmkt_relay.services.refresh import call_with_refresh


def _is_denied(result: str) -> bool:
    return result == "denied"


async def test_returns_first_result_without_refreshing() -> None:
    call = AsyncMock(return_value="ok")
    refresh = AsyncMock(return_value="fresh")

    result = await call_with_refresh(call, "stale", refresh=refresh, is_auth_failure=_is_denied)

    assert result == "ok"
    call.assert_awaited_once_with("stale")
    refresh.assert_not_awaited()


async def test_refreshes_and_retries_exactly_once() -> None:
    call = AsyncMock(side_effect=["denied", "denied"])
    refresh = AsyncMock(return_value="fresh")

    result = await call_with_refresh(call, "stale", refresh=refresh, is_auth_failure=_is_denied)

    assert result == "denied"
    assert call.await_count == 2
    assert call.await_args_list[1].args == ("fresh",)
    refresh.assert_awaited_once()


async def test_keeps_first_result_when_refresh_yields_nothing() -> None:
    call = AsyncMock(return_value="denied")
    refresh = AsyncMock(return_value=None)

    result = await call_with_refresh(call, "stale", refresh=refresh, is_auth_failure=_is_denied)

    assert result == "denied"
    call.assert_awaited_once()


async def test_without_refresh_function_returns_failure() -> None:
    call = AsyncMock(return_value="denied")

    assert await call_with_refresh(call, "x", refresh=None, is_auth_failure=_is_denied) == "denied"
