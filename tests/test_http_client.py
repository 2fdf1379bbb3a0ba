import pytest

from core.http_client import close_client, get_client


@pytest.mark.asyncio
async def test_client_is_shared_within_a_loop():
    first = get_client()
    second = get_client()

    assert first is second
    await close_client()
    assert first.is_closed


@pytest.mark.asyncio
async def test_closed_client_is_recreated():
    first = get_client()
    await first.aclose()

    second = get_client()

    assert second is not first
    assert not second.is_closed
    await close_client()
