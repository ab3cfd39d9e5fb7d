import asyncio
from unittest.mock import AsyncMock, call, patch

import pytest

from digestarr.providers.base import DecodeError, NotConfiguredError, UpstreamError
from digestarr.services.retry import retry_with_backoff


@pytest.mark.asyncio
async def test_retries_until_success_with_linear_backoff():
    """Fail, fail, succeed with three attempts sleeps 1s then 2s."""
    operation = AsyncMock(
        side_effect=[UpstreamError("boom"), UpstreamError("boom again"), ["ok"]]
    )

    with patch("digestarr.services.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        result = await retry_with_backoff(operation, "sonarr_history", max_retries=3)

    assert result == ["ok"]
    assert operation.await_count == 3
    assert sleep.await_args_list == [call(1.0), call(2.0)]


@pytest.mark.asyncio
async def test_last_error_is_raised_when_attempts_run_out():
    operation = AsyncMock(side_effect=UpstreamError("down", status_code=503))

    with patch("digestarr.services.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        with pytest.raises(UpstreamError) as exc_info:
            await retry_with_backoff(operation, "radarr_calendar", max_retries=3)

    assert exc_info.value.status_code == 503
    assert operation.await_count == 3
    assert sleep.await_count == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        NotConfiguredError("Sonarr not configured"),
        DecodeError("bad json"),
        TimeoutError(),
    ],
)
async def test_non_retryable_errors_fail_immediately(error):
    operation = AsyncMock(side_effect=error)

    with patch("digestarr.services.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        with pytest.raises(type(error)):
            await retry_with_backoff(operation, "trakt", max_retries=3)

    assert operation.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancellation_interrupts_backoff_sleep():
    operation = AsyncMock(side_effect=UpstreamError("boom"))

    task = asyncio.create_task(
        retry_with_backoff(operation, "sonarr_history", max_retries=3, base_delay=10)
    )
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert operation.await_count == 1
