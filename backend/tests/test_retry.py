import pytest

from groupcall.services.group_call import (
    CallInternalError,
    CallNotFoundError,
    WriteConflictError,
)
from groupcall.services.group_call.retry import retry_on_conflict


@pytest.mark.asyncio
async def test_returns_after_transient_conflicts():
    calls = []

    async def operation():
        calls.append(1)
        if len(calls) < 3:
            raise WriteConflictError("version moved")
        return "saved"

    result = await retry_on_conflict(operation, description="save", max_attempts=3, backoff_sec=0)
    assert result == "saved"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_gives_up_with_internal_error():
    calls = []

    async def operation():
        calls.append(1)
        raise WriteConflictError("version moved")

    with pytest.raises(CallInternalError) as exc_info:
        await retry_on_conflict(operation, description="leave group call c1", max_attempts=3, backoff_sec=0)

    assert len(calls) == 3
    assert isinstance(exc_info.value.__cause__, WriteConflictError)
    assert "leave group call c1" in str(exc_info.value)


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    calls = []

    async def operation():
        calls.append(1)
        raise CallNotFoundError("gone")

    with pytest.raises(CallNotFoundError):
        await retry_on_conflict(operation, description="join", max_attempts=3, backoff_sec=0)
    assert len(calls) == 1
