"""Tests for error handling middleware."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from remex_mcp.middleware.errors import ErrorHandlingMiddleware


@pytest.fixture
def error_middleware() -> ErrorHandlingMiddleware:
    return ErrorHandlingMiddleware()


@pytest.fixture
def mock_context() -> MagicMock:
    context = MagicMock()
    context.method = "tools/call"
    context.message = MagicMock()
    context.message.name = "connect"
    return context


@pytest.mark.asyncio
async def test_error_middleware_passes_through_success(
    error_middleware: ErrorHandlingMiddleware,
    mock_context: MagicMock,
) -> None:
    call_next = AsyncMock(return_value={"success": True})

    result = await error_middleware.on_message(mock_context, call_next)

    assert result == {"success": True}
    assert error_middleware.get_error_stats() == {}


@pytest.mark.asyncio
async def test_error_middleware_logs_with_traceback(mock_context: MagicMock) -> None:
    mock_logger = MagicMock()
    middleware = ErrorHandlingMiddleware(logger=mock_logger, include_traceback=True)
    call_next = AsyncMock(side_effect=ValueError("bad port"))

    with pytest.raises(ValueError, match="bad port"):
        await middleware.on_message(mock_context, call_next)

    args, kwargs = mock_logger.error.call_args
    assert args[1:3] == ("tools/call", "ValueError")
    assert kwargs["exc_info"] is True


@pytest.mark.asyncio
async def test_error_middleware_counts_by_type(
    error_middleware: ErrorHandlingMiddleware,
    mock_context: MagicMock,
) -> None:
    for error in (ValueError("a"), ValueError("b"), KeyError("c")):
        with pytest.raises((ValueError, KeyError)):
            await error_middleware.on_message(mock_context, AsyncMock(side_effect=error))

    assert error_middleware.get_error_stats() == {"ValueError": 2, "KeyError": 1}

    error_middleware.reset_stats()
    assert error_middleware.get_error_stats() == {}


@pytest.mark.asyncio
async def test_error_middleware_calls_callback(mock_context: MagicMock) -> None:
    callback = MagicMock()
    middleware = ErrorHandlingMiddleware(error_callback=callback)
    error = RuntimeError("callback test")

    with pytest.raises(RuntimeError):
        await middleware.on_message(mock_context, AsyncMock(side_effect=error))

    callback.assert_called_once_with(error, mock_context)


@pytest.mark.asyncio
async def test_error_middleware_survives_failing_callback(mock_context: MagicMock) -> None:
    """A broken callback does not replace the original error."""
    mock_logger = MagicMock()
    middleware = ErrorHandlingMiddleware(
        logger=mock_logger,
        error_callback=MagicMock(side_effect=OSError("sink down")),
    )

    with pytest.raises(RuntimeError, match="original"):
        await middleware.on_message(mock_context, AsyncMock(side_effect=RuntimeError("original")))

    mock_logger.warning.assert_called_once()
