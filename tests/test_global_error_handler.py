"""
Tests for global error handler in main.py.
"""
import json
import pytest
from unittest.mock import patch, MagicMock

from fastapi import Request
from fastapi.responses import JSONResponse
from main import global_exception_handler


def _request(method="GET", url="http://test.com/test"):
    request = MagicMock(spec=Request)
    request.method = method
    request.url = url
    return request


@pytest.mark.asyncio
async def test_global_exception_handler_returns_safe_message():
    """Internal error text (which may hold keys or emails) never reaches the client."""
    exc = ValueError("apikey=service-secret leaked for jane@example.com")

    response = await global_exception_handler(_request(), exc)

    assert isinstance(response, JSONResponse)
    assert response.status_code == 500
    body = json.loads(response.body.decode())
    assert body == {"detail": "Internal Server Error"}
    assert "service-secret" not in response.body.decode()


@pytest.mark.asyncio
async def test_global_exception_handler_logs_full_traceback():
    with patch("main.logger") as mock_logger:
        await global_exception_handler(_request("POST", "http://test.com/api/admin/auth-accounts/sync"), RuntimeError("x"))

        mock_logger.exception.assert_called_once()
        call_args = mock_logger.exception.call_args
        assert call_args[1].get("exc_info") is True
        assert "POST" in str(call_args[0])
        assert "/api/admin/auth-accounts/sync" in str(call_args[0])


@pytest.mark.asyncio
async def test_global_exception_handler_different_exception_types():
    for exc in [ValueError("t"), RuntimeError("t"), KeyError("t"), Exception("t")]:
        response = await global_exception_handler(_request(), exc)
        assert response.status_code == 500
        assert json.loads(response.body.decode())["detail"] == "Internal Server Error"
