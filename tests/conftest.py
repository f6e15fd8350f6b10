from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from aresky import AbortController, HttpxFetch
from tests.helpers import RecordingHandler, echo

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture
def mock_asleep() -> Generator[Mock, None, None]:
    """Patch asyncio.sleep to make tests run faster."""
    with patch("asyncio.sleep", return_value=None) as mock:
        yield mock


@pytest.fixture
def mock_async_client() -> httpx.AsyncClient:
    """Create a mock httpx.AsyncClient for testing."""
    return Mock(spec=httpx.AsyncClient, send=AsyncMock(), aclose=AsyncMock())


@pytest.fixture
def echo_handler() -> RecordingHandler:
    """Create a handler echoing every request as JSON."""
    return RecordingHandler(echo)


@pytest.fixture
def echo_fetch(echo_handler: RecordingHandler) -> HttpxFetch:
    """Create a transport sending the requests to the echo handler."""
    return HttpxFetch(transport=httpx.MockTransport(echo_handler))


@pytest.fixture
def abort_controller() -> AbortController:
    return AbortController()


@pytest.fixture
def mock_callback() -> Mock:
    """Create a mock callback function for testing hooks and progress
    callbacks."""
    return Mock(return_value=None)
