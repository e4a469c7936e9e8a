"""
Pytest configuration and fixtures for TransferFlow tests.
"""

import sys
import tempfile
from pathlib import Path
from typing import Any, Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from transferflow.core.errors import TransportFailure  # noqa: E402
from transferflow.core.transport import Transport  # noqa: E402


class FakeTransport(Transport):
    """Scripted transport: each route answers from a queue of responses.

    The last queued response repeats. Exceptions in the queue are raised.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, Any, Any]] = []
        self._routes: dict[tuple[str, str], list[Any]] = {}

    def on(self, method: str, path: str, *responses: Any) -> "FakeTransport":
        self._routes[(method, path)] = list(responses)
        return self

    def request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        self.calls.append((method, path, payload, params))
        queue = self._routes.get((method, path))
        if not queue:
            raise TransportFailure(f"{method} {path}", "no route")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        return response

    def count(self, method: str, path: str) -> int:
        return sum(1 for m, p, _, _ in self.calls if m == method and p == path)

    def payloads(self, method: str, path: str) -> list[Any]:
        return [body for m, p, body, _ in self.calls if m == method and p == path]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir: Path) -> "TransferFlowConfig":
    """Create a sample configuration for testing."""
    from transferflow.core.config import TransferFlowConfig

    config = TransferFlowConfig.model_validate(
        {
            "logging": {
                "console_enabled": False,
                "file_enabled": False,
                "log_directory": str(temp_dir / "logs"),
            },
            "api": {
                "base_url": "http://backend.test/api",
                "callback_base_url": "http://client.test",
            },
            "polling": {"interval_ms": 0, "max_attempts": 20},
            "storage": {"state_directory": str(temp_dir / "state")},
        }
    )
    config.ensure_directories()
    return config


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def memory_store() -> "MemoryStateStore":
    from transferflow.core.store import MemoryStateStore

    return MemoryStateStore()


@pytest.fixture
def router() -> "LoggingRouter":
    from transferflow.core.navigation import LoggingRouter

    return LoggingRouter()


@pytest.fixture(scope="session")
def worker_key() -> Any:
    """RSA key pair standing in for a transfer worker's key."""
    from jwcrypto import jwk

    return jwk.JWK.generate(kty="RSA", size=2048)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
