import pytest

from backend.storage import Storage
from backend.tools import build_routers
from fantasy_diary.tool_client import LocalTransport, ToolClient


@pytest.fixture
def storage(tmp_path) -> Storage:
    """A fresh store per test under pytest's tmp_path."""
    return Storage(tmp_path / "data")


@pytest.fixture
def routers(storage):
    return build_routers(storage)


@pytest.fixture
def tool_client(routers) -> ToolClient:
    """ToolClient wired straight to the in-process routers."""
    return ToolClient(LocalTransport(routers))
