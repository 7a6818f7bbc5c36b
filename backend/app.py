import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend.routes import router
from backend.storage import Storage
from backend.tools import build_routers
from fantasy_diary.tool_client import LocalTransport, ToolClient

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(data_dir: Path | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage = Storage(resolved)
    routers = build_routers(storage)

    app = FastAPI(title="Fantasy Diary")
    app.state.storage = storage
    app.state.routers = routers
    app.state.tools = ToolClient(LocalTransport(routers))
    app.state.running = set()
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
