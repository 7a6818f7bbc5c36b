"""FastMCP server exposing the story store as MCP tools.

Tools (underscore names, MCP clients dislike dots):
  - installments_list(limit)
  - characters_list(name, limit) / characters_get(id, name)
  - characters_create(character) / characters_update(character)
  - places_list(name, limit) / places_get(id, name)
  - places_create(place) / places_update(place)

Every tool delegates to the same routers the HTTP RPC endpoint serves, so
validation and duplicate handling are identical.

Usage:
    uv run python -m backend.mcp_server
"""

import os
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from backend.storage import Storage
from backend.tools import build_routers
from backend.tools.store_write import (
    CharacterCreateArgs,
    CharacterUpdateArgs,
    PlaceCreateArgs,
    PlaceUpdateArgs,
)


def create_mcp_server(storage: Storage) -> FastMCP:
    routers = build_routers(storage)
    read = routers["store-read"]
    write = routers["store-write"]

    mcp = FastMCP("fantasy-diary-store")

    @mcp.tool()
    async def installments_list(limit: int = 10) -> dict:
        """List recent installments, newest first."""
        return await read.call("installments.list", {"limit": limit})

    @mcp.tool()
    async def characters_list(name: str | None = None, limit: int = 50) -> dict:
        """List known characters, optionally filtered by name."""
        return await read.call("characters.list", {"name": name, "limit": limit})

    @mcp.tool()
    async def characters_get(id: str | None = None, name: str | None = None) -> dict:
        """Fetch one character by id or exact name."""
        return await read.call("characters.get", {"id": id, "name": name})

    @mcp.tool()
    async def characters_create(character: CharacterCreateArgs) -> dict:
        """Register a new character. Fails if the name already exists."""
        return await write.call("characters.create", character.model_dump(exclude_none=True))

    @mcp.tool()
    async def characters_update(character: CharacterUpdateArgs) -> dict:
        """Update a character found by id or exact name. Returns the merged record."""
        return await write.call("characters.update", character.model_dump(exclude_none=True))

    @mcp.tool()
    async def places_list(name: str | None = None, limit: int = 50) -> dict:
        """List known places, optionally filtered by name."""
        return await read.call("places.list", {"name": name, "limit": limit})

    @mcp.tool()
    async def places_get(id: str | None = None, name: str | None = None) -> dict:
        """Fetch one place by id or exact name."""
        return await read.call("places.get", {"id": id, "name": name})

    @mcp.tool()
    async def places_create(place: PlaceCreateArgs) -> dict:
        """Register a new place. Fails if the name already exists."""
        return await write.call("places.create", place.model_dump(exclude_none=True))

    @mcp.tool()
    async def places_update(place: PlaceUpdateArgs) -> dict:
        """Update a place found by id or exact name. Returns the merged record."""
        return await write.call("places.update", place.model_dump(exclude_none=True))

    return mcp


if __name__ == "__main__":
    data_dir = Path(os.getenv("DATA_DIR", Path(__file__).parent.parent / "data"))
    create_mcp_server(Storage(data_dir)).run()
