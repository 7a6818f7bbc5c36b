"""JSON file helpers and storage errors."""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


class DuplicateEntityError(ValueError):
    """Create was refused because the id or name is already taken."""


class EntityNotFoundError(LookupError):
    """No record matches the given id or name."""


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def read_json(path: Path, default: Any) -> Any:
    """Load a JSON file. Returns `default` if missing."""
    if not path.is_file():
        return default
    return json.loads(path.read_text())


def write_json(path: Path, data: Any) -> None:
    """Write JSON through a temp file so readers never see half a file."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False))
    os.replace(tmp, path)
