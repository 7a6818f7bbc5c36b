"""File-based JSON storage — the canonical story record.

Data layout:
  data/
    characters.json     Character records (unique id, unique name)
    places.json         Place records (unique id, unique name)
    installments.json   Installment records (id = YYYYMMDDHHmm)
    config.json         App settings (provider, run limits, templates)

A Storage instance is created per data directory and handed to whatever
needs it (tool services, routes, the MCP server); there is no module-level
storage state.

Config: get_config() returns defaults merged with stored values.
update_config() applies partial updates — phase_templates merged per phase,
scalars overwritten.
"""

from pathlib import Path
from typing import Any

from fantasy_diary.models import Character, Installment, Place

from .config import get_config as _get_config
from .config import update_config as _update_config
from .core import (  # noqa: F401
    DuplicateEntityError,
    EntityNotFoundError,
    now_iso,
    read_json,
    write_json,
)
from .records import RecordTable  # noqa: F401


class Storage:
    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.characters: RecordTable[Character] = RecordTable(
            self.data_dir / "characters.json", Character, label="Character",
        )
        self.places: RecordTable[Place] = RecordTable(
            self.data_dir / "places.json", Place, label="Place",
        )
        self.installments: RecordTable[Installment] = RecordTable(
            self.data_dir / "installments.json", Installment,
            label="Installment", named=False, newest_first=True,
        )

    def get_config(self) -> dict[str, Any]:
        return _get_config(self.data_dir / "config.json")

    def update_config(self, fields: dict[str, Any]) -> dict[str, Any]:
        return _update_config(self.data_dir / "config.json", fields)
