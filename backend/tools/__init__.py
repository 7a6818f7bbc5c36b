"""Tool services, one ToolRouter per category.

    store-read    installments/characters/places list + get
    store-write   installments/characters/places create/update/delete
    weather       weather.openMeteo.lookup
    geo           geo.gridToLatLon, geo.latLonToGrid
"""

from backend.storage import Storage
from fantasy_diary.rpc import ToolRouter

from . import geo, store_read, store_write, weather
from .weather import OpenMeteoClient  # noqa: F401


def build_routers(
    storage: Storage,
    weather_client: OpenMeteoClient | None = None,
) -> dict[str, ToolRouter]:
    return {
        "store-read": ToolRouter(store_read.TOOLS, storage),
        "store-write": ToolRouter(store_write.TOOLS, storage),
        "weather": ToolRouter(weather.TOOLS, weather_client or OpenMeteoClient()),
        "geo": ToolRouter(geo.TOOLS),
    }
