"""Weather enrichment tool backed by the Open-Meteo forecast API.

    weather.openMeteo.lookup {latitude, longitude, timezone?, unitsSystem?,
                              dayCount?, place_name?}

Returns the request echo, current conditions with a readable WMO description,
a short daily forecast and narrative hints. `place_name` is echoed back so
the result can be attributed to a story location.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from fantasy_diary.rpc import ToolDefinition

logger = logging.getLogger(__name__)

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"

CURRENT_PARAMS = (
    "temperature_2m",
    "apparent_temperature",
    "relative_humidity_2m",
    "precipitation",
    "weather_code",
    "wind_speed_10m",
    "wind_direction_10m",
)

DAILY_PARAMS = (
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_probability_max",
    "sunrise",
    "sunset",
)

WMO_CODE_DESCRIPTION: dict[int, str] = {
    0: "clear sky",
    1: "mainly clear",
    2: "partly cloudy",
    3: "overcast",
    45: "fog",
    48: "depositing rime fog",
    51: "light drizzle",
    53: "moderate drizzle",
    55: "dense drizzle",
    56: "light freezing drizzle",
    57: "dense freezing drizzle",
    61: "slight rain",
    63: "moderate rain",
    65: "heavy rain",
    66: "light freezing rain",
    67: "heavy freezing rain",
    71: "slight snowfall",
    73: "moderate snowfall",
    75: "heavy snowfall",
    77: "snow grains",
    80: "slight rain showers",
    81: "moderate rain showers",
    82: "violent rain showers",
    85: "slight snow showers",
    86: "heavy snow showers",
    95: "thunderstorm",
    96: "thunderstorm with slight hail",
    99: "thunderstorm with heavy hail",
}


class WeatherServiceError(RuntimeError):
    """Open-Meteo could not be reached or answered with an error."""


class WeatherLookupArgs(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    timezone: str = Field("auto", min_length=1, max_length=40)
    unitsSystem: Literal["METRIC", "IMPERIAL"] = "METRIC"
    dayCount: int = Field(3, ge=1, le=16)
    place_name: str | None = Field(None, description="Story place this lookup is for")


class OpenMeteoClient:
    def __init__(self, base_url: str = OPEN_METEO_URL, timeout: float = 15.0) -> None:
        self._base_url = base_url
        self._timeout = timeout

    async def forecast(self, args: WeatherLookupArgs) -> dict[str, Any]:
        params: dict[str, Any] = {
            "latitude": args.latitude,
            "longitude": args.longitude,
            "timezone": args.timezone,
            "current": ",".join(CURRENT_PARAMS),
            "daily": ",".join(DAILY_PARAMS),
            "forecast_days": args.dayCount,
        }
        if args.unitsSystem == "IMPERIAL":
            params.update(temperature_unit="fahrenheit", wind_speed_unit="mph", precipitation_unit="inch")
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(self._base_url, params=params)
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise WeatherServiceError("Cannot connect to Open-Meteo") from e
        except httpx.HTTPStatusError as e:
            raise WeatherServiceError(f"Open-Meteo returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise WeatherServiceError(f"Open-Meteo timed out after {self._timeout}s") from e
        return resp.json()


def describe(code: Any) -> str:
    if isinstance(code, (int, float)):
        return WMO_CODE_DESCRIPTION.get(int(code), f"unknown (code {int(code)})")
    return "unknown"


def _hints(current: dict[str, Any]) -> list[str]:
    hints: list[str] = []
    code = current.get("weatherCode")
    if isinstance(code, int):
        if code >= 95:
            hints.append("Thunder and lightning: people take shelter, streets empty quickly.")
        elif code in (71, 73, 75, 77, 85, 86):
            hints.append("Snow on the ground muffles sound and slows everyone down.")
        elif code >= 51:
            hints.append("Wet streets and umbrellas; visibility and footing are worse.")
        elif code in (45, 48):
            hints.append("Fog hides anything more than a few dozen metres away.")
    temperature = current.get("temperature")
    if isinstance(temperature, (int, float)):
        if temperature <= 0:
            hints.append("Below freezing: breath fogs, exposed skin stings.")
        elif temperature >= 30:
            hints.append("Oppressive heat: shade and water matter.")
    wind = current.get("windSpeed")
    if isinstance(wind, (int, float)) and wind >= 40:
        hints.append("Strong wind tugs at clothes and carries loose debris.")
    return hints


def shape_forecast(data: dict[str, Any], args: WeatherLookupArgs) -> dict[str, Any]:
    raw_current = data.get("current") or {}
    current = {
        "time": raw_current.get("time"),
        "temperature": raw_current.get("temperature_2m"),
        "apparentTemperature": raw_current.get("apparent_temperature"),
        "humidity": raw_current.get("relative_humidity_2m"),
        "precipitation": raw_current.get("precipitation"),
        "weatherCode": raw_current.get("weather_code"),
        "weatherDescription": describe(raw_current.get("weather_code")),
        "windSpeed": raw_current.get("wind_speed_10m"),
        "windDirection": raw_current.get("wind_direction_10m"),
    }

    daily = data.get("daily") or {}
    forecast = []
    for i, day in enumerate(daily.get("time") or []):
        def pick(key: str) -> Any:
            values = daily.get(key) or []
            return values[i] if i < len(values) else None

        forecast.append({
            "date": day,
            "weatherDescription": describe(pick("weather_code")),
            "temperatureMax": pick("temperature_2m_max"),
            "temperatureMin": pick("temperature_2m_min"),
            "precipitationProbability": pick("precipitation_probability_max"),
            "sunrise": pick("sunrise"),
            "sunset": pick("sunset"),
        })

    result: dict[str, Any] = {
        "request": {
            "latitude": args.latitude,
            "longitude": args.longitude,
            "timezone": data.get("timezone", args.timezone),
            "unitsSystem": args.unitsSystem,
        },
        "current": current,
        "forecast": forecast,
        "ai": {"hints": _hints(current)},
    }
    if args.place_name:
        result["place_name"] = args.place_name
    return result


async def lookup(args: WeatherLookupArgs, client: OpenMeteoClient) -> dict:
    data = await client.forecast(args)
    logger.debug("weather %s,%s → %s", args.latitude, args.longitude, (data.get("current") or {}).get("weather_code"))
    return shape_forecast(data, args)


TOOLS: list[ToolDefinition] = [
    ToolDefinition(
        "weather.openMeteo.lookup",
        "Current weather and a short forecast for a coordinate. Pass place_name "
        "when the lookup is for a story location.",
        WeatherLookupArgs,
        lookup,
    ),
]
