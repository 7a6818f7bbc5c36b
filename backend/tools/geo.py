"""Geo tools: KMA forecast grid ⇄ latitude/longitude.

The Korea Meteorological Administration publishes its village forecasts on a
5 km Lambert conformal conic grid. Constants are the published DFS ones;
Seoul City Hall (37.5665, 126.978) falls on grid (60, 127).
"""

from __future__ import annotations

import math

from pydantic import BaseModel, Field

from fantasy_diary.rpc import ToolDefinition

RE = 6371.00877  # earth radius (km)
GRID = 5.0       # grid spacing (km)
SLAT1 = 30.0     # standard parallel 1
SLAT2 = 60.0     # standard parallel 2
OLON = 126.0     # origin longitude
OLAT = 38.0      # origin latitude
XO = 43          # origin x (grid)
YO = 136         # origin y (grid)

_DEGRAD = math.pi / 180.0


def _projection() -> tuple[float, float, float, float, float]:
    re = RE / GRID
    slat1 = SLAT1 * _DEGRAD
    slat2 = SLAT2 * _DEGRAD
    olon = OLON * _DEGRAD
    olat = OLAT * _DEGRAD

    sn = math.tan(math.pi * 0.25 + slat2 * 0.5) / math.tan(math.pi * 0.25 + slat1 * 0.5)
    sn = math.log(math.cos(slat1) / math.cos(slat2)) / math.log(sn)
    sf = math.tan(math.pi * 0.25 + slat1 * 0.5)
    sf = math.pow(sf, sn) * math.cos(slat1) / sn
    ro = math.tan(math.pi * 0.25 + olat * 0.5)
    ro = re * sf / math.pow(ro, sn)
    return re, sn, sf, ro, olon


def lat_lon_to_grid(latitude: float, longitude: float) -> tuple[int, int]:
    re, sn, sf, ro, olon = _projection()
    ra = math.tan(math.pi * 0.25 + latitude * _DEGRAD * 0.5)
    ra = re * sf / math.pow(ra, sn)
    theta = longitude * _DEGRAD - olon
    if theta > math.pi:
        theta -= 2.0 * math.pi
    if theta < -math.pi:
        theta += 2.0 * math.pi
    theta *= sn
    nx = math.floor(ra * math.sin(theta) + XO + 0.5)
    ny = math.floor(ro - ra * math.cos(theta) + YO + 0.5)
    return nx, ny


def grid_to_lat_lon(nx: int, ny: int) -> tuple[float, float]:
    re, sn, sf, ro, olon = _projection()
    xn = nx - XO
    yn = ro - ny + YO
    ra = math.sqrt(xn * xn + yn * yn)
    if sn < 0.0:
        ra = -ra
    alat = math.pow(re * sf / ra, 1.0 / sn)
    alat = 2.0 * math.atan(alat) - math.pi * 0.5

    if abs(xn) <= 0.0:
        theta = 0.0
    elif abs(yn) <= 0.0:
        theta = math.pi * 0.5
        if xn < 0.0:
            theta = -theta
    else:
        theta = math.atan2(xn, yn)
    alon = theta / sn + olon
    return alat / _DEGRAD, alon / _DEGRAD


class GridArgs(BaseModel):
    nx: int = Field(ge=1, le=149)
    ny: int = Field(ge=1, le=253)


class LatLonArgs(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


async def grid_to_lat_lon_tool(args: GridArgs, _deps) -> dict:
    latitude, longitude = grid_to_lat_lon(args.nx, args.ny)
    return {
        "nx": args.nx,
        "ny": args.ny,
        "latitude": round(latitude, 6),
        "longitude": round(longitude, 6),
    }


async def lat_lon_to_grid_tool(args: LatLonArgs, _deps) -> dict:
    nx, ny = lat_lon_to_grid(args.latitude, args.longitude)
    return {"latitude": args.latitude, "longitude": args.longitude, "nx": nx, "ny": ny}


TOOLS: list[ToolDefinition] = [
    ToolDefinition("geo.gridToLatLon", "Convert a KMA forecast grid cell (nx, ny) to latitude/longitude.",
                   GridArgs, grid_to_lat_lon_tool),
    ToolDefinition("geo.latLonToGrid", "Convert latitude/longitude to the KMA forecast grid cell.",
                   LatLonArgs, lat_lon_to_grid_tool),
]
