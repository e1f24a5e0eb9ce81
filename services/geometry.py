"""Target geometry for thumbnails: "WxH[#]" strings and total pixel budgets."""
from __future__ import annotations
import math
import re
from typing import Optional

from domain.dtos import Geometry, SourceImageInfo
from domain.enums import GeometryModifier
from domain.errors import InvalidGeometry

GEOMETRY_RE = re.compile(r"^(\d+)x(\d+)(#)?$")

def parse_string(spec: str) -> Geometry:
    match = GEOMETRY_RE.match(str(spec).strip())
    if match is None:
        raise InvalidGeometry(f"malformed geometry: {spec!r}")
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise InvalidGeometry(f"geometry sides must be positive: {spec!r}")
    return Geometry(width, height, GeometryModifier.from_suffix(match.group(3) or ""))

def parse_optional(spec: Optional[str]) -> Optional[Geometry]:
    if spec is None or not str(spec).strip():
        return None
    return parse_string(spec)

def format_geometry(geometry: Geometry) -> str:
    return str(geometry)

def parse_from_pixel_budget(current: SourceImageInfo, pixels: float) -> Geometry:
    """Width/height keeping the current aspect ratio with roughly `pixels` in total."""
    if pixels <= 0:
        raise InvalidGeometry(f"pixel budget must be positive: {pixels!r}")
    aspect = current.width / current.height
    width = int(round(math.sqrt(pixels * aspect)))
    height = int(round(math.sqrt(pixels / aspect)))
    return Geometry(max(1, width), max(1, height))

def correct_for_minimum_side(target: Optional[Geometry], current: SourceImageInfo) -> Optional[Geometry]:
    # square crops never ask for more than the source's smaller side;
    # plain square boxes like "80x80" are left alone, fit-down never upscales them
    if target is None or not (target.crop and target.is_square):
        return target
    min_side = min(current.width, current.height)
    if min_side < target.width:
        return Geometry(min_side, min_side, target.modifier)
    return target
