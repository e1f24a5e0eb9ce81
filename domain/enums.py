from __future__ import annotations
from enum import Enum

class GeometryModifier(str, Enum):
    none = ""
    crop = "#"    # force square/exact crop

    @staticmethod
    def from_suffix(suffix: str) -> "GeometryModifier":
        if suffix == "#":
            return GeometryModifier.crop
        return GeometryModifier.none

class ThumbnailMode(str, Enum):
    centre = "centre"  # cover the box, then crop the middle
    down = "down"      # fit inside the box, never upscale
    both = "both"      # fit inside the box, upscale allowed
