from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from domain.enums import GeometryModifier

@dataclass(frozen=True)
class Geometry:
    width: int
    height: int
    modifier: GeometryModifier = GeometryModifier.none

    @property
    def crop(self) -> bool:
        return self.modifier == GeometryModifier.crop

    @property
    def is_square(self) -> bool:
        return self.width == self.height

    def __str__(self) -> str:
        return f"{self.width}x{self.height}{self.modifier.value}"

@dataclass(frozen=True)
class SourceImageInfo:
    path: Path
    width: int          # per frame
    height: int         # per frame
    extension: str      # ".jpg", "" when the upload had none
    n_pages: int = 1

    @property
    def pixels(self) -> int:
        return self.width * self.height

@dataclass(frozen=True)
class ProcessingDecision:
    geometry: bool
    format: bool
    metadata: bool

    @property
    def needs_convert(self) -> bool:
        return self.geometry or self.format or self.metadata

@dataclass(frozen=True)
class Color:
    r: float
    g: float
    b: float

    @property
    def hex(self) -> str:
        return "#%02x%02x%02x" % (int(self.r), int(self.g), int(self.b))

    def as_tuple(self):
        return (self.r, self.g, self.b)

@dataclass(frozen=True)
class PaletteResult:
    background: Color
    foreground: Color
    accent: Color

    def as_meta(self) -> Dict[str, Dict[str, str]]:
        return {
            "colors": {
                "background": self.background.hex,
                "foreground": self.foreground.hex,
                "accent": self.accent.hex,
            }
        }
