from __future__ import annotations
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from domain.dtos import Color, PaletteResult
from services import imaging
from services.attachment import Attachment
from services.color_math import color_distance, lighten_or_darken, rgb_to_hsl, w3c_contrast
from services.imaging import ImageHandle

log = logging.getLogger(__name__)

class PaletteExtractor:
    MIN_CONTRAST = 3.0
    ACCENT_MIN_CONTRAST = 2.0
    BINS = 10
    PALETTE_SIZE = 10
    EDGE_FRACTION = 0.75  # central share of each side blanked out for the background sample

    def extract(self, path) -> Optional[PaletteResult]:
        image = imaging.load_image(path)
        edge_image, edge_mask = self.edge_view(image)

        background_palette = self.palette_from_image(edge_image, mask=edge_mask)
        foreground_palette = self.palette_from_image(image)

        if background_palette:
            background = background_palette[0]
        elif foreground_palette:
            background = foreground_palette[0]
        else:
            return None

        candidates: List[Color] = []
        accent_pick = self._farthest(background, foreground_palette, self.ACCENT_MIN_CONTRAST, exclude=candidates)
        if accent_pick is not None:
            candidates.append(accent_pick)
        foreground_pick = self._farthest(background, foreground_palette, self.MIN_CONTRAST, exclude=candidates)
        if foreground_pick is not None:
            candidates.append(foreground_pick)

        # not enough usable colors: derive them from the background
        for i in range(2 - len(candidates)):
            candidates.append(lighten_or_darken(background, 35 + i * 15))

        foreground = max(candidates, key=lambda c: w3c_contrast(background, c))
        accent = max(candidates, key=lambda c: rgb_to_hsl(c.r, c.g, c.b)[1])
        result = PaletteResult(background=background, foreground=foreground, accent=accent)
        log.debug("palette for %s: %s", Path(path).name, result.as_meta()["colors"])
        return result

    def edge_view(self, image: ImageHandle) -> Tuple[ImageHandle, np.ndarray]:
        """Black out the middle of `image`; the mask marks the border pixels that remain."""
        width = int(image.width * self.EDGE_FRACTION)
        height = int(image.height * self.EDGE_FRACTION)
        left = int(image.width * (1 - self.EDGE_FRACTION) / 2)
        top = int(image.height * (1 - self.EDGE_FRACTION) / 2)
        mask = np.ones((image.height, image.width), dtype=bool)
        if width == 0 or height == 0:
            return image, mask
        mask[top:top + height, left:left + width] = False
        return imaging.insert(image, imaging.black(width, height), left, top), mask

    def palette_from_image(self, image: ImageHandle, mask: Optional[np.ndarray] = None) -> List[Color]:
        histogram = imaging.hist_find_ndim(image, bins=self.BINS, mask=mask)
        return [self._rgb_from_xyv(histogram, x, y, v)
                for x, y, v in imaging.hist_max(histogram, size=self.PALETTE_SIZE)]

    def _rgb_from_xyv(self, histogram: np.ndarray, x: int, y: int, v: int) -> Color:
        z = int(np.flatnonzero(histogram[x, y] == v)[0])
        r = (x + 0.5) * 256 / self.BINS
        g = (y + 0.5) * 256 / self.BINS
        b = (z + 0.5) * 256 / self.BINS
        return Color(r, g, b)

    @staticmethod
    def _farthest(background: Color, palette: List[Color], min_contrast: float,
                  exclude: List[Color]) -> Optional[Color]:
        best, best_distance = None, 0.0
        for color in palette:
            if color in exclude:
                continue
            distance = color_distance(background, color)
            if distance > best_distance and w3c_contrast(background, color) >= min_contrast:
                best, best_distance = color, distance
        return best

class ColorExtractor:
    """Adds background/foreground/accent colors to an attachment's metadata."""

    def __init__(self, file_path, attachment: Attachment, extractor: Optional[PaletteExtractor] = None) -> None:
        self.file_path = Path(file_path)
        self.attachment = attachment
        self.extractor = extractor or PaletteExtractor()

    def make(self) -> Path:
        result = self.extractor.extract(self.file_path)
        if result is None:
            return self.file_path
        meta = self.attachment.read_meta() or {}
        meta.update(result.as_meta())
        self.attachment.write_meta(meta)
        return self.file_path
