from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from config import Settings, Style
from domain.dtos import Geometry, ProcessingDecision, SourceImageInfo
from domain.enums import ThumbnailMode
from services import geometry, imaging
from services.attachment import Attachment, TempfileFactory
from services.imaging import ImageHandle, MutableImage

log = logging.getLogger(__name__)

ALLOWED_FIELDS = frozenset((
    "width",
    "height",
    "bands",
    "format",
    "coding",
    "interpretation",
    "icc-profile-data",
    "page-height",
    "n-pages",
    "loop",
    "delay",
))

LOSSY_FORMATS = ("jpg", "jpeg")

def strip_metadata(image: ImageHandle) -> ImageHandle:
    def _strip(mutable: MutableImage) -> None:
        for name in set(mutable.get_fields()) - ALLOWED_FIELDS:
            mutable.remove(name)
    return image.mutate(_strip)

class ThumbnailPipeline:
    """Produces one style of an attachment: resized, cropped, converted and stripped as needed."""

    def __init__(self, file_path, style: Style, attachment: Attachment,
                 settings: Optional[Settings] = None, current: Optional[SourceImageInfo] = None) -> None:
        self.file_path = Path(file_path)
        self.style = style
        self.attachment = attachment
        self.settings = settings or Settings()
        self.crop = str(style.geometry or "").endswith("#")
        self.current = current or imaging.read_info(self.file_path)
        self.format = style.format or None
        self.current_format = self._corrected_current_format()
        self.basename = self.file_path.stem
        self.target = geometry.correct_for_minimum_side(self._target_geometry(), self.current)
        self.decision = self._decide()

    def _target_geometry(self) -> Optional[Geometry]:
        if self.style.pixels:
            return geometry.parse_from_pixel_budget(self.current, self.style.pixels)
        return geometry.parse_optional(self.style.geometry)

    def _corrected_current_format(self) -> str:
        # base64 uploads land in tempfiles without an extension
        if self.current.extension:
            return self.current.extension
        return Path(self.attachment.original_filename or "").suffix.lower()

    def _decide(self) -> ProcessingDecision:
        return ProcessingDecision(
            geometry=self._needs_different_geometry(),
            format=self._needs_different_format(),
            metadata=self._needs_metadata_stripping(),
        )

    def _needs_different_geometry(self) -> bool:
        # both sides must differ: an aspect-preserving thumbnail already matching one side is fine
        if self.style.geometry and self.target is not None \
                and self.current.width != self.target.width and self.current.height != self.target.height:
            return True
        return bool(self.style.pixels) and self.current.pixels > self.style.pixels

    def _needs_different_format(self) -> bool:
        return bool(self.format) and self.current_format != f".{self.format}"

    def _needs_metadata_stripping(self) -> bool:
        return bool(getattr(self.attachment, "local", False))

    @property
    def needs_convert(self) -> bool:
        return self.decision.needs_convert

    @property
    def preserve_animation(self) -> bool:
        return self.format == "gif" or (not self.format and self.current_format == ".gif")

    @property
    def save_options(self) -> Dict[str, Any]:
        if self.format in LOSSY_FORMATS:
            return {"Q": self.settings.jpeg_quality, "interlace": True}
        return {}

    @property
    def output_name(self) -> str:
        return self.basename + (f".{self.format}" if self.format else self.current_format)

    def make(self) -> Path:
        if not self.needs_convert:
            log.debug("%s: nothing to do for %s", self.file_path.name, self.style)
            return self.file_path

        dst = TempfileFactory(self.settings.tmp_dir).generate(self.output_name)
        try:
            imaging.write_to_file(self.transformed_image(), dst, **self.save_options)
        except BaseException:
            dst.unlink(missing_ok=True)
            raise
        log.info("%s -> %s (%s)", self.file_path.name, dst.name, self.decision)
        return dst

    def transformed_image(self) -> ImageHandle:
        # no resize wanted: plain decode, keeping frames when the output is animated
        if self.target is None:
            return strip_metadata(imaging.load_image(self.file_path, all_frames=self.preserve_animation))

        if self.preserve_animation:
            return self._animated_image()

        if self.crop:
            image = imaging.thumbnail(self.file_path, self.target.width, self.target.height,
                                      crop=ThumbnailMode.centre.value)
        else:
            image = imaging.thumbnail(self.file_path, self.target.width, self.target.height,
                                      size=ThumbnailMode.down.value)
        return strip_metadata(image)

    def _animated_image(self) -> ImageHandle:
        original = imaging.load_image(self.file_path, all_frames=True)
        n_pages = len(original.frames())

        # frames are stacked, so the height box must cover all of them
        resized = strip_metadata(imaging.thumbnail_image(
            original, self.target.width, self.target.height * n_pages, size=ThumbnailMode.down.value))

        if not self.crop:
            return resized

        page_height = resized.get("page-height")
        width = min(self.target.width, resized.width)
        height = min(self.target.height, page_height)
        frames = [imaging.crop(resized, 0, i * page_height, width, height) for i in range(n_pages)]

        def _page_height(mutable: MutableImage) -> None:
            mutable.set("page-height", height)
        return imaging.arrayjoin(frames, across=1).mutate(_page_height)
