"""Image handles over Pillow (codecs, frames, metadata), OpenCV (resampling) and numpy (pixels).

Animated images are held the way libvips holds them: every frame stacked
vertically in one tall array, with `page-height` giving the frame height.
Metadata uses libvips field names so callers can reason about an allow-list.
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageOps, ImageSequence

from domain.dtos import SourceImageInfo
from domain.enums import ThumbnailMode
from domain.errors import ImageDecodeError

PIL_FORMATS = {
    ".jpg": "JPEG", ".jpeg": "JPEG", ".png": "PNG", ".gif": "GIF",
    ".webp": "WEBP", ".tif": "TIFF", ".tiff": "TIFF", ".bmp": "BMP",
}
ANIMATED_FORMATS = {"GIF", "WEBP"}
INTRINSIC_FIELDS = ("width", "height", "bands")
MM_PER_INCH = 25.4
EXIF_ORIENTATION = 0x0112

class ImageHandle:
    """Immutable pixels plus metadata fields. Use `mutate` to derive a changed copy."""

    def __init__(self, pixels: np.ndarray, fields: Optional[Dict[str, Any]] = None) -> None:
        if pixels.ndim == 2:
            pixels = pixels[:, :, None]
        self._pixels = np.ascontiguousarray(pixels, dtype=np.uint8)
        self._fields = {k: v for k, v in (fields or {}).items() if k not in INTRINSIC_FIELDS}

    @property
    def pixels(self) -> np.ndarray:
        return self._pixels

    @property
    def width(self) -> int:
        return int(self._pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self._pixels.shape[0])

    @property
    def bands(self) -> int:
        return int(self._pixels.shape[2])

    def get(self, name: str, default: Any = None) -> Any:
        if name in INTRINSIC_FIELDS:
            return getattr(self, name)
        return self._fields.get(name, default)

    def get_fields(self) -> List[str]:
        return list(INTRINSIC_FIELDS) + list(self._fields)

    def mutate(self, fn: Callable[["MutableImage"], None]) -> "ImageHandle":
        builder = MutableImage(self)
        fn(builder)
        return builder.finish()

    def frames(self) -> List[np.ndarray]:
        page_height = self._fields.get("page-height")
        if page_height and 0 < page_height < self.height and self.height % page_height == 0:
            return [self._pixels[top:top + page_height] for top in range(0, self.height, page_height)]
        return [self._pixels]

class MutableImage:
    """Owns a private copy of a handle's fields until `finish` hands it back."""

    def __init__(self, image: ImageHandle) -> None:
        self._pixels = image.pixels
        self._fields = {name: image.get(name) for name in image.get_fields() if name not in INTRINSIC_FIELDS}
        self._finished = False

    def get_fields(self) -> List[str]:
        return list(INTRINSIC_FIELDS) + list(self._fields)

    def set(self, name: str, value: Any) -> None:
        self._check()
        if name in INTRINSIC_FIELDS:
            raise KeyError(f"{name} is derived from the pixels")
        self._fields[name] = value

    def remove(self, name: str) -> None:
        self._check()
        self._fields.pop(name, None)

    def finish(self) -> ImageHandle:
        self._check()
        self._finished = True
        return ImageHandle(self._pixels, self._fields)

    def _check(self) -> None:
        if self._finished:
            raise RuntimeError("image already finished")

# ---------- decoding ----------

def _decode(fp, path) -> Image.Image:
    try:
        image = Image.open(fp)
        image.load()
    except (OSError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"cannot decode {path}: {exc}") from exc
    return image

def _pixel_mode(image: Image.Image, animated: bool) -> str:
    if animated or image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info:
        return "RGBA"
    return "RGB"

def _to_8bit(frame: Image.Image) -> Image.Image:
    """Scale 16-bit grayscale down to 8 bits; `convert` would clip it to white."""
    if frame.mode.startswith("I;16") or (frame.mode == "I" and frame.getextrema()[1] > 255):
        values = np.asarray(frame).astype(np.int64) >> 8
        return Image.fromarray(np.clip(values, 0, 255).astype(np.uint8))
    return frame

def _fields_from(image: Image.Image, n_pages: int, page_height: int) -> Dict[str, Any]:
    loader = (image.format or "unknown").lower()
    info = image.info
    fields: Dict[str, Any] = {
        "format": "uchar",
        "coding": "none",
        "interpretation": "srgb",
        "page-height": page_height,
        "n-pages": n_pages,
        "vips-loader": f"{loader}load",
    }
    # CMYK profiles do not describe the RGB pixels we keep
    if info.get("icc_profile") and image.mode != "CMYK":
        fields["icc-profile-data"] = bytes(info["icc_profile"])
    if "loop" in info:
        fields["loop"] = int(info["loop"])
    if info.get("exif"):
        fields["exif-data"] = bytes(info["exif"])
        orientation = image.getexif().get(EXIF_ORIENTATION)
        if orientation:
            fields["orientation"] = int(orientation)
    xmp = info.get("xmp") or info.get("XML:com.adobe.xmp")
    if xmp:
        fields["xmp-data"] = xmp if isinstance(xmp, bytes) else str(xmp).encode("utf-8")
    if info.get("dpi"):
        xdpi, ydpi = info["dpi"]
        fields["xres"] = float(xdpi) / MM_PER_INCH
        fields["yres"] = float(ydpi) / MM_PER_INCH
        fields["resolution-unit"] = "in"
    if info.get("comment"):
        comment = info["comment"]
        fields[f"{loader}-comment"] = comment.decode("utf-8", "replace") if isinstance(comment, bytes) else str(comment)
    for key, value in info.items():
        # text chunks and the like; anything binary is handled above or dropped
        if isinstance(value, str) and key not in ("comment", "xmp", "XML:com.adobe.xmp"):
            fields[f"{loader}-{key.lower().replace(' ', '-')}"] = value
    return fields

def read_info(path) -> SourceImageInfo:
    """Header-level geometry of the first frame, without decoding every frame."""
    path = Path(path)
    with open(path, "rb") as fp:
        try:
            image = Image.open(fp)
            n_pages = getattr(image, "n_frames", 1)
        except (OSError, Image.DecompressionBombError) as exc:
            raise ImageDecodeError(f"cannot decode {path}: {exc}") from exc
        width, height = image.size
    return SourceImageInfo(
        path=path,
        width=width,
        height=height,
        extension=path.suffix.lower(),
        n_pages=n_pages,
    )

def load_image(path, all_frames: bool = False) -> ImageHandle:
    """Decode `path`. With `all_frames`, every frame is stacked top to bottom."""
    with open(path, "rb") as fp:
        image = _decode(fp, path)
        n_pages = getattr(image, "n_frames", 1)
        animated = all_frames and n_pages > 1
        mode = _pixel_mode(image, animated and image.format in ANIMATED_FORMATS)
        fields = _fields_from(image, n_pages=n_pages, page_height=image.size[1])
        frames: List[np.ndarray] = []
        delays: List[int] = []
        try:
            for frame in (ImageSequence.Iterator(image) if animated else [image]):
                frames.append(np.asarray(_to_8bit(frame).convert(mode)))
                delays.append(int(frame.info.get("duration") or 0))
        except (OSError, EOFError) as exc:
            raise ImageDecodeError(f"cannot decode {path}: {exc}") from exc
    if any(delays):
        fields["delay"] = delays
    return ImageHandle(np.vstack(frames), fields)

# ---------- geometry ----------

def _resize(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    if width == pixels.shape[1] and height == pixels.shape[0]:
        return pixels
    shrinking = width <= pixels.shape[1] and height <= pixels.shape[0]
    resized = cv2.resize(pixels, (width, height), interpolation=cv2.INTER_AREA if shrinking else cv2.INTER_CUBIC)
    if resized.ndim == 2:
        resized = resized[:, :, None]
    return resized

def _clamp_scale(scale: float, size: str) -> float:
    if size == ThumbnailMode.down.value:
        return min(scale, 1.0)
    return scale

def thumbnail_image(image: ImageHandle, width: int, height: int,
                    crop: Optional[str] = None, size: str = ThumbnailMode.both.value) -> ImageHandle:
    """Fit `image` in `width` x `height`, or cover it and cut the middle when `crop="centre"`.

    Stacked pages share one scale factor, computed against the whole stack, so
    every resized page keeps the same height.
    """
    size = getattr(size, "value", size)
    crop = getattr(crop, "value", crop)
    if crop == ThumbnailMode.centre.value:
        scale = _clamp_scale(max(width / image.width, height / image.height), size)
        rw = max(1, int(round(image.width * scale)))
        rh = max(1, int(round(image.height * scale)))
        resized = _resize(image.pixels, rw, rh)
        out_w, out_h = min(width, rw), min(height, rh)
        left, top = (rw - out_w) // 2, (rh - out_h) // 2
        pixels = resized[top:top + out_h, left:left + out_w]
        page_height = out_h
    else:
        scale = _clamp_scale(min(width / image.width, height / image.height), size)
        frames = image.frames()
        rw = max(1, int(round(image.width * scale)))
        page_height = max(1, int(round(frames[0].shape[0] * scale)))
        pixels = np.vstack([_resize(frame, rw, page_height) for frame in frames])

    fields = {name: image.get(name) for name in image.get_fields()}
    fields["page-height"] = page_height
    return ImageHandle(pixels, fields)

def thumbnail(path, width: int, height: int, crop: Optional[str] = None,
              size: str = ThumbnailMode.both.value) -> ImageHandle:
    """Load the first frame of `path`, upright per its EXIF orientation, and thumbnail it."""
    with open(path, "rb") as fp:
        image = _decode(fp, path)
        fields = _fields_from(image, n_pages=getattr(image, "n_frames", 1), page_height=image.size[1])
        mode = _pixel_mode(image, animated=False)
        upright = ImageOps.exif_transpose(image)
        pixels = np.asarray(_to_8bit(upright).convert(mode))
    fields.pop("orientation", None)
    fields["page-height"] = pixels.shape[0]
    return thumbnail_image(ImageHandle(pixels, fields), width, height, crop=crop, size=size)

def crop(image: ImageHandle, left: int, top: int, width: int, height: int) -> ImageHandle:
    if left < 0 or top < 0 or width <= 0 or height <= 0 \
            or left + width > image.width or top + height > image.height:
        raise ValueError(f"bad extract area {left},{top} {width}x{height} on {image.width}x{image.height}")
    fields = {name: image.get(name) for name in image.get_fields()}
    return ImageHandle(image.pixels[top:top + height, left:left + width].copy(), fields)

def black(width: int, height: int, bands: int = 1) -> ImageHandle:
    return ImageHandle(np.zeros((int(height), int(width), bands), dtype=np.uint8))

def insert(main: ImageHandle, sub: ImageHandle, x: int, y: int) -> ImageHandle:
    """Paste `sub` over a copy of `main` at (x, y); parts outside `main` are clipped."""
    x, y = int(x), int(y)
    pixels = main.pixels.copy()
    patch = sub.pixels
    if patch.shape[2] != pixels.shape[2]:
        patch = np.repeat(patch[:, :, :1], pixels.shape[2], axis=2)
    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = min(x + sub.width, main.width), min(y + sub.height, main.height)
    if x1 > x0 and y1 > y0:
        pixels[y0:y1, x0:x1] = patch[y0 - y:y1 - y, x0 - x:x1 - x]
    fields = {name: main.get(name) for name in main.get_fields()}
    return ImageHandle(pixels, fields)

def arrayjoin(images: Sequence[ImageHandle], across: int = 1) -> ImageHandle:
    """Grid `images` row by row, `across` per row. `across=1` stacks them vertically."""
    if not images:
        raise ValueError("arrayjoin needs at least one image")
    rows = [np.hstack([im.pixels for im in images[i:i + across]]) for i in range(0, len(images), across)]
    fields = {name: images[0].get(name) for name in images[0].get_fields()}
    return ImageHandle(np.vstack(rows), fields)

# ---------- histograms ----------

def hist_find_ndim(image: ImageHandle, bins: int = 10, mask: Optional[np.ndarray] = None) -> np.ndarray:
    """Counts of pixels per (band0, band1, band2) bin; `mask` selects which pixels count."""
    pixels = image.pixels
    if pixels.shape[2] < 3:
        pixels = np.repeat(pixels[:, :, :1], 3, axis=2)
    index = (pixels[:, :, :3].astype(np.int32) * bins) // 256
    index = index[mask] if mask is not None else index.reshape(-1, 3)
    flat = (index[:, 0] * bins + index[:, 1]) * bins + index[:, 2]
    return np.bincount(flat, minlength=bins ** 3).reshape(bins, bins, bins)

def hist_max(hist: np.ndarray, size: int = 10) -> List[Tuple[int, int, int]]:
    """Up to `size` (x, y, count) entries for the fullest non-empty bins, fullest first."""
    flat = hist.reshape(-1)
    out: List[Tuple[int, int, int]] = []
    for i in np.argsort(-flat, kind="stable")[:size]:
        count = int(flat[i])
        if count == 0:
            break
        x, y, _ = np.unravel_index(i, hist.shape)
        out.append((int(x), int(y), count))
    return out

# ---------- encoding ----------

def _pil_frames(image: ImageHandle, fmt: str) -> List[Image.Image]:
    frames = []
    for frame in image.frames():
        pil = Image.fromarray(frame[:, :, 0] if frame.shape[2] == 1 else frame)
        if fmt in ("JPEG", "BMP") and pil.mode == "RGBA":
            pil = pil.convert("RGB")
        frames.append(pil)
    return frames

def write_to_file(image: ImageHandle, path, **save_options) -> None:
    """Encode by file suffix. Only metadata still present on `image` is written."""
    path = Path(path)
    fmt = PIL_FORMATS.get(path.suffix.lower())
    if fmt is None:
        raise ValueError(f"unsupported output format: {path.suffix!r}")
    frames = _pil_frames(image, fmt)
    params: Dict[str, Any] = {}
    if image.get("icc-profile-data") and fmt in ("JPEG", "PNG", "WEBP", "TIFF"):
        params["icc_profile"] = image.get("icc-profile-data")
    if image.get("exif-data") and fmt in ("JPEG", "PNG", "WEBP"):
        params["exif"] = image.get("exif-data")
    if fmt == "JPEG":
        if "Q" in save_options:
            params["quality"] = int(save_options["Q"])
        if save_options.get("interlace"):
            params["progressive"] = True
    if fmt in ANIMATED_FORMATS and len(frames) > 1:
        params["save_all"] = True
        params["append_images"] = frames[1:]
        delay = image.get("delay")
        if delay:
            params["duration"] = (list(delay) + [delay[-1]] * len(frames))[:len(frames)]
        if image.get("loop") is not None:
            params["loop"] = image.get("loop")
    frames[0].save(path, format=fmt, **params)
