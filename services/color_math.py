"""Color conversions and comparisons used to pick palette colors."""
from __future__ import annotations
import math
from typing import Sequence, Tuple

import cv2
import numpy as np

from domain.dtos import Color

def rgb_to_hsl(r: float, g: float, b: float) -> Tuple[int, int, int]:
    """Hue in degrees, saturation and lightness in percent, all rounded."""
    r, g, b = r / 255.0, g / 255.0, b / 255.0
    high, low = max(r, g, b), min(r, g, b)
    l = (high + low) / 2.0
    if high == low:
        h = s = 0.0  # achromatic
    else:
        d = high - low
        s = d / (2.0 - high - low) if l >= 0.5 else d / (high + low)
        if high == r:
            h = (g - b) / d + (6.0 if g < b else 0.0)
        elif high == g:
            h = (b - r) / d + 2.0
        else:
            h = (r - g) / d + 4.0
        h /= 6.0
    return int(round(h * 360)), int(round(s * 100)), int(round(l * 100))

def _hue_to_rgb(p: float, q: float, t: float) -> float:
    if t < 0:
        t += 1
    if t > 1:
        t -= 1
    if t < 1 / 6.0:
        return p + (q - p) * 6 * t
    if t < 1 / 2.0:
        return q
    if t < 2 / 3.0:
        return p + (q - p) * (2 / 3.0 - t) * 6
    return p

def hsl_to_rgb(h: float, s: float, l: float) -> Tuple[int, int, int]:
    h, s, l = h / 360.0, s / 100.0, l / 100.0
    if s == 0:
        r = g = b = l
    else:
        q = l * (s + 1) if l < 0.5 else l + s - l * s
        p = 2 * l - q
        r = _hue_to_rgb(p, q, h + 1 / 3.0)
        g = _hue_to_rgb(p, q, h)
        b = _hue_to_rgb(p, q, h - 1 / 3.0)
    return int(round(r * 255)), int(round(g * 255)), int(round(b * 255))

def lighten_or_darken(color: Color, by: int) -> Color:
    """Move lightness `by` percent away from the middle: dark colors get lighter, light ones darker."""
    hue, saturation, light = rgb_to_hsl(color.r, color.g, color.b)
    light = min(100, light + by) if light < 50 else max(0, light - by)
    return Color(*hsl_to_rgb(hue, saturation, light))

def _linearize(channel: float) -> float:
    c = channel / 255.0
    return c / 12.92 if c <= 0.04045 else ((c + 0.055) / 1.055) ** 2.4

def relative_luminance(color: Color) -> float:
    """CIE Y of an sRGB color, 0..1."""
    r, g, b = (_linearize(c) for c in color.as_tuple())
    return 0.2126729 * r + 0.7151522 * g + 0.0721750 * b

def w3c_contrast(color1: Color, color2: Color) -> float:
    l1 = relative_luminance(color1) + 0.05
    l2 = relative_luminance(color2) + 0.05
    return l1 / l2 if l1 > l2 else l2 / l1

def rgb_to_lab(color: Color) -> Tuple[float, float, float]:
    # float input keeps OpenCV on the unscaled L*a*b* ranges
    rgb = (np.array([[color.as_tuple()]], dtype=np.float32) / 255.0).astype(np.float32)
    L, a, b = cv2.cvtColor(rgb, cv2.COLOR_RGB2LAB)[0, 0]
    return float(L), float(a), float(b)

def ciede2000(lab1: Sequence[float], lab2: Sequence[float]) -> float:
    L1, a1, b1 = lab1
    L2, a2, b2 = lab2
    c_bar = (math.hypot(a1, b1) + math.hypot(a2, b2)) / 2.0
    g = 0.5 * (1 - math.sqrt(c_bar ** 7 / (c_bar ** 7 + 25.0 ** 7)))
    a1p, a2p = (1 + g) * a1, (1 + g) * a2
    c1p, c2p = math.hypot(a1p, b1), math.hypot(a2p, b2)
    h1p = math.degrees(math.atan2(b1, a1p)) % 360 if (a1p or b1) else 0.0
    h2p = math.degrees(math.atan2(b2, a2p)) % 360 if (a2p or b2) else 0.0

    dl = L2 - L1
    dc = c2p - c1p
    if c1p * c2p == 0:
        dh = 0.0
    else:
        dh = h2p - h1p
        if dh > 180:
            dh -= 360
        elif dh < -180:
            dh += 360
    dH = 2 * math.sqrt(c1p * c2p) * math.sin(math.radians(dh / 2.0))

    l_bar = (L1 + L2) / 2.0
    cp_bar = (c1p + c2p) / 2.0
    if c1p * c2p == 0:
        hp_bar = h1p + h2p
    elif abs(h1p - h2p) <= 180:
        hp_bar = (h1p + h2p) / 2.0
    elif h1p + h2p < 360:
        hp_bar = (h1p + h2p + 360) / 2.0
    else:
        hp_bar = (h1p + h2p - 360) / 2.0

    t = (1 - 0.17 * math.cos(math.radians(hp_bar - 30))
         + 0.24 * math.cos(math.radians(2 * hp_bar))
         + 0.32 * math.cos(math.radians(3 * hp_bar + 6))
         - 0.20 * math.cos(math.radians(4 * hp_bar - 63)))
    d_theta = 30 * math.exp(-(((hp_bar - 275) / 25.0) ** 2))
    rc = 2 * math.sqrt(cp_bar ** 7 / (cp_bar ** 7 + 25.0 ** 7))
    sl = 1 + 0.015 * (l_bar - 50) ** 2 / math.sqrt(20 + (l_bar - 50) ** 2)
    sc = 1 + 0.045 * cp_bar
    sh = 1 + 0.015 * cp_bar * t
    rt = -math.sin(math.radians(2 * d_theta)) * rc
    return math.sqrt((dl / sl) ** 2 + (dc / sc) ** 2 + (dH / sh) ** 2 + rt * (dc / sc) * (dH / sh))

def color_distance(color1: Color, color2: Color) -> float:
    return ciede2000(rgb_to_lab(color1), rgb_to_lab(color2))

def rgb_to_hex(color: Color) -> str:
    return color.hex
