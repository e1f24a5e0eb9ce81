"""Shared fixtures: small images drawn with Pillow."""

from __future__ import annotations

import pytest
from PIL import Image, ImageDraw

from config import Settings

FRAME_COLORS = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 0), (0, 255, 255), (255, 0, 255)]


@pytest.fixture
def settings(tmp_path) -> Settings:
    out = tmp_path / "out"
    out.mkdir()
    return Settings(tmp_dir=str(out), workers=1)


@pytest.fixture
def make_image(tmp_path):
    def _make(name: str, size=(100, 100), color=(200, 30, 30), **save_kwargs):
        path = tmp_path / name
        Image.new("RGB", size, color).save(path, **save_kwargs)
        return path

    return _make


@pytest.fixture
def make_bordered(tmp_path):
    """White square with a solid block in the middle."""

    def _make(name: str = "bordered.png", size: int = 100, inner=(200, 30, 30)):
        path = tmp_path / name
        image = Image.new("RGB", (size, size), (255, 255, 255))
        draw = ImageDraw.Draw(image)
        draw.rectangle([size * 3 // 10, size * 3 // 10, size * 7 // 10 - 1, size * 7 // 10 - 1], fill=inner)
        image.save(path)
        return path

    return _make


@pytest.fixture
def make_gif(tmp_path):
    def _make(name: str = "anim.gif", size=(50, 50), n_frames: int = 4, duration: int = 80):
        path = tmp_path / name
        frames = [Image.new("RGB", size, FRAME_COLORS[i % len(FRAME_COLORS)]) for i in range(n_frames)]
        frames[0].save(path, save_all=True, append_images=frames[1:], duration=duration, loop=0)
        return path

    return _make
