"""ThumbnailPipeline decisions and output files."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest
from PIL import Image
from PIL.PngImagePlugin import PngInfo

from config import Style
from domain.errors import ImageDecodeError, InvalidGeometry
from services import imaging
from services.attachment import AttachmentRecord
from services.thumbnailer import ALLOWED_FIELDS, ThumbnailPipeline


def remote(path, **kwargs) -> AttachmentRecord:
    return AttachmentRecord(file_path=path, original_filename=path.name, local=False, **kwargs)


def local(path, **kwargs) -> AttachmentRecord:
    return AttachmentRecord(file_path=path, original_filename=path.name, local=True, **kwargs)


def test_pass_through_without_options(make_image, settings):
    source = make_image("plain.png", size=(100, 50))
    pipeline = ThumbnailPipeline(source, Style(), remote(source), settings)

    assert not pipeline.needs_convert
    assert pipeline.target is None
    assert pipeline.make() == source
    assert list(Path(settings.tmp_dir).iterdir()) == []


def test_one_matching_side_skips_resize(make_image, settings):
    source = make_image("wide.png", size=(100, 50))
    pipeline = ThumbnailPipeline(source, Style(geometry="100x80"), remote(source), settings)

    assert not pipeline.decision.geometry
    assert pipeline.make() == source


def test_both_sides_differ_triggers_resize(make_image, settings):
    source = make_image("wide.png", size=(100, 50))
    pipeline = ThumbnailPipeline(source, Style(geometry="40x40"), remote(source), settings)

    assert pipeline.decision.geometry

    with Image.open(pipeline.make()) as out:
        assert out.size == (40, 20)


def test_pixel_budget_under_limit_is_left_alone(make_image, settings):
    source = make_image("small.jpg", size=(100, 50))
    pipeline = ThumbnailPipeline(source, Style(pixels=10_000), remote(source), settings)

    assert not pipeline.needs_convert


def test_pixel_budget_over_limit_resizes(make_image, settings):
    source = make_image("big.jpg", size=(400, 300))
    pipeline = ThumbnailPipeline(source, Style(pixels=30_000), remote(source), settings)

    assert pipeline.decision.geometry
    with Image.open(pipeline.make()) as out:
        assert out.size == (200, 150)


def test_square_crop_scenario(make_image, settings):
    source = make_image("photo.jpg", size=(400, 300))
    pipeline = ThumbnailPipeline(source, Style(geometry="100x100#"), remote(source), settings)

    assert pipeline.crop
    assert pipeline.needs_convert
    out_path = pipeline.make()

    assert out_path.suffix == ".jpg"
    assert out_path.name.startswith("photo")
    with Image.open(out_path) as out:
        assert out.size == (100, 100)


def test_clamped_square_crop_matching_one_side_passes_through(make_image, settings):
    source = make_image("wide.png", size=(100, 50))
    pipeline = ThumbnailPipeline(source, Style(geometry="80x80#"), remote(source), settings)

    assert (pipeline.target.width, pipeline.target.height) == (50, 50)
    # height already matches the clamped target, so no resize is due
    assert not pipeline.decision.geometry
    assert pipeline.make() == source


def test_square_crop_never_exceeds_source(make_image, settings):
    source = make_image("wide.png", size=(100, 50))
    pipeline = ThumbnailPipeline(source, Style(geometry="80x80#"), local(source), settings)

    assert pipeline.decision.metadata
    with Image.open(pipeline.make()) as out:
        assert out.size == (50, 50)


def test_format_conversion(make_image, settings):
    source = make_image("drawing.png", size=(64, 64))
    pipeline = ThumbnailPipeline(source, Style(format="jpg"), remote(source), settings)

    assert pipeline.decision.format
    assert not pipeline.decision.geometry
    assert pipeline.save_options == {"Q": 90, "interlace": True}
    out_path = pipeline.make()

    assert out_path.suffix == ".jpg"
    with Image.open(out_path) as out:
        assert out.format == "JPEG"
        assert out.info.get("progressive")


def test_same_format_is_not_a_conversion(make_image, settings):
    source = make_image("drawing.png", size=(64, 64))
    pipeline = ThumbnailPipeline(source, Style(format="png"), remote(source), settings)

    assert not pipeline.needs_convert
    assert pipeline.save_options == {}


def test_extensionless_upload_uses_original_filename(make_image, settings, tmp_path):
    upload = tmp_path / "upload"
    shutil.copy(make_image("photo.png"), upload)
    attachment = AttachmentRecord(file_path=upload, original_filename="Photo.PNG", local=True)

    pipeline = ThumbnailPipeline(upload, Style(), attachment, settings)

    assert pipeline.current_format == ".png"
    out_path = pipeline.make()
    assert out_path.name.startswith("upload")
    assert out_path.suffix == ".png"


def test_local_uploads_are_stripped(tmp_path, settings):
    source = tmp_path / "camera.jpg"
    exif = Image.Exif()
    exif[0x010F] = "ACME"
    Image.new("RGB", (32, 32), (10, 20, 30)).save(source, exif=exif.tobytes())
    assert "exif-data" in imaging.load_image(source).get_fields()

    pipeline = ThumbnailPipeline(source, Style(), local(source), settings)

    assert pipeline.decision.metadata
    with Image.open(pipeline.make()) as out:
        assert "exif" not in out.info


def test_remote_uploads_keep_metadata_when_untouched(tmp_path, settings):
    source = tmp_path / "camera.jpg"
    exif = Image.Exif()
    exif[0x010F] = "ACME"
    Image.new("RGB", (32, 32), (10, 20, 30)).save(source, exif=exif.tobytes())

    pipeline = ThumbnailPipeline(source, Style(), remote(source), settings)

    assert pipeline.make() == source


@pytest.mark.parametrize("style", [Style(), Style(geometry="20x20"), Style(geometry="20x20#"), Style(format="gif")])
def test_output_fields_are_allowed(tmp_path, settings, style):
    source = tmp_path / "annotated.png"
    text = PngInfo()
    text.add_text("Comment", "hello")
    Image.new("RGB", (64, 48), (90, 90, 200)).save(source, pnginfo=text, dpi=(300, 300))

    pipeline = ThumbnailPipeline(source, style, local(source), settings)

    assert set(pipeline.transformed_image().get_fields()) <= ALLOWED_FIELDS


def test_animated_gif_keeps_frames(make_gif, settings):
    source = make_gif(size=(50, 50), n_frames=4)
    pipeline = ThumbnailPipeline(source, Style(geometry="25x25"), remote(source), settings)

    assert pipeline.preserve_animation
    image = pipeline.transformed_image()
    assert image.height == 100
    assert image.get("page-height") == 25

    with Image.open(pipeline.make()) as out:
        assert out.format == "GIF"
        assert out.size == (25, 25)
        assert out.n_frames == 4


def test_animated_crop_reassembles_frames(make_gif, settings):
    source = make_gif(size=(20, 20), n_frames=3)
    pipeline = ThumbnailPipeline(source, Style(geometry="10x10#"), remote(source), settings)

    image = pipeline.transformed_image()

    assert image.get("page-height") == 10
    assert (image.width, image.height) == (10, 30)
    assert set(image.get_fields()) <= ALLOWED_FIELDS


def test_animation_dropped_for_static_format(make_gif, settings):
    source = make_gif(size=(50, 50), n_frames=4)
    pipeline = ThumbnailPipeline(source, Style(geometry="25x25", format="png"), remote(source), settings)

    assert not pipeline.preserve_animation
    with Image.open(pipeline.make()) as out:
        assert out.format == "PNG"
        assert out.size == (25, 25)


def test_outputs_never_collide(make_image, settings):
    source = make_image("same.png", size=(80, 80))

    first = ThumbnailPipeline(source, Style(geometry="20x20"), remote(source), settings).make()
    second = ThumbnailPipeline(source, Style(geometry="20x20"), remote(source), settings).make()

    assert first != second
    assert first.exists() and second.exists()


def test_failed_write_leaves_nothing_behind(make_image, settings, monkeypatch):
    source = make_image("doomed.png", size=(80, 80))

    def boom(image, path, **options):
        raise OSError("disk full")

    monkeypatch.setattr(imaging, "write_to_file", boom)
    pipeline = ThumbnailPipeline(source, Style(geometry="20x20"), remote(source), settings)

    with pytest.raises(OSError):
        pipeline.make()
    assert list(Path(settings.tmp_dir).iterdir()) == []


def test_corrupt_source(tmp_path, settings):
    source = tmp_path / "broken.png"
    source.write_bytes(b"\x89PNG garbage")

    with pytest.raises(ImageDecodeError):
        ThumbnailPipeline(source, Style(geometry="20x20"), remote(source), settings)


def test_malformed_geometry(make_image, settings):
    source = make_image("fine.png")

    with pytest.raises(InvalidGeometry):
        ThumbnailPipeline(source, Style(geometry="big"), remote(source), settings)
