# app.py

import argparse
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from config import Settings, Style
from domain.dtos import SourceImageInfo
from domain.errors import SourceTooLarge
from services import imaging
from services.attachment import Attachment, AttachmentRecord
from services.color_extractor import ColorExtractor
from services.thumbnailer import ThumbnailPipeline

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
log = logging.getLogger("app")


class AttachmentProcessor:
    """Composition root. Runs every configured style and the color extractor per attachment."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.pool = ThreadPoolExecutor(max_workers=max(1, settings.workers))

    def check_source(self, info: SourceImageInfo) -> None:
        # decode and resize cost grows with pixels and frames; refuse before paying it
        if info.pixels > self.settings.max_source_pixels:
            raise SourceTooLarge(
                f"{info.path.name}: {info.width}x{info.height} exceeds {self.settings.max_source_pixels} pixels"
            )
        if info.n_pages > self.settings.max_frames:
            raise SourceTooLarge(f"{info.path.name}: {info.n_pages} frames exceeds {self.settings.max_frames}")

    def process(self, attachment: Attachment) -> Dict[str, Path]:
        info = imaging.read_info(attachment.file_path)
        self.check_source(info)

        outputs: Dict[str, Path] = {}
        meta = attachment.read_meta() or {}
        try:
            for name, style in self.settings.styles.items():
                pipeline = ThumbnailPipeline(attachment.file_path, style, attachment, self.settings, current=info)
                outputs[name] = pipeline.make()
                produced = imaging.read_info(outputs[name])
                meta[name] = {
                    "width": produced.width,
                    "height": produced.height,
                    "aspect": produced.width / produced.height,
                }
        except BaseException:
            # earlier styles' files are nobody's result now
            for path in outputs.values():
                if path != Path(attachment.file_path):
                    path.unlink(missing_ok=True)
            raise
        attachment.write_meta(meta)

        if self.settings.extract_colors:
            ColorExtractor(attachment.file_path, attachment).make()
        return outputs

    def process_many(self, attachments: Iterable[Attachment]) -> List[Dict[str, Path]]:
        return list(self.pool.map(self.process, attachments))

    def close(self) -> None:
        self.pool.shutdown(wait=True)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate attachment styles and colors")
    parser.add_argument("paths", nargs="+", help="image files to process")
    parser.add_argument("--remote", action="store_true", help="treat files as remote-origin (keep metadata)")
    parser.add_argument("--style", action="append", default=[], metavar="NAME=GEOMETRY[:FORMAT]",
                        help="override configured styles, e.g. avatar=400x400#:png")
    return parser.parse_args(argv)


def parse_style(value: str) -> tuple:
    name, _, spec = value.partition("=")
    geometry, _, fmt = spec.partition(":")
    return name, Style(geometry=geometry or None, format=fmt or None)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    settings = Settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    if args.style:
        settings.styles = dict(parse_style(value) for value in args.style)

    processor = AttachmentProcessor(settings)
    records = [AttachmentRecord(file_path=Path(p), original_filename=Path(p).name, local=not args.remote)
               for p in args.paths]
    try:
        for record, outputs in zip(records, processor.process_many(records)):
            print(json.dumps({
                "file": str(record.file_path),
                "styles": {name: str(path) for name, path in outputs.items()},
                "meta": record.meta,
            }))
    finally:
        processor.close()
    log.info("Processed %d attachments", len(records))


if __name__ == "__main__":
    try:
        main()
    except (KeyboardInterrupt, SystemExit):
        pass
