# scripts/process_folder.py

from __future__ import annotations

import json
import logging
from pathlib import Path
import sys

# Allow running the script directly from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import AttachmentProcessor
from config import Settings
from domain.errors import ProcessingError
from services.attachment import AttachmentRecord

SUPPORTED_EXTS = (".jpg", ".jpeg", ".png", ".gif", ".webp")

log = logging.getLogger("process_folder")


def process_folder(base: Path) -> int:
    settings = Settings()
    processor = AttachmentProcessor(settings)

    count = 0
    try:
        for file in sorted(base.iterdir()):
            if not file.is_file() or file.suffix.lower() not in SUPPORTED_EXTS:
                continue
            record = AttachmentRecord(file_path=file, original_filename=file.name, local=True)
            try:
                outputs = processor.process(record)
            except ProcessingError:
                log.exception("Skipping %s", file.name)
                continue
            print(json.dumps({"file": file.name, "styles": {k: str(v) for k, v in outputs.items()}, "meta": record.meta}))
            count += 1
    finally:
        processor.close()

    return count


if __name__ == "__main__":
    folder = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("data/uploads")
    n = process_folder(folder)
    print(f"Processed {n} files.")
