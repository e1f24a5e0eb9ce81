from __future__ import annotations
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

class Attachment(Protocol):
    file_path: Path
    original_filename: Optional[str]
    local: bool  # uploaded here rather than fetched from a remote origin

    def read_meta(self) -> Dict[str, Any]:
        ...

    def write_meta(self, meta: Dict[str, Any]) -> None:
        ...

@dataclass
class AttachmentRecord:
    """In-memory attachment. Storage backends implement the same `Attachment` protocol."""
    file_path: Path
    original_filename: Optional[str] = None
    local: bool = True
    meta: Dict[str, Any] = field(default_factory=dict)

    def read_meta(self) -> Dict[str, Any]:
        return dict(self.meta)

    def write_meta(self, meta: Dict[str, Any]) -> None:
        self.meta = dict(meta)

class TempfileFactory:
    def __init__(self, tmp_dir: Optional[str] = None) -> None:
        self.tmp_dir = tmp_dir

    def generate(self, name: str) -> Path:
        """Create an empty file `<stem><random token><ext>` and return its path."""
        stem, ext = os.path.splitext(os.path.basename(name))
        fd, path = tempfile.mkstemp(prefix=stem, suffix=ext, dir=self.tmp_dir)
        os.close(fd)
        return Path(path)
