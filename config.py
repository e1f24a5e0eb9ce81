import os
from typing import Dict, Optional

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Style(BaseModel):
    """One named output of an attachment: "WxH" geometry, a pixel budget, or neither."""
    geometry: Optional[str] = None
    pixels: Optional[int] = None
    format: Optional[str] = None  # "jpg", "png", "gif", "webp"

def _default_styles() -> Dict[str, Style]:
    return {
        "original": Style(pixels=8_294_400),  # 3840x2160
        "small": Style(pixels=230_400),       # 640x360
    }

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    jpeg_quality: int = Field(90, validation_alias=AliasChoices("JPEG_QUALITY", "jpeg_quality"))
    tmp_dir: Optional[str] = Field(None, validation_alias=AliasChoices("TMP_DIR", "tmp_dir"))
    max_source_pixels: int = Field(33_177_600, validation_alias=AliasChoices("MAX_SOURCE_PIXELS", "max_source_pixels"))  # 7680x4320
    max_frames: int = Field(1000, validation_alias=AliasChoices("MAX_FRAMES", "max_frames"))
    workers: int = Field(min(4, os.cpu_count() or 2), validation_alias=AliasChoices("WORKERS", "workers"))
    extract_colors: bool = Field(True, validation_alias=AliasChoices("EXTRACT_COLORS", "extract_colors"))
    log_level: str = Field("INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    styles: Dict[str, Style] = Field(default_factory=_default_styles, validation_alias=AliasChoices("STYLES", "styles"))  # JSON in env
