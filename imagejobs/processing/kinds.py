"""Registry of job kinds.

Each kind bundles what the state machine needs to know about it: how to
normalise options, how to check an input, how to transform it and where the
output is published. Adding a kind means registering one more KindSpec; the
pipeline itself does not change.
"""

import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional

from loguru import logger
from PIL import Image, ImageOps
from pydantic import BaseModel, ConfigDict, Field

from imagejobs.config import Settings
from imagejobs.jobs.models import JobKind

_FORMAT_EXTENSIONS = {"jpeg": ".jpg", "png": ".png", "webp": ".webp"}
_QUALITY_FORMATS = {"JPEG", "WEBP"}


class ThumbnailOptions(BaseModel):
    """Raw thumbnail options as a client may send them."""
    model_config = ConfigDict(extra="forbid")

    width: Optional[int] = Field(default=None, ge=1, le=4096)
    height: Optional[int] = Field(default=None, ge=1, le=4096)
    quality: Optional[int] = Field(default=None, ge=1, le=100)
    format: Optional[Literal["jpeg", "png", "webp"]] = None
    preset: Optional[Literal["small", "medium", "large"]] = None


def normalize_thumbnail_options(raw: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    """Fill defaults so the stored parameters fully describe the output."""
    options = ThumbnailOptions.model_validate(raw)
    width, height = settings.thumbnail_preset(options.preset or "small")
    normalized: Dict[str, Any] = {
        "width": options.width or width,
        "height": options.height or height,
        "quality": options.quality or settings.thumbnail_quality,
    }
    if options.format:
        normalized["format"] = options.format
    if options.preset:
        normalized["preset"] = options.preset
    return normalized


def is_valid_thumbnail_source(path: str, min_dimension: int) -> bool:
    """Decodable image with both sides >= min_dimension (inclusive)."""
    try:
        with Image.open(path) as img:
            width, height = img.size
            img.verify()
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        logger.warning(f"Error validating image {path}: {exc}")
        return False
    return width >= min_dimension and height >= min_dimension


def thumbnail_filename(job_id: str, source_path: str, parameters: Dict[str, Any]) -> str:
    fmt = parameters.get("format")
    ext = _FORMAT_EXTENSIONS[fmt] if fmt else os.path.splitext(source_path)[1].lower()
    return f"{job_id}_thumbnail{ext or '.png'}"


def render_thumbnail(source_path: str, output_path: str, parameters: Dict[str, Any]) -> str:
    """Resize to cover the target box, cropping around the centre."""
    size = (int(parameters["width"]), int(parameters["height"]))
    with Image.open(source_path) as img:
        img = ImageOps.exif_transpose(img)
        thumb = ImageOps.fit(img, size, method=Image.LANCZOS, centering=(0.5, 0.5))

    fmt = Image.registered_extensions().get(os.path.splitext(output_path)[1].lower())
    save_kwargs: Dict[str, Any] = {}
    if fmt in _QUALITY_FORMATS:
        save_kwargs["quality"] = int(parameters.get("quality", 80))
    if fmt == "JPEG" and thumb.mode not in ("RGB", "L"):
        thumb = thumb.convert("RGB")
    thumb.save(output_path, format=fmt, **save_kwargs)
    return output_path


@dataclass
class KindSpec:
    """Everything the pipeline needs to run one kind of job."""
    kind: JobKind
    normalize: Callable[[Dict[str, Any], Settings], Dict[str, Any]]
    is_valid_source: Callable[[str, int], bool]
    output_filename: Callable[[str, str, Dict[str, Any]], str]
    transform: Callable[[str, str, Dict[str, Any]], str]
    storage_prefix: str


class KindRegistry:

    def __init__(self):
        self._kinds: Dict[JobKind, KindSpec] = {}

    def register(self, spec: KindSpec) -> None:
        self._kinds[spec.kind] = spec

    def get(self, kind: Any) -> Optional[KindSpec]:
        try:
            return self._kinds.get(JobKind(kind))
        except ValueError:
            return None

    def kinds(self) -> List[JobKind]:
        return list(self._kinds)


THUMBNAIL = KindSpec(
    kind=JobKind.THUMBNAIL,
    normalize=normalize_thumbnail_options,
    is_valid_source=is_valid_thumbnail_source,
    output_filename=thumbnail_filename,
    transform=render_thumbnail,
    storage_prefix="thumbnails",
)


def default_registry() -> KindRegistry:
    registry = KindRegistry()
    registry.register(THUMBNAIL)
    return registry
