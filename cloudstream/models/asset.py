from __future__ import annotations

import copy
import enum
import time
from dataclasses import asdict, dataclass, field, replace

from ..errors import ValidationError
from ..services.catalog import DEFAULT_CATEGORY, category_label, is_known_category

CROP_BOTTOM_MAX_PX = 200
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 5000
MAX_TAGS = 30


class AssetStatus(str, enum.Enum):
    PENDING = "pending"
    ENRICHMENT_FAILED = "enrichment_failed"
    PROCESSING_TRANSCODE = "processing_transcode"
    UPLOADING = "uploading"
    PUBLISHED = "published"
    FAILED = "failed"


# Rank along the happy path; status never moves backwards within one run.
STATUS_ORDER = {
    AssetStatus.PENDING: 0,
    AssetStatus.PROCESSING_TRANSCODE: 1,
    AssetStatus.UPLOADING: 2,
    AssetStatus.PUBLISHED: 3,
}

ACTIVE_STATUSES = frozenset({AssetStatus.PROCESSING_TRANSCODE, AssetStatus.UPLOADING})


class NotificationKind(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"


def _format_size(num_bytes: int | None) -> str | None:
    if num_bytes is None:
        return None
    mb = num_bytes / (1024 * 1024)
    if mb >= 1024:
        return f"{mb / 1024:.2f} GB"
    return f"{mb:.2f} MB"


def _normalize_tags(raw) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        items = raw
    else:
        raise ValidationError("tags must be a list of strings")
    tags: list[str] = []
    seen = set()
    for item in items:
        tag = str(item or "").strip().lstrip("#")
        if not tag or tag in seen:
            continue
        seen.add(tag)
        tags.append(tag)
    if len(tags) > MAX_TAGS:
        raise ValidationError(f"At most {MAX_TAGS} tags are allowed")
    return tags


def _parse_crop(value) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationError("crop_bottom_px must be an integer")
    try:
        crop = int(value)
    except (TypeError, ValueError):
        raise ValidationError("crop_bottom_px must be an integer") from None
    if crop != float(value):
        raise ValidationError("crop_bottom_px must be an integer")
    if crop < 0 or crop > CROP_BOTTOM_MAX_PX:
        raise ValidationError(f"crop_bottom_px must be between 0 and {CROP_BOTTOM_MAX_PX}")
    return crop


@dataclass
class AssetMetadata:
    title: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    category: str = DEFAULT_CATEGORY
    ai_generated: bool = False
    is_shorts: bool = False
    crop_bottom_px: int = 0

    @property
    def aspect_ratio(self) -> str:
        return "9:16" if self.is_shorts else "16:9"

    @classmethod
    def from_payload(cls, payload: dict | None, base: AssetMetadata | None = None) -> AssetMetadata:
        """
        Builds metadata from a JSON payload.

        Keys missing from the payload keep the value from ``base`` (or the
        defaults), so the same parser serves submissions and partial edits.
        """
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationError("metadata must be an object")
        current = copy.deepcopy(base) if base is not None else cls()

        if "title" in payload:
            current.title = str(payload.get("title") or "").strip()[:MAX_TITLE_LENGTH]
        if "description" in payload:
            current.description = str(payload.get("description") or "").strip()[
                :MAX_DESCRIPTION_LENGTH
            ]
        if "tags" in payload:
            current.tags = _normalize_tags(payload.get("tags"))
        if "category" in payload:
            category = str(payload.get("category") or "").strip()
            if not is_known_category(category):
                raise ValidationError(f"Unknown category: {category or '(empty)'}")
            current.category = category
        if "ai_generated" in payload:
            current.ai_generated = bool(payload.get("ai_generated"))
        if "is_shorts" in payload:
            current.is_shorts = bool(payload.get("is_shorts"))
        if "crop_bottom_px" in payload:
            current.crop_bottom_px = _parse_crop(payload.get("crop_bottom_px"))
        return current

    def with_suggestion(self, suggestion) -> AssetMetadata:
        """Returns a copy carrying the enrichment suggestion; other fields are untouched."""
        return replace(
            self,
            title=suggestion.title,
            description=suggestion.description,
            tags=_normalize_tags(list(suggestion.tags)),
            ai_generated=True,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["category_label"] = category_label(self.category)
        data["aspect_ratio"] = self.aspect_ratio
        return data


@dataclass
class AssetRecord:
    id: str
    source_name: str
    original_size_bytes: int
    metadata: AssetMetadata = field(default_factory=AssetMetadata)
    status: AssetStatus = AssetStatus.PENDING
    progress: int = 0
    compressed_size_bytes: int | None = None
    stream_url: str | None = None
    error: str | None = None
    submitted_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    published_at: float | None = None
    run_id: int = 0

    @property
    def is_published(self) -> bool:
        return self.status == AssetStatus.PUBLISHED

    def snapshot(self) -> AssetRecord:
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_name": self.source_name,
            "original_size_bytes": self.original_size_bytes,
            "original_size": _format_size(self.original_size_bytes),
            "compressed_size_bytes": self.compressed_size_bytes,
            "compressed_size": _format_size(self.compressed_size_bytes),
            "status": self.status.value,
            "progress": self.progress,
            "stream_url": self.stream_url,
            "error": self.error,
            "metadata": self.metadata.to_dict(),
            "submitted_at": self.submitted_at,
            "updated_at": self.updated_at,
            "published_at": self.published_at,
        }


@dataclass
class NotificationEvent:
    id: str
    message: str
    kind: NotificationKind
    created_at: float
    expires_at: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "message": self.message,
            "kind": self.kind.value,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }


@dataclass(frozen=True)
class StorageStats:
    count: int
    used_bytes: int
    percentage: float
    quota_bytes: int

    @property
    def used_gb(self) -> float:
        return round(self.used_bytes / (1024**3), 4)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "used_bytes": self.used_bytes,
            "used_gb": self.used_gb,
            "percentage": round(self.percentage, 1),
            "quota_bytes": self.quota_bytes,
        }
