from __future__ import annotations

import re

CATEGORIES: tuple[tuple[str, str], ...] = (
    ("horror_attacks", "هجمات مرعبة"),
    ("true_horror", "رعب حقيقي"),
    ("animal_horror", "رعب الحيوانات"),
    ("dangerous_scenes", "أخطر المشاهد"),
    ("terrifying_horrors", "أهوال مرعبة"),
    ("horror_comedy", "رعب كوميدي"),
    ("scary_moments", "لحظات مرعبة"),
    ("shock", "صدمة"),
)

_CATEGORY_LABELS = dict(CATEGORIES)

DEFAULT_CATEGORY = CATEGORIES[0][0]
DEFAULT_FOLDER = "عام"
DEFAULT_LABEL = "عام"

MANIFEST_NAME = "index.m3u8"

_WHITESPACE_RE = re.compile(r"\s+")


def is_known_category(category: str | None) -> bool:
    return category in _CATEGORY_LABELS


def category_label(category: str | None) -> str:
    return _CATEGORY_LABELS.get(category or "", DEFAULT_LABEL)


def category_folder(category: str | None) -> str:
    """
    Folder name used under videos/ for a category.

    Unknown categories map to the default folder instead of raising.
    """
    label = _CATEGORY_LABELS.get(category or "")
    if label is None:
        return DEFAULT_FOLDER
    return _WHITESPACE_RE.sub("_", label.strip())


def stream_object_prefix(category: str | None, asset_id: str) -> str:
    return f"videos/{category_folder(category)}/{asset_id}"


def stream_url(domain: str, category: str | None, asset_id: str) -> str:
    """Public HLS manifest URL: <domain>/videos/<folder>/<id>/index.m3u8."""
    base = (domain or "").rstrip("/")
    return f"{base}/{stream_object_prefix(category, asset_id)}/{MANIFEST_NAME}"


def list_categories() -> list[dict]:
    return [
        {"id": cat_id, "label": label, "folder": category_folder(cat_id)}
        for cat_id, label in CATEGORIES
    ]
