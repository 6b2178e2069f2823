from __future__ import annotations

import ipaddress
import os
import re

VIDEO_EXTS = {
    "3gp",
    "avi",
    "flv",
    "m4v",
    "mkv",
    "mov",
    "mp4",
    "mpeg",
    "mpg",
    "mts",
    "ts",
    "webm",
    "wmv",
}

ASSET_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_ASSET_ID_LENGTH = 64


def is_valid_asset_id(value: str | None) -> bool:
    if not value or len(value) > MAX_ASSET_ID_LENGTH:
        return False
    return bool(ASSET_ID_RE.fullmatch(value))


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _normalize_ip(value: str | None) -> str | None:
    if not value:
        return None

    value = (value.split(",")[0] if "," in value else value).strip()

    if value.startswith("[") and "]" in value:
        value = value[1 : value.index("]")]
    elif re.fullmatch(r"\d+\.\d+\.\d+\.\d+:\d+", value):
        value = value.split(":")[0]

    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def _extract_extension(name: str) -> str | None:
    base = os.path.basename(name or "")
    if not base:
        return None
    ext = os.path.splitext(base)[1].lstrip(".").lower()
    return ext or None


def is_video_filename(name: str | None) -> bool:
    return _extract_extension(name or "") in VIDEO_EXTS
