from __future__ import annotations

import os

from flask import request

from ..config import parse_bool
from .validation import _normalize_ip

# Behind Cloudflare/nginx the socket address is the proxy, not the uploader.
TRUST_PROXY_HEADERS = parse_bool(os.environ.get("CLOUDSTREAM_TRUST_PROXY_HEADERS", "true"))
PROXY_IP_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP")


def _get_request_ip() -> str | None:
    candidates = []
    if TRUST_PROXY_HEADERS:
        candidates.extend(request.headers.get(name) for name in PROXY_IP_HEADERS)
    candidates.append(request.remote_addr)

    for candidate in candidates:
        ip = _normalize_ip(candidate)
        if ip:
            return ip
    return None


def _get_rate_limit_key() -> str:
    try:
        ip = _get_request_ip()
    except RuntimeError:
        ip = None
    return ip or "unknown"
