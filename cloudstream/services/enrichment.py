from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass, field

import requests
from opentelemetry import trace

from ..errors import EnrichmentError
from ..metrics import ENRICHMENT_COUNT

logger = logging.getLogger("cloudstream.enrichment")
tracer = trace.get_tracer("cloudstream.enrichment")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
RETRY_BACKOFF_SECONDS = float(os.environ.get("CLOUDSTREAM_ENRICH_BACKOFF_SECONDS", "0.5"))
MAX_SUGGESTED_TAGS = 8

_WORD_SPLIT_RE = re.compile(r"[\s._\-]+")


@dataclass(frozen=True)
class EnrichmentSuggestion:
    title: str
    description: str
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"title": self.title, "description": self.description, "tags": list(self.tags)}


def _suggest_from_filename(source_name: str) -> EnrichmentSuggestion:
    stem = os.path.splitext(os.path.basename(source_name or ""))[0]
    words = [w for w in _WORD_SPLIT_RE.split(stem) if w]
    title = " ".join(words).strip() or "Untitled video"
    tags: list[str] = []
    for word in words:
        tag = word.lower()
        if len(tag) < 3 or tag.isdigit() or tag in tags:
            continue
        tags.append(tag)
    return EnrichmentSuggestion(
        title=title[:1].upper() + title[1:],
        description=f"{title}: uploaded clip ready for streaming.",
        tags=tags[:MAX_SUGGESTED_TAGS],
    )


def _parse_suggestion(data) -> EnrichmentSuggestion:
    if not isinstance(data, dict):
        raise EnrichmentError("Enrichment response is not an object")
    title = str(data.get("title") or "").strip()
    if not title:
        raise EnrichmentError("Enrichment response has no title")
    raw_tags = data.get("tags") or []
    if not isinstance(raw_tags, list):
        raise EnrichmentError("Enrichment response tags must be a list")
    return EnrichmentSuggestion(
        title=title,
        description=str(data.get("description") or "").strip(),
        tags=[str(t).strip() for t in raw_tags if str(t).strip()][:MAX_SUGGESTED_TAGS],
    )


class MetadataEnricher:
    """
    Suggests title, description and tags for an uploaded file name.

    With an endpoint configured the suggestion comes from that service, with
    retries on transient failures; otherwise it is derived locally from the
    file name.
    """

    def __init__(
        self,
        *,
        endpoint: str | None = None,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        backoff_seconds: float = RETRY_BACKOFF_SECONDS,
        session: requests.Session | None = None,
        sleep=time.sleep,
    ) -> None:
        self.endpoint = (endpoint or "").strip()
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._session = session or requests.Session()
        self._sleep = sleep

    def enrich(self, source_name: str) -> EnrichmentSuggestion:
        with tracer.start_as_current_span("cloudstream.enrich") as span:
            span.set_attribute("cloudstream.source_name", source_name or "")
            try:
                if not self.endpoint:
                    suggestion = _suggest_from_filename(source_name)
                else:
                    suggestion = self._fetch(source_name)
            except EnrichmentError:
                self._count("error")
                raise
            self._count("ok")
            return suggestion

    def _count(self, status: str) -> None:
        if ENRICHMENT_COUNT is not None:
            ENRICHMENT_COUNT.labels(status).inc()

    def _fetch(self, source_name: str) -> EnrichmentSuggestion:
        last_error = "unknown error"
        for attempt in range(1, self.max_attempts + 1):
            try:
                resp = self._session.post(
                    self.endpoint,
                    json={"filename": source_name},
                    timeout=self.timeout_seconds,
                )
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_error = f"request failed: {exc}"
                logger.warning(
                    "Enrichment attempt %s/%s failed: %s", attempt, self.max_attempts, exc
                )
            else:
                if resp.status_code in RETRYABLE_STATUS:
                    last_error = f"HTTP {resp.status_code}"
                    logger.warning(
                        "Enrichment attempt %s/%s got HTTP %s",
                        attempt,
                        self.max_attempts,
                        resp.status_code,
                    )
                elif resp.status_code >= 400:
                    raise EnrichmentError(
                        f"Enrichment rejected the request (HTTP {resp.status_code})",
                        attempts=attempt,
                    )
                else:
                    try:
                        data = resp.json()
                    except ValueError:
                        raise EnrichmentError(
                            "Enrichment response is not JSON", attempts=attempt
                        ) from None
                    return _parse_suggestion(data)
            if attempt < self.max_attempts:
                self._sleep(self.backoff_seconds * attempt)
        raise EnrichmentError(
            f"Enrichment failed after {self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts,
        )
