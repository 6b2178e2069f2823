from __future__ import annotations

import json
import logging
import os
import threading
import time

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from ..models import ActivityBase
from ..models.activity import ActivityEvent

logger = logging.getLogger("cloudstream.activity")

ACTIONS = {
    "submitted",
    "resubmitted",
    "published",
    "failed",
    "enrichment_failed",
    "deleted",
}


class ActivityLog:
    """Append-only audit trail of pipeline actions. Write failures are logged, never raised."""

    def __init__(self, engine, *, db_path: str | None = None, enabled: bool = True) -> None:
        self._engine = engine
        self._db_path = db_path
        self.enabled = enabled
        self._ready = False
        self._init_lock = threading.Lock()

    def _ensure_db(self) -> None:
        if self._ready:
            return
        with self._init_lock:
            if self._ready:
                return
            db_dir = os.path.dirname(self._db_path or "")
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
            ActivityBase.metadata.create_all(self._engine)
            self._ready = True

    def record(self, action: str, asset_id: str, detail: dict | None = None) -> None:
        if not self.enabled:
            return
        if action not in ACTIONS:
            raise ValueError(f"Unknown activity action: {action}")
        row = {
            "asset_id": asset_id,
            "action": action,
            "detail": json.dumps(detail, ensure_ascii=False) if detail is not None else None,
            "created_at": int(time.time()),
        }
        for attempt in range(3):
            try:
                self._ensure_db()
                with self._engine.begin() as conn:
                    conn.execute(ActivityEvent.__table__.insert(), row)
                return
            except OperationalError as exc:
                if "locked" not in str(exc).lower() or attempt == 2:
                    logger.warning("Activity logging failed: %s", exc)
                    return
                time.sleep(0.05 * (attempt + 1))
            except Exception as exc:
                logger.warning("Activity logging failed: %s", exc)
                return

    def recent(self, limit: int = 100, asset_id: str | None = None) -> list[dict]:
        if not self.enabled:
            return []
        self._ensure_db()
        table = ActivityEvent.__table__
        query = select(table).order_by(table.c.created_at.desc(), table.c.id.desc())
        if asset_id:
            query = query.where(table.c.asset_id == asset_id)
        query = query.limit(max(1, min(int(limit), 1000)))
        with self._engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        events = []
        for row in rows:
            item = dict(row)
            raw = item.get("detail")
            item["detail"] = json.loads(raw) if raw else None
            events.append(item)
        return events

    def ping(self) -> None:
        self._ensure_db()
        with self._engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
