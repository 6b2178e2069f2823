from __future__ import annotations

import os

from flask_limiter import Limiter

from ..utils.request import _get_rate_limit_key

RATE_LIMIT_SUBMISSIONS = os.environ.get("CLOUDSTREAM_RATE_LIMIT_SUBMISSIONS", "50 per hour")

limiter = Limiter(key_func=_get_rate_limit_key, default_limits=[])


def init_rate_limiter(app) -> None:
    limiter.init_app(app)
