import os
import sys
import tempfile
import time

BASE_DIR = tempfile.mkdtemp(prefix="cloudstream-tests-")

os.environ["CLOUDSTREAM_ACTIVITY_DB_PATH"] = os.path.join(BASE_DIR, "activity.sqlite3")
os.environ["CLOUDSTREAM_ACTIVITY_ENABLED"] = "true"
os.environ["CLOUDSTREAM_ENRICH_URL"] = ""
os.environ["CLOUDSTREAM_ENRICH_BACKOFF_SECONDS"] = "0"
os.environ["CLOUDSTREAM_TICK_INTERVAL_MS"] = "5"
os.environ["CLOUDSTREAM_RATE_LIMIT_SUBMISSIONS"] = "10000 per minute"
os.environ["CLOUDSTREAM_RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["CLOUDSTREAM_LOG_FORMAT"] = "plain"
os.environ["CLOUDSTREAM_METRICS_ENABLED"] = "false"
os.environ["CLOUDSTREAM_OTEL_ENABLED"] = "false"
os.environ["CLOUDSTREAM_SENTRY_DSN"] = ""

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

from cloudstream.config import PipelineConfig
from cloudstream.models import _sqlite_engine
from cloudstream.services.activity import ActivityLog
from cloudstream.services.container import ServiceContainer
from cloudstream.services.pipeline import PipelineService


def _wait_until(predicate, timeout=5.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture()
def wait_for():
    return _wait_until


@pytest.fixture()
def fast_config(tmp_path):
    return PipelineConfig(
        public_domain="https://media.example.com",
        tick_interval_ms=5,
        progress_step_min=10.0,
        progress_step_max=20.0,
        notification_timeout_ms=2000,
        activity_db_path=str(tmp_path / "activity.sqlite3"),
    )


@pytest.fixture()
def activity_log(fast_config):
    path = fast_config.activity_db_path
    return ActivityLog(_sqlite_engine(path), db_path=path)


@pytest.fixture()
def pipeline(fast_config, activity_log):
    service = PipelineService(fast_config, activity=activity_log)
    yield service
    service.shutdown()


@pytest.fixture()
def services(pipeline):
    return ServiceContainer(pipeline=pipeline)


@pytest.fixture()
def app(services):
    from cloudstream.server import create_app

    return create_app(services=services, config_overrides={"TESTING": True})


@pytest.fixture()
def client(app):
    return app.test_client()
