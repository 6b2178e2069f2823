from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..config import PipelineConfig, load_pipeline_config
from ..models import get_activity_engine
from .activity import ActivityLog
from .pipeline import PipelineService


@dataclass
class ServiceContainer:
    pipeline: PipelineService


def build_services(config: PipelineConfig | None = None) -> ServiceContainer:
    config = config or load_pipeline_config()
    activity = None
    if config.activity_enabled:
        activity = ActivityLog(
            get_activity_engine(config.activity_db_path), db_path=config.activity_db_path
        )
    return ServiceContainer(pipeline=PipelineService(config, activity=activity))


def init_services(app, services: ServiceContainer | None = None) -> ServiceContainer:
    container = services or build_services()
    app.extensions["services"] = container
    return container


def get_services() -> ServiceContainer:
    container = current_app.extensions.get("services")
    if container is None:
        container = build_services()
        current_app.extensions["services"] = container
    return container
