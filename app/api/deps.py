"""API dependencies exposing the long-lived monitoring services."""

from typing import Annotated

from fastapi import Depends, Request

from app.config import Settings
from app.core.metrics import RequestMetrics
from app.services.error_notification_service import ErrorNotificationService
from app.services.health_monitor import HealthMonitor


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_error_service(request: Request) -> ErrorNotificationService:
    """Error notification service owned by the application."""
    return request.app.state.error_service


def get_health_monitor(request: Request) -> HealthMonitor:
    """Health monitor owned by the application."""
    return request.app.state.health_monitor


def get_request_metrics(request: Request) -> RequestMetrics:
    return request.app.state.request_metrics


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
ErrorServiceDep = Annotated[ErrorNotificationService, Depends(get_error_service)]
HealthMonitorDep = Annotated[HealthMonitor, Depends(get_health_monitor)]
RequestMetricsDep = Annotated[RequestMetrics, Depends(get_request_metrics)]
