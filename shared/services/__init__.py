"""Shared services package."""

from .coverage_workflow_service import (
    CoverageWorkflowService,
    CoverageInput,
    PaymentDetails,
    AttachmentPayload,
)
from .coverage_query_service import CoverageQueryService
from .coverage_notification_service import CoverageNotificationService, NotificationIntent
from .maintenance_service import MaintenanceService

__all__ = [
    'CoverageWorkflowService',
    'CoverageInput',
    'PaymentDetails',
    'AttachmentPayload',
    'CoverageQueryService',
    'CoverageNotificationService',
    'NotificationIntent',
    'MaintenanceService',
]
