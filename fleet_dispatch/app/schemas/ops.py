"""
Ops schemas.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fleet_dispatch.app.models.dlq import DLQStatus
from fleet_dispatch.app.schemas.common import CamelModel


class DLQItemResponse(CamelModel):
    id: int
    task_name: str
    error_message: str
    payload: Optional[Dict[str, Any]]
    status: DLQStatus
    retry_count: int
    created_at: datetime
    last_retry_at: Optional[datetime]


class ExpireNotificationsResponse(CamelModel):
    expired: int


class AuditLogResponse(CamelModel):
    id: int
    action: str
    trip_id: Optional[str]
    actor_id: Optional[str]
    actor_type: Optional[str]
    meta_data: Optional[Dict[str, Any]]
    timestamp: datetime
