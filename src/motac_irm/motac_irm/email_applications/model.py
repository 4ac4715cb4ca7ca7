from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Optional

from ..core.enums import EmailApplicationStatus, ServiceStatus


@dataclass(frozen=True)
class EmailApplication:
    RESOURCE: ClassVar[str] = "email_application"

    application_id: int
    user_id: int
    status: EmailApplicationStatus
    service_status: Optional[ServiceStatus] = None
    purpose: Optional[str] = None
    proposed_email: Optional[str] = None
    group_email: Optional[str] = None
    group_admin_name: Optional[str] = None
    group_admin_email: Optional[str] = None
    certification_accepted: bool = False
    certification_timestamp: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    final_assigned_email: Optional[str] = None
    final_assigned_user_id: Optional[str] = None
    provisioned_at: Optional[datetime] = None
    provision_attempts: int = 0
    provision_error: Optional[str] = None
    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_group_request(self) -> bool:
        return bool(self.group_email)
