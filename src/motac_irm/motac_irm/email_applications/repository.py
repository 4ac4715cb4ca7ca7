from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, Protocol, Sequence

from ..core.enums import EmailApplicationStatus
from .model import EmailApplication


class EmailApplicationRepository(Protocol):
    def create_draft(self, *, user_id: int, values: Mapping[str, Any]) -> int:
        raise NotImplementedError

    def get_by_id(self, application_id: int) -> Optional[EmailApplication]:
        raise NotImplementedError

    def update_draft(self, application_id: int, *, values: Mapping[str, Any]) -> bool:
        """Only touches rows still in ``draft``."""

        raise NotImplementedError

    def transition(
        self,
        application_id: int,
        *,
        expected: str,
        target: str,
        changes: Mapping[str, Any],
    ) -> bool:
        """Set ``status=target`` (plus ``changes``) only if status is still ``expected``."""

        raise NotImplementedError

    def complete_provisioning(
        self,
        application_id: int,
        *,
        final_email: str,
        final_user_id: str,
        provisioned_at: datetime,
    ) -> bool:
        """processing -> completed together with the assigned identity, in one write."""

        raise NotImplementedError

    def final_email_taken(self, email: str) -> bool:
        raise NotImplementedError

    def list_applications(
        self,
        *,
        user_id: Optional[int] = None,
        status: Optional[EmailApplicationStatus] = None,
        limit: int = 200,
    ) -> Sequence[EmailApplication]:
        raise NotImplementedError
