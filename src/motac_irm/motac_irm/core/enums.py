from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Application role used for authorization."""

    ADMIN = "admin"
    IT_ADMIN = "it_admin"
    BPM_STAFF = "bpm_staff"
    STAFF = "staff"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class ServiceStatus(str, Enum):
    """Employment category declared on an email application."""

    PERMANENT = "permanent"
    CONTRACT = "contract"
    MYSTEP = "mystep"
    INTERN = "intern"
    OTHER_AGENCY = "other_agency"


class EmailApplicationStatus(str, Enum):
    DRAFT = "draft"
    PENDING_SUPPORT = "pending_support"
    PENDING_ADMIN = "pending_admin"
    APPROVED = "approved"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"
    PROVISION_FAILED = "provision_failed"


class LoanApplicationStatus(str, Enum):
    DRAFT = "draft"
    PENDING_SUPPORT = "pending_support"
    PENDING_ADMIN = "pending_admin"
    APPROVED = "approved"
    ISSUED = "issued"
    RETURNED = "returned"
    COMPLETED = "completed"
    REJECTED = "rejected"


class WorkflowAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    PROVISION = "provision"
    PROVISION_SUCCEEDED = "provision_succeeded"
    PROVISION_FAILED = "provision_failed"
    RETRY_PROVISION = "retry_provision"
    ISSUE = "issue"
    RETURN = "return"
    COMPLETE = "complete"


class ApprovableType(str, Enum):
    EMAIL_APPLICATION = "email_application"
    LOAN_APPLICATION = "loan_application"


class ApprovalStage(str, Enum):
    SUPPORT_REVIEW = "support_review"
    IT_ADMIN = "it_admin"
    BPM_REVIEW = "bpm_review"


class ApprovalDecision(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AssetType(str, Enum):
    LAPTOP = "laptop"
    PROJECTOR = "projector"
    PRINTER = "printer"
    MONITOR = "monitor"
    KEYBOARD = "keyboard"
    MOUSE = "mouse"
    WEBCAM = "webcam"
    OTHER = "other"


class EquipmentStatus(str, Enum):
    """Stored availability column of an equipment unit."""

    AVAILABLE = "available"
    ON_LOAN = "on_loan"
    UNDER_MAINTENANCE = "under_maintenance"
    DISPOSED = "disposed"


class EquipmentCondition(str, Enum):
    GOOD = "good"
    DAMAGED = "damaged"
    NEEDS_REPAIR = "needs_repair"
    LOST = "lost"


class LoanTransactionStatus(str, Enum):
    ISSUED = "issued"
    RETURNED = "returned"
    DAMAGED = "damaged"
    LOST = "lost"


class ImportStatus(str, Enum):
    """Lifecycle of a fingerprint spreadsheet import job."""

    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    FAILED_VALIDATION = "failed_validation"
