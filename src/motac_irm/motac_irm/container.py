from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .approvals.mysql_approval_repository import MySQLApprovalRepository
from .approvals.service import ApprovalLedger
from .core.constants import (
    DEFAULT_EMAIL_DOMAIN,
    DEFAULT_IMPORT_MAX_ROWS,
    DEFAULT_MAX_PROVISION_ATTEMPTS,
    DEFAULT_MIN_APPROVER_GRADE_LEVEL,
    DEFAULT_PASSWORD_CONFIRM_SECONDS,
)
from .database.connection import DBConfig, DatabaseConnection
from .email_applications.mysql_email_application_repository import MySQLEmailApplicationRepository
from .email_applications.provisioning import DirectoryAccountGateway, EmailProvisioner
from .email_applications.service import EmailApplicationService
from .equipment.mysql_equipment_repository import MySQLEquipmentRepository
from .equipment.service import EquipmentService
from .fingerprints.import_queue import ImportQueue
from .fingerprints.importer import FingerprintImporter
from .fingerprints.mysql_fingerprint_repository import MySQLFingerprintRepository, MySQLImportJobRepository
from .fingerprints.service import FingerprintService, resolve_employee
from .grades.mysql_grade_repository import MySQLGradeRepository
from .grades.service import GradeService
from .loan_applications.mysql_loan_application_repository import MySQLLoanApplicationRepository
from .loan_applications.service import LoanApplicationService
from .users.mysql_department_repository import MySQLDepartmentRepository
from .users.mysql_user_repository import MySQLUserRepository
from .users.service import AuthService, UserService


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    users_repo: MySQLUserRepository
    departments_repo: MySQLDepartmentRepository
    grades_repo: MySQLGradeRepository
    equipment_repo: MySQLEquipmentRepository
    approvals_repo: MySQLApprovalRepository
    email_applications_repo: MySQLEmailApplicationRepository
    loan_applications_repo: MySQLLoanApplicationRepository
    fingerprints_repo: MySQLFingerprintRepository
    imports_repo: MySQLImportJobRepository

    auth_service: AuthService
    user_service: UserService
    grade_service: GradeService
    equipment_service: EquipmentService
    approval_ledger: ApprovalLedger
    email_application_service: EmailApplicationService
    loan_application_service: LoanApplicationService
    fingerprint_service: FingerprintService
    import_queue: Optional[ImportQueue] = None


def wire_services(
    *,
    conn: Optional[DatabaseConnection],
    users_repo,
    departments_repo,
    grades_repo,
    equipment_repo,
    approvals_repo,
    email_applications_repo,
    loan_applications_repo,
    fingerprints_repo,
    imports_repo,
    min_approver_grade_level: int = DEFAULT_MIN_APPROVER_GRADE_LEVEL,
    email_domain: str = DEFAULT_EMAIL_DOMAIN,
    max_provision_attempts: int = DEFAULT_MAX_PROVISION_ATTEMPTS,
    password_confirm_seconds: int = DEFAULT_PASSWORD_CONFIRM_SECONDS,
    import_max_rows: int = DEFAULT_IMPORT_MAX_ROWS,
    import_queue: Optional[ImportQueue] = None,
) -> Container:
    """Build services on top of any repository set (MySQL in the app, in-memory in tests)."""

    def email_taken(email: str, applicant_id: int) -> bool:
        # An address the applicant already holds (left over from a failed completion) is theirs to reuse.
        if email_applications_repo.final_email_taken(email):
            return True
        holder = users_repo.get_by_motac_email(email)
        return holder is not None and holder.user_id != applicant_id

    approval_ledger = ApprovalLedger(approvals_repo)
    provisioner = EmailProvisioner(DirectoryAccountGateway(users_repo), is_taken=email_taken, domain=email_domain)
    importer = FingerprintImporter(
        fingerprints_repo,
        imports_repo,
        resolve_employee=lambda value: resolve_employee(users_repo, value),
        max_rows=import_max_rows,
    )

    return Container(
        conn=conn,
        users_repo=users_repo,
        departments_repo=departments_repo,
        grades_repo=grades_repo,
        equipment_repo=equipment_repo,
        approvals_repo=approvals_repo,
        email_applications_repo=email_applications_repo,
        loan_applications_repo=loan_applications_repo,
        fingerprints_repo=fingerprints_repo,
        imports_repo=imports_repo,
        auth_service=AuthService(users_repo, confirm_seconds=password_confirm_seconds),
        user_service=UserService(users_repo, grades_repo, departments_repo),
        grade_service=GradeService(grades_repo),
        equipment_service=EquipmentService(equipment_repo, departments_repo),
        approval_ledger=approval_ledger,
        email_application_service=EmailApplicationService(
            email_applications_repo,
            approval_ledger,
            users_repo,
            provisioner,
            min_approver_grade_level=min_approver_grade_level,
            max_provision_attempts=max_provision_attempts,
        ),
        loan_application_service=LoanApplicationService(
            loan_applications_repo,
            approval_ledger,
            users_repo,
            equipment_repo,
            min_approver_grade_level=min_approver_grade_level,
        ),
        fingerprint_service=FingerprintService(
            fingerprints_repo,
            imports_repo,
            users_repo,
            importer,
            queue=import_queue,
        ),
        import_queue=import_queue,
    )


def build_container(*, db_config: dict, settings: Optional[dict] = None) -> Container:
    settings = settings or {}
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))

    import_queue = None
    if settings.get("IMPORT_ASYNC"):
        import_queue = ImportQueue(max_workers=int(settings.get("IMPORT_WORKERS", 2)))

    return wire_services(
        conn=conn,
        users_repo=MySQLUserRepository(conn),
        departments_repo=MySQLDepartmentRepository(conn),
        grades_repo=MySQLGradeRepository(conn),
        equipment_repo=MySQLEquipmentRepository(conn),
        approvals_repo=MySQLApprovalRepository(conn),
        email_applications_repo=MySQLEmailApplicationRepository(conn),
        loan_applications_repo=MySQLLoanApplicationRepository(conn),
        fingerprints_repo=MySQLFingerprintRepository(conn),
        imports_repo=MySQLImportJobRepository(conn),
        min_approver_grade_level=int(settings.get("MIN_APPROVER_GRADE_LEVEL", DEFAULT_MIN_APPROVER_GRADE_LEVEL)),
        email_domain=str(settings.get("EMAIL_DOMAIN", DEFAULT_EMAIL_DOMAIN)),
        max_provision_attempts=int(settings.get("MAX_PROVISION_ATTEMPTS", DEFAULT_MAX_PROVISION_ATTEMPTS)),
        password_confirm_seconds=int(settings.get("PASSWORD_CONFIRM_SECONDS", DEFAULT_PASSWORD_CONFIRM_SECONDS)),
        import_max_rows=int(settings.get("IMPORT_MAX_ROWS", DEFAULT_IMPORT_MAX_ROWS)),
        import_queue=import_queue,
    )
