"""In-memory repositories shaped like the MySQL ones, for service tests."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence

from src.motac_irm.motac_irm.approvals.model import Approval
from src.motac_irm.motac_irm.core.enums import (
    ApprovableType,
    AssetType,
    EmailApplicationStatus,
    EquipmentCondition,
    EquipmentStatus,
    ImportStatus,
    LoanApplicationStatus,
    Role,
)
from src.motac_irm.motac_irm.core.exceptions import ConflictError
from src.motac_irm.motac_irm.email_applications.model import EmailApplication
from src.motac_irm.motac_irm.equipment.availability import (
    ensure_issuable,
    status_after_return,
    transaction_status_after_return,
)
from src.motac_irm.motac_irm.equipment.model import Equipment
from src.motac_irm.motac_irm.fingerprints.model import Fingerprint, FingerprintFilter, ImportJob
from src.motac_irm.motac_irm.grades.model import Grade
from src.motac_irm.motac_irm.loan_applications.model import LoanApplication, LoanItem, LoanTransaction
from src.motac_irm.motac_irm.users.department_model import Department
from src.motac_irm.motac_irm.users.model import User


class FakeUsers:
    def __init__(self, grades: "FakeGrades"):
        self._grades = grades
        self.users: dict[int, User] = {}
        self._next_id = 1

    def add(self, **kw) -> User:
        user_id = kw.pop("user_id", None) or self._next_id
        self._next_id = max(self._next_id, user_id) + 1
        grade = self._grades.get_by_id(kw["grade_id"]) if kw.get("grade_id") else None
        kw.setdefault("email", f"user{user_id}@example.com")
        kw.setdefault("password_hash", "x")
        kw.setdefault("role", Role.STAFF)
        kw.setdefault("ic_number", f"900101-14-{user_id:04d}")
        kw.setdefault("full_name", f"User {user_id}")
        user = User(user_id=user_id, grade_level=grade.level if grade else None, **kw)
        self.users[user_id] = user
        return user

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.users.get(int(user_id))

    def _find(self, field: str, value: Any) -> Optional[User]:
        return next((u for u in self.users.values() if getattr(u, field) == value), None)

    def get_by_email(self, email: str) -> Optional[User]:
        return self._find("email", email)

    def get_by_ic_number(self, ic_number: str) -> Optional[User]:
        return self._find("ic_number", ic_number)

    def get_by_personal_email(self, personal_email: str) -> Optional[User]:
        return self._find("personal_email", personal_email)

    def get_by_motac_email(self, motac_email: str) -> Optional[User]:
        return self._find("motac_email", motac_email)

    def create_user(self, **kw) -> int:
        return self.add(**kw).user_id

    def update_user(self, user_id: int, *, changes: Mapping[str, Any]) -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False
        changes = dict(changes)
        if "grade_id" in changes:
            grade = self._grades.get_by_id(changes["grade_id"]) if changes["grade_id"] else None
            changes["grade_level"] = grade.level if grade else None
        self.users[user_id] = replace(user, **changes)
        return True

    def soft_delete(self, user_id: int, *, deleted_at: datetime) -> bool:
        return self.update_user(user_id, changes={"deleted_at": deleted_at})

    def assign_motac_identity(self, user_id: int, *, motac_email: str, user_id_assigned: str) -> bool:
        return self.update_user(user_id, changes={"motac_email": motac_email, "user_id_assigned": user_id_assigned})

    def find_approver(self, *, min_grade_level: int, exclude_user_id: int) -> Optional[User]:
        candidates = [
            u
            for u in sorted(self.users.values(), key=lambda u: u.user_id)
            if u.is_active and u.user_id != exclude_user_id and (u.grade_level or 0) >= min_grade_level
        ]
        return candidates[0] if candidates else None

    def list_admin_view(self, *, include_deleted: bool = False) -> Sequence[dict]:
        return [
            {"user_id": u.user_id, "full_name": u.full_name, "email": u.email, "role": u.role.value}
            for u in self.users.values()
            if include_deleted or u.deleted_at is None
        ]


class FakeGrades:
    def __init__(self):
        self.grades: dict[int, Grade] = {}
        self.user_counts: dict[int, int] = {}
        self._next_id = 1

    def get_by_id(self, grade_id: int) -> Optional[Grade]:
        return self.grades.get(int(grade_id))

    def get_by_name(self, name: str) -> Optional[Grade]:
        return next((g for g in self.grades.values() if g.name == name), None)

    def get_by_level(self, level: int) -> Optional[Grade]:
        return next((g for g in self.grades.values() if g.level == level), None)

    def list_all(self) -> Sequence[Grade]:
        return sorted(self.grades.values(), key=lambda g: g.level)

    def create(self, *, name, level, is_approver_grade, min_approval_grade_id) -> int:
        grade_id = self._next_id
        self._next_id += 1
        self.grades[grade_id] = Grade(grade_id, name, level, is_approver_grade, min_approval_grade_id)
        return grade_id

    def update(self, grade_id, *, name, level, is_approver_grade, min_approval_grade_id) -> bool:
        self.grades[grade_id] = Grade(grade_id, name, level, is_approver_grade, min_approval_grade_id)
        return True

    def count_users(self, grade_id: int) -> int:
        return self.user_counts.get(grade_id, 0)

    def delete(self, grade_id: int) -> bool:
        return self.grades.pop(grade_id, None) is not None


class FakeDepartments:
    def __init__(self):
        self.departments = {1: Department(1, "Bahagian Pengurusan Maklumat", "BPM")}

    def list_all(self) -> Sequence[Department]:
        return list(self.departments.values())

    def get_by_id(self, dept_id: int) -> Optional[Department]:
        return self.departments.get(int(dept_id))


class FakeApprovals:
    def __init__(self):
        self.rows: list[Approval] = []

    def append(self, *, approvable_type, approvable_id, stage, decision, officer_id, comments, created_at) -> int:
        approval_id = len(self.rows) + 1
        self.rows.append(
            Approval(
                approval_id=approval_id,
                approvable_type=approvable_type,
                approvable_id=approvable_id,
                stage=stage,
                decision=decision,
                created_at=created_at,
                officer_id=officer_id,
                comments=comments,
            )
        )
        return approval_id

    def list_for(self, *, approvable_type: ApprovableType, approvable_id: int) -> Sequence[Approval]:
        rows = [r for r in self.rows if r.approvable_type == approvable_type and r.approvable_id == approvable_id]
        return sorted(rows, key=lambda r: (r.created_at, r.approval_id))

    def list_for_officer(self, *, officer_id, decision=None, approvable_type=None, limit=200) -> Sequence[Approval]:
        rows = [
            r
            for r in self.rows
            if r.officer_id == officer_id
            and (decision is None or r.decision == decision)
            and (approvable_type is None or r.approvable_type == approvable_type)
        ]
        return sorted(rows, key=lambda r: (r.created_at, r.approval_id), reverse=True)[:limit]


class FakeEquipment:
    def __init__(self, transactions: dict[int, LoanTransaction]):
        self.units: dict[int, Equipment] = {}
        self.transactions = transactions
        self._next_id = 1

    def add(self, asset_type: AssetType = AssetType.LAPTOP, **kw) -> Equipment:
        equipment_id = self._next_id
        self._next_id += 1
        kw.setdefault("brand", "Dell")
        kw.setdefault("model", "Latitude 5440")
        kw.setdefault("serial_number", f"SN-{equipment_id:04d}")
        kw.setdefault("current_location", "BPM Store Room")
        eq = Equipment(equipment_id=equipment_id, asset_type=asset_type, **kw)
        self.units[equipment_id] = eq
        return eq

    def get_by_id(self, equipment_id: int) -> Optional[Equipment]:
        return self.units.get(int(equipment_id))

    def get_by_serial(self, serial_number: str) -> Optional[Equipment]:
        return next((e for e in self.units.values() if e.serial_number == serial_number), None)

    def get_by_tag(self, tag_id: str) -> Optional[Equipment]:
        return next((e for e in self.units.values() if e.tag_id == tag_id), None)

    def create(self, *, values: Mapping[str, Any]) -> int:
        values = dict(values)
        return self.add(values.pop("asset_type"), **values).equipment_id

    def update(self, equipment_id: int, *, changes: Mapping[str, Any]) -> bool:
        eq = self.units.get(equipment_id)
        if eq is None:
            return False
        self.units[equipment_id] = replace(eq, **changes)
        return True

    def has_open_transaction(self, equipment_id: int) -> bool:
        return any(t.equipment_id == equipment_id and t.is_open for t in self.transactions.values())

    def list_with_open_flag(self, *, asset_type=None, status=None, search=None, limit: int = 200):
        rows = []
        for eq in self.units.values():
            if asset_type is not None and eq.asset_type != asset_type:
                continue
            if status is not None and eq.status != status:
                continue
            if search and search.lower() not in f"{eq.brand} {eq.model} {eq.serial_number}".lower():
                continue
            rows.append((eq, self.has_open_transaction(eq.equipment_id)))
        return rows[:limit]


class FakeEmailApplications:
    def __init__(self):
        self.apps: dict[int, EmailApplication] = {}
        self._next_id = 1

    def create_draft(self, *, user_id: int, values: Mapping[str, Any]) -> int:
        application_id = self._next_id
        self._next_id += 1
        self.apps[application_id] = EmailApplication(
            application_id=application_id,
            user_id=user_id,
            status=EmailApplicationStatus.DRAFT,
            **values,
        )
        return application_id

    def get_by_id(self, application_id: int) -> Optional[EmailApplication]:
        return self.apps.get(int(application_id))

    def update_draft(self, application_id: int, *, values: Mapping[str, Any]) -> bool:
        app = self.apps.get(application_id)
        if app is None or app.status != EmailApplicationStatus.DRAFT:
            return False
        self.apps[application_id] = replace(app, **values)
        return True

    def transition(self, application_id: int, *, expected: str, target: str, changes: Mapping[str, Any]) -> bool:
        app = self.apps.get(application_id)
        if app is None or app.status != EmailApplicationStatus(expected):
            return False
        self.apps[application_id] = replace(app, status=EmailApplicationStatus(target), **changes)
        return True

    def complete_provisioning(self, application_id: int, *, final_email, final_user_id, provisioned_at) -> bool:
        if self.final_email_taken(final_email):
            raise ConflictError("The assigned email or user id is already in use")
        return self.transition(
            application_id,
            expected=EmailApplicationStatus.PROCESSING.value,
            target=EmailApplicationStatus.COMPLETED.value,
            changes={
                "final_assigned_email": final_email,
                "final_assigned_user_id": final_user_id,
                "provisioned_at": provisioned_at,
                "provision_error": None,
            },
        )

    def final_email_taken(self, email: str) -> bool:
        return any(a.final_assigned_email == email for a in self.apps.values())

    def list_applications(self, *, user_id=None, status=None, limit: int = 200) -> Sequence[EmailApplication]:
        apps = [
            a
            for a in self.apps.values()
            if (user_id is None or a.user_id == user_id) and (status is None or a.status == status)
        ]
        return sorted(apps, key=lambda a: a.application_id, reverse=True)[:limit]


class FakeLoanApplications:
    """Serializes issue/return on one lock, standing in for row locks."""

    def __init__(self, equipment: FakeEquipment, transactions: dict[int, LoanTransaction]):
        self.apps: dict[int, LoanApplication] = {}
        self.transactions = transactions
        self._equipment = equipment
        self._lock = threading.Lock()
        self._next_id = 1

    @staticmethod
    def _items(items: Sequence[Mapping[str, Any]]) -> tuple[LoanItem, ...]:
        return tuple(
            LoanItem(
                item_id=i,
                line_no=i,
                equipment_type=AssetType(getattr(item["equipment_type"], "value", item["equipment_type"])),
                quantity_requested=int(item["quantity_requested"]),
                notes=item.get("notes"),
            )
            for i, item in enumerate(items, start=1)
        )

    def create_draft(self, *, user_id: int, values: Mapping[str, Any], items: Sequence[Mapping[str, Any]]) -> int:
        application_id = self._next_id
        self._next_id += 1
        self.apps[application_id] = LoanApplication(
            application_id=application_id,
            user_id=user_id,
            status=LoanApplicationStatus.DRAFT,
            items=self._items(items),
            **values,
        )
        return application_id

    def get_by_id(self, application_id: int) -> Optional[LoanApplication]:
        return self.apps.get(int(application_id))

    def update_draft(self, application_id: int, *, values: Mapping[str, Any], items=None) -> bool:
        app = self.apps.get(application_id)
        if app is None or app.status != LoanApplicationStatus.DRAFT:
            return False
        changes = dict(values)
        if items is not None:
            changes["items"] = self._items(items)
        self.apps[application_id] = replace(app, **changes)
        return True

    def transition(self, application_id: int, *, expected: str, target: str, changes: Mapping[str, Any]) -> bool:
        with self._lock:
            app = self.apps.get(application_id)
            if app is None or app.status != LoanApplicationStatus(expected):
                return False
            self.apps[application_id] = replace(app, status=LoanApplicationStatus(target), **changes)
            return True

    def _check_status(self, application_id: int, expected: str) -> LoanApplication:
        app = self.apps.get(application_id)
        if app is None or app.status != LoanApplicationStatus(expected):
            raise ConflictError("The application was changed by another user; reload and try again")
        return app

    def issue(
        self,
        application_id: int,
        *,
        expected,
        target,
        equipment_ids,
        issuing_officer_id,
        receiving_officer_id,
        accessories,
        issued_at,
    ) -> list[int]:
        with self._lock:
            app = self._check_status(application_id, expected)
            units = [self._equipment.units[i] for i in sorted(set(equipment_ids))]
            ensure_issuable([(eq, self._equipment.has_open_transaction(eq.equipment_id)) for eq in units])

            ids = []
            for eq in units:
                transaction_id = len(self.transactions) + 1
                self.transactions[transaction_id] = LoanTransaction(
                    transaction_id=transaction_id,
                    application_id=application_id,
                    equipment_id=eq.equipment_id,
                    issuing_officer_id=issuing_officer_id,
                    receiving_officer_id=receiving_officer_id,
                    issue_timestamp=issued_at,
                    accessories_on_issue=accessories,
                )
                self._equipment.units[eq.equipment_id] = replace(eq, status=EquipmentStatus.ON_LOAN)
                ids.append(transaction_id)

            issued = {}
            for eq in units:
                issued[eq.asset_type] = issued.get(eq.asset_type, 0) + 1
            items = tuple(replace(i, quantity_issued=i.quantity_issued + issued.pop(i.equipment_type, 0)) for i in app.items)
            self.apps[application_id] = replace(app, status=LoanApplicationStatus(target), items=items)
            return ids

    def return_equipment(
        self,
        application_id: int,
        *,
        expected,
        target,
        conditions: Mapping[int, EquipmentCondition],
        returning_officer_id,
        accepting_officer_id,
        accessories,
        notes,
        returned_at,
    ) -> int:
        with self._lock:
            app = self._check_status(application_id, expected)
            open_tx = [t for t in self.transactions.values() if t.application_id == application_id and t.is_open]
            if any(t.equipment_id not in conditions for t in open_tx):
                raise ConflictError("A return condition is needed for every unit on loan")
            for t in open_tx:
                condition = conditions[t.equipment_id]
                self.transactions[t.transaction_id] = replace(
                    t,
                    return_timestamp=returned_at,
                    returning_officer_id=returning_officer_id,
                    return_accepting_officer_id=accepting_officer_id,
                    accessories_on_return=accessories,
                    return_condition=condition,
                    return_notes=notes,
                    status=transaction_status_after_return(condition),
                )
                eq = self._equipment.units[t.equipment_id]
                self._equipment.units[t.equipment_id] = replace(
                    eq, status=status_after_return(condition), condition_status=condition
                )
            self.apps[application_id] = replace(app, status=LoanApplicationStatus(target))
            return len(open_tx)

    def list_transactions(self, application_id: int) -> Sequence[LoanTransaction]:
        return [t for t in self.transactions.values() if t.application_id == application_id]

    def list_applications(self, *, user_id=None, status=None, limit: int = 200) -> Sequence[LoanApplication]:
        apps = [
            a
            for a in self.apps.values()
            if (user_id is None or a.user_id == user_id) and (status is None or a.status == status)
        ]
        return sorted(apps, key=lambda a: a.application_id, reverse=True)[:limit]


class FakeFingerprints:
    def __init__(self):
        self.records: dict[int, Fingerprint] = {}
        self._next_id = 1

    def get_by_id(self, fingerprint_id: int) -> Optional[Fingerprint]:
        return self.records.get(int(fingerprint_id))

    def get_by_employee_and_date(self, employee_id: int, on: date) -> Optional[Fingerprint]:
        return next((r for r in self.records.values() if r.employee_id == employee_id and r.date == on), None)

    def create(self, *, values: Mapping[str, Any]) -> int:
        fingerprint_id = self._next_id
        self._next_id += 1
        self.records[fingerprint_id] = Fingerprint(fingerprint_id=fingerprint_id, **values)
        return fingerprint_id

    def update(self, fingerprint_id: int, *, changes: Mapping[str, Any]) -> bool:
        record = self.records.get(fingerprint_id)
        if record is None:
            return False
        self.records[fingerprint_id] = replace(record, **changes)
        return True

    def delete(self, fingerprint_id: int) -> bool:
        return self.records.pop(int(fingerprint_id), None) is not None

    def upsert(self, *, employee_id: int, on: date, values: Mapping[str, Any]) -> None:
        existing = self.get_by_employee_and_date(employee_id, on)
        if existing is not None:
            self.records[existing.fingerprint_id] = replace(existing, **values)
        else:
            self.create(values={"employee_id": employee_id, "date": on, **values})

    def list_filtered(self, filters: FingerprintFilter, *, limit: Optional[int] = None) -> Sequence[Fingerprint]:
        out = []
        for r in self.records.values():
            if filters.employee_id is not None and r.employee_id != filters.employee_id:
                continue
            if filters.date_from is not None and r.date < filters.date_from:
                continue
            if filters.date_to is not None and r.date > filters.date_to:
                continue
            if filters.is_absence and r.log is not None:
                continue
            if filters.is_one_fingerprint and not r.is_one_fingerprint:
                continue
            if filters.search and filters.search not in f"{r.log or ''} {r.excuse or ''}":
                continue
            out.append(r)
        out.sort(key=lambda r: (r.date, -r.employee_id), reverse=True)
        return out[:limit] if limit is not None else out


class FakeImportJobs:
    def __init__(self):
        self.jobs: dict[int, ImportJob] = {}
        self.updates: list[tuple[int, dict]] = []

    def create(self, *, file_name, file_size, file_ext, file_type, created_by, created_at) -> int:
        import_id = len(self.jobs) + 1
        self.jobs[import_id] = ImportJob(
            import_id=import_id,
            file_name=file_name,
            file_size=file_size,
            file_ext=file_ext,
            file_type=file_type,
            status=ImportStatus.WAITING,
            created_by=created_by,
            created_at=created_at,
        )
        return import_id

    def get_by_id(self, import_id: int) -> Optional[ImportJob]:
        return self.jobs.get(int(import_id))

    def update(self, import_id: int, *, changes: Mapping[str, Any]) -> None:
        self.updates.append((import_id, dict(changes)))
        self.jobs[import_id] = replace(self.jobs[import_id], **changes)

    def list_recent(self, *, limit: int = 20) -> Sequence[ImportJob]:
        return sorted(self.jobs.values(), key=lambda j: j.import_id, reverse=True)[:limit]
