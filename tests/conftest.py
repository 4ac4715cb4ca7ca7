from __future__ import annotations

from dataclasses import dataclass

import pytest

from src.motac_irm.motac_irm.container import Container, wire_services
from src.motac_irm.motac_irm.core.enums import Role
from src.motac_irm.motac_irm.users.model import Actor, User

from tests.fakes import (
    FakeApprovals,
    FakeDepartments,
    FakeEmailApplications,
    FakeEquipment,
    FakeFingerprints,
    FakeGrades,
    FakeImportJobs,
    FakeLoanApplications,
    FakeUsers,
)


@dataclass
class World:
    container: Container
    users: FakeUsers
    grades: FakeGrades
    equipment: FakeEquipment
    approvals: FakeApprovals
    email_applications: FakeEmailApplications
    loan_applications: FakeLoanApplications
    fingerprints: FakeFingerprints
    imports: FakeImportJobs

    admin: User
    it_admin: User
    bpm: User
    approver: User
    staff: User

    @staticmethod
    def actor(user: User) -> Actor:
        return Actor.from_user(user)


@pytest.fixture
def world() -> World:
    grades = FakeGrades()
    n19 = grades.create(name="N19", level=19, is_approver_grade=False, min_approval_grade_id=None)
    n44 = grades.create(name="N44", level=44, is_approver_grade=True, min_approval_grade_id=None)

    users = FakeUsers(grades)
    admin = users.add(full_name="Admin MOTAC", email="admin@motac.gov.my", role=Role.ADMIN)
    it_admin = users.add(full_name="Siti IT", email="it@motac.gov.my", role=Role.IT_ADMIN, grade_id=n19)
    bpm = users.add(full_name="Bakar BPM", email="bpm@motac.gov.my", role=Role.BPM_STAFF, grade_id=n19)
    approver = users.add(full_name="Dato Pegawai", email="approver@motac.gov.my", role=Role.STAFF, grade_id=n44)
    staff = users.add(full_name="Ahmad bin Ali", email="ahmad@example.com", role=Role.STAFF, grade_id=n19)

    transactions: dict = {}
    equipment = FakeEquipment(transactions)
    approvals = FakeApprovals()
    email_applications = FakeEmailApplications()
    loan_applications = FakeLoanApplications(equipment, transactions)
    fingerprints = FakeFingerprints()
    imports = FakeImportJobs()

    container = wire_services(
        conn=None,
        users_repo=users,
        departments_repo=FakeDepartments(),
        grades_repo=grades,
        equipment_repo=equipment,
        approvals_repo=approvals,
        email_applications_repo=email_applications,
        loan_applications_repo=loan_applications,
        fingerprints_repo=fingerprints,
        imports_repo=imports,
        import_max_rows=100,
    )
    return World(
        container=container,
        users=users,
        grades=grades,
        equipment=equipment,
        approvals=approvals,
        email_applications=email_applications,
        loan_applications=loan_applications,
        fingerprints=fingerprints,
        imports=imports,
        admin=admin,
        it_admin=it_admin,
        bpm=bpm,
        approver=approver,
        staff=staff,
    )
