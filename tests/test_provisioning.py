from __future__ import annotations

from src.motac_irm.motac_irm.core.enums import EmailApplicationStatus, Role
from src.motac_irm.motac_irm.email_applications.model import EmailApplication
from src.motac_irm.motac_irm.email_applications.provisioning import (
    AccountResult,
    EmailProvisioner,
    generate_temporary_password,
    slugify_name,
)
from src.motac_irm.motac_irm.users.model import User

USER = User(user_id=7, full_name="Nur Aisyah binti Razak", email="aisyah@example.com", password_hash="x", role=Role.STAFF, ic_number="950505-10-5555")


class RecordingGateway:
    def __init__(self):
        self.calls = []

    def create_account(self, *, user, email, temporary_password):
        self.calls.append((user.user_id, email, temporary_password))
        return AccountResult(email=email, user_id_assigned=email.split("@")[0])


def _app(proposed=None):
    return EmailApplication(application_id=1, user_id=7, status=EmailApplicationStatus.PROCESSING, proposed_email=proposed)


def test_slugify_uses_first_and_last_ascii_words():
    assert slugify_name("Nur Aisyah binti Razak") == "nur.razak"
    assert slugify_name("José") == "jose"
    assert slugify_name("  ") == "user"


def test_generated_address_gets_a_numeric_suffix_until_free():
    taken = {"nur.razak@motac.gov.my", "nur.razak1@motac.gov.my"}
    provisioner = EmailProvisioner(RecordingGateway(), is_taken=lambda email, user_id: email in taken)
    assert provisioner.generate_address(USER.full_name, USER.user_id) == "nur.razak2@motac.gov.my"


def test_proposed_address_is_used_only_inside_the_domain():
    provisioner = EmailProvisioner(RecordingGateway(), is_taken=lambda email, user_id: False)
    assert provisioner.choose_address(_app("Aisyah.R@MOTAC.gov.my"), USER) == "aisyah.r@motac.gov.my"
    assert provisioner.choose_address(_app("aisyah@gmail.com"), USER) == "nur.razak@motac.gov.my"


def test_provision_passes_a_temporary_password_to_the_gateway():
    gateway = RecordingGateway()
    result = EmailProvisioner(gateway, is_taken=lambda email, user_id: False).provision(_app(), USER)

    assert result.email == "nur.razak@motac.gov.my"
    assert result.user_id_assigned == "nur.razak"
    assert gateway.calls == [(7, "nur.razak@motac.gov.my", result.temporary_password)]
    assert len(result.temporary_password) == 12


def test_temporary_passwords_are_alphanumeric():
    password = generate_temporary_password(20)
    assert len(password) == 20 and password.isalnum()
