"""Email account provisioning.

Address generation follows the ``first.last@<domain>`` convention with a
numeric suffix until the address is free. The account itself is created by an
:class:`AccountGateway`; the default gateway records the identity on the
user's directory entry.
"""

from __future__ import annotations

import re
import secrets
import string
import unicodedata
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ..common.log import get_logger
from ..core.constants import DEFAULT_EMAIL_DOMAIN, TEMP_PASSWORD_LENGTH
from ..core.exceptions import ExternalServiceError
from ..users.model import User
from ..users.repository import UserRepository
from .model import EmailApplication

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccountResult:
    email: str
    user_id_assigned: str


@dataclass(frozen=True)
class ProvisioningResult:
    email: str
    user_id_assigned: str
    temporary_password: str


class AccountGateway(Protocol):
    def create_account(self, *, user: User, email: str, temporary_password: str) -> AccountResult:
        """Create the mailbox/identity; raise on failure."""

        raise NotImplementedError


class DirectoryAccountGateway(AccountGateway):
    """Records the MOTAC identity on the user's row."""

    def __init__(self, users: UserRepository):
        self._users = users

    def create_account(self, *, user: User, email: str, temporary_password: str) -> AccountResult:
        user_id_assigned = email.split("@", 1)[0]
        if not self._users.assign_motac_identity(user.user_id, motac_email=email, user_id_assigned=user_id_assigned):
            raise ExternalServiceError("Directory update failed", details={"user_id": user.user_id})
        return AccountResult(email=email, user_id_assigned=user_id_assigned)


def slugify_name(full_name: str) -> str:
    """'Ahmad bin Ali' -> 'ahmad.ali' (first and last word, ASCII only)."""
    ascii_name = unicodedata.normalize("NFKD", full_name or "").encode("ascii", "ignore").decode("ascii")
    words = [w for w in re.split(r"[^a-z0-9]+", ascii_name.lower()) if w]
    if not words:
        return "user"
    if len(words) == 1:
        return words[0]
    return f"{words[0]}.{words[-1]}"


def generate_temporary_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


class EmailProvisioner:
    def __init__(
        self,
        gateway: AccountGateway,
        *,
        is_taken: Callable[[str, int], bool],
        domain: str = DEFAULT_EMAIL_DOMAIN,
    ):
        self._gateway = gateway
        self._is_taken = is_taken
        self._domain = domain.lower()

    def generate_address(self, full_name: str, user_id: int) -> str:
        base = slugify_name(full_name)
        email = f"{base}@{self._domain}"
        counter = 1
        while self._is_taken(email, user_id):
            email = f"{base}{counter}@{self._domain}"
            counter += 1
        return email

    def choose_address(self, application: EmailApplication, user: User) -> str:
        proposed = (application.proposed_email or "").strip().lower()
        if proposed.endswith(f"@{self._domain}") and not self._is_taken(proposed, user.user_id):
            return proposed
        return self.generate_address(user.full_name, user.user_id)

    def provision(self, application: EmailApplication, user: User, *, address: Optional[str] = None) -> ProvisioningResult:
        email = address or self.choose_address(application, user)
        temporary_password = generate_temporary_password()
        result = self._gateway.create_account(user=user, email=email, temporary_password=temporary_password)
        logger.info(
            f"Account provisioned: {result.email}",
            extra={"operation": "email_application.provision", "entity_type": "email_application", "entity_id": application.application_id},
        )
        return ProvisioningResult(
            email=result.email,
            user_id_assigned=result.user_id_assigned,
            temporary_password=temporary_password,
        )
