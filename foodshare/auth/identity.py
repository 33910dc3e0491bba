"""Identity service: email/password accounts.

Issues the stable identity key every profile is keyed by. Sessions are JWT
bearer tokens (see `foodshare.auth.tokens`); sign-out is client-side token
disposal.
"""

import logging
import re

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from foodshare.auth.passwords import hash_password, verify_password
from foodshare.database.user_repository import IdentityRepository
from foodshare.engine.errors import AuthRequiredError, ProviderError, ValidationError
from foodshare.models.constants import MIN_PASSWORD_LENGTH
from foodshare.models.user import Identity

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class IdentityService:
    """Sign-up and sign-in against the `identities` table."""

    def __init__(self, db: Session):
        self.identities = IdentityRepository(db)

    def sign_up(self, email: str, password: str) -> Identity:
        """Create a new identity.

        Raises:
            ValidationError: Invalid email, weak password, or email already in use
            ProviderError: The account could not be stored
        """
        email = normalize_email(email)
        if not _EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email address.")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters.")

        try:
            if self.identities.get_record_by_email(email) is not None:
                raise ValidationError("Email already in use. Please log in or use a different email.")
            identity = self.identities.create(email, hash_password(password))
        except IntegrityError as e:
            raise ValidationError("Email already in use. Please log in or use a different email.") from e
        except SQLAlchemyError as e:
            raise ProviderError("Failed to create account. Please try again.") from e

        logger.info(f"Signed up identity {identity.id}")
        return identity

    def sign_in(self, email: str, password: str) -> Identity:
        """Verify credentials and return the identity.

        Raises:
            AuthRequiredError: Unknown email or wrong password
        """
        email = normalize_email(email)
        try:
            record = self.identities.get_record_by_email(email)
        except SQLAlchemyError as e:
            raise ProviderError("Failed to sign in. Please try again.") from e

        if record is None or not verify_password(password or "", record.password_hash):
            logger.info(f"Rejected sign-in for {email}")
            raise AuthRequiredError("Invalid email or password.")
        return record.to_pydantic()
