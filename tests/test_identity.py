"""Tests for the email/password identity service and tokens."""

import jwt
import pytest
from datetime import datetime, timezone

from foodshare.auth import passwords, tokens
from foodshare.auth.identity import IdentityService, normalize_email
from foodshare.auth.tokens import issue_token, read_token
from foodshare.engine.errors import AuthRequiredError, ValidationError
from foodshare.models.user import Identity


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    # Minimum cost keeps hashing fast in tests.
    monkeypatch.setattr(passwords, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def identity_service(db_session):
    return IdentityService(db_session)


class TestIdentityService:
    """Sign-up and sign-in."""

    def test_sign_up_then_sign_in(self, identity_service):
        identity = identity_service.sign_up(" New.User@Example.com ", "secret1")
        assert identity.email == "new.user@example.com"

        signed_in = identity_service.sign_in("new.user@example.com", "secret1")
        assert signed_in.id == identity.id

    def test_password_is_not_stored_in_clear(self, identity_service):
        identity_service.sign_up("hash@example.com", "secret1")
        record = identity_service.identities.get_record_by_email("hash@example.com")
        assert record.password_hash != "secret1"
        assert passwords.verify_password("secret1", record.password_hash)

    def test_short_password_rejected(self, identity_service):
        with pytest.raises(ValidationError):
            identity_service.sign_up("short@example.com", "12345")

    def test_invalid_email_rejected(self, identity_service):
        with pytest.raises(ValidationError):
            identity_service.sign_up("not-an-email", "secret1")

    def test_duplicate_email_rejected(self, identity_service):
        identity_service.sign_up("dup@example.com", "secret1")
        with pytest.raises(ValidationError):
            identity_service.sign_up("DUP@example.com", "secret2")

    @pytest.mark.parametrize("email,password", [
        ("known@example.com", "wrong-password"),
        ("unknown@example.com", "secret1"),
    ])
    def test_bad_credentials(self, identity_service, email, password):
        identity_service.sign_up("known@example.com", "secret1")
        with pytest.raises(AuthRequiredError):
            identity_service.sign_in(email, password)


class TestTokens:
    """Bearer tokens carry the identity key and sign-in email."""

    def test_claims_round_trip(self):
        token = issue_token(Identity(id="identity-42", email="asha@example.com"))
        claims = read_token(token)
        assert claims.identity_id == "identity-42"
        assert claims.email == "asha@example.com"
        assert claims.expires_at > datetime.now(timezone.utc)

    def test_malformed_token(self):
        assert read_token("not-a-token") is None

    def test_foreign_issuer_rejected(self):
        token = jwt.encode(
            {"sub": "identity-42", "email": "a@b.com", "iss": "elsewhere", "iat": 0, "exp": 4102444800},
            tokens.JWT_SECRET_KEY,
            algorithm=tokens.JWT_ALGORITHM,
        )
        assert read_token(token) is None

    def test_missing_email_claim_rejected(self):
        token = jwt.encode(
            {"sub": "identity-42", "iss": tokens.TOKEN_ISSUER, "iat": 0, "exp": 4102444800},
            tokens.JWT_SECRET_KEY,
            algorithm=tokens.JWT_ALGORITHM,
        )
        assert read_token(token) is None

    def test_expired_token_rejected(self, monkeypatch):
        monkeypatch.setattr(tokens, "JWT_EXPIRATION_HOURS", -1)
        assert read_token(issue_token(Identity(id="identity-42", email="a@b.com"))) is None


def test_verify_password_with_malformed_hash():
    assert passwords.verify_password("secret1", "not-a-bcrypt-hash") is False


def test_normalize_email():
    assert normalize_email("  A@B.com ") == "a@b.com"
    assert normalize_email(None) == ""
