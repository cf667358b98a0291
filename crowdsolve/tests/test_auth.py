import time
import unittest

from jose import jwt

from crowdsolve.auth import CredentialService, Identity
from crowdsolve.db import InMemoryRecordStore
from crowdsolve.errors import (
    Conflict,
    InvalidCredentials,
    InvalidToken,
    MissingFields,
    Unauthenticated,
)
from crowdsolve.tests.testing_utils import make_settings


class CredentialServiceTests(unittest.TestCase):
    def setUp(self):
        self.settings = make_settings(token_ttl_hours=24)
        self.records = InMemoryRecordStore()
        self.service = CredentialService(self.settings, self.records)

    def test_register_hashes_password(self):
        result = self.service.register("alice", "alice@example.com", "hunter2")
        stored = self.records.get_user(result.user.id)
        self.assertNotEqual(stored.password_hash, "hunter2")
        self.assertTrue(self.service.verify_password("hunter2", stored.password_hash))
        self.assertFalse(self.service.verify_password("hunter3", stored.password_hash))

    def test_register_conflict(self):
        self.service.register("alice", "alice@example.com", "pw")
        with self.assertRaises(Conflict):
            self.service.register("alice2", "alice@example.com", "pw")
        with self.assertRaises(Conflict):
            self.service.register("alice", "other@example.com", "pw")
        self.assertEqual(len(self.records.users), 1)

    def test_register_presence_checks(self):
        with self.assertRaises(MissingFields) as ctx:
            self.service.register("alice", "", None)
        self.assertEqual(ctx.exception.fields, ["email", "password"])

    def test_login_round_trip(self):
        registered = self.service.register("alice", "alice@example.com", "pw")
        result = self.service.login("alice@example.com", "pw")
        self.assertEqual(result.user.id, registered.user.id)
        identity = self.service.verify(result.token)
        self.assertEqual(identity, Identity(user_id=registered.user.id, username="alice"))

    def test_login_rejects_unknown_email_and_wrong_password(self):
        self.service.register("alice", "alice@example.com", "pw")
        with self.assertRaises(InvalidCredentials):
            self.service.login("ghost@example.com", "pw")
        with self.assertRaises(InvalidCredentials):
            self.service.login("alice@example.com", "wrong")

    def test_long_passwords_are_supported(self):
        password = "p" * 100
        self.service.register("alice", "alice@example.com", password)
        self.assertEqual(
            self.service.login("alice@example.com", password).user.username, "alice"
        )

    def test_token_claims(self):
        user = self.service.register("alice", "alice@example.com", "pw").user
        token = self.service.issue_token(user, issued_at=1_000_000)
        claims = jwt.get_unverified_claims(token)
        self.assertEqual(claims["userId"], user.id)
        self.assertEqual(claims["username"], "alice")
        self.assertEqual(claims["exp"] - claims["iat"], 24 * 3600)

    def test_token_valid_inside_window_and_rejected_after(self):
        user = self.service.register("alice", "alice@example.com", "pw").user
        ttl = 24 * 3600

        almost_expired = self.service.issue_token(user, issued_at=time.time() - ttl + 60)
        self.assertEqual(self.service.verify(almost_expired).user_id, user.id)

        expired = self.service.issue_token(user, issued_at=time.time() - ttl - 60)
        with self.assertRaises(InvalidToken):
            self.service.verify(expired)

    def test_verify_without_token(self):
        with self.assertRaises(Unauthenticated):
            self.service.verify(None)
        with self.assertRaises(Unauthenticated):
            self.service.verify("")

    def test_verify_rejects_foreign_and_malformed_tokens(self):
        user = self.service.register("alice", "alice@example.com", "pw").user
        other = CredentialService(make_settings(jwt_secret="other-secret"), self.records)
        with self.assertRaises(InvalidToken):
            self.service.verify(other.issue_token(user))
        with self.assertRaises(InvalidToken):
            self.service.verify("not.a.token")

    def test_verify_requires_identity_claims(self):
        token = jwt.encode(
            {"exp": int(time.time()) + 60}, self.settings.jwt_secret, algorithm="HS256"
        )
        with self.assertRaises(InvalidToken):
            self.service.verify(token)


if __name__ == "__main__":
    unittest.main()
