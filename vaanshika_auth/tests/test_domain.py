"""Tests for :mod:`vaanshika_auth.domain`."""

from datetime import datetime, timedelta
from unittest import TestCase

from pytz import UTC

from .. import domain


class TestCredential(TestCase):
    """Tests for :class:`.domain.Credential`."""

    def test_header(self):
        """The credential is sent as a bearer token."""
        credential = domain.Credential('abc123',
                                       domain.CredentialSource.LOCAL)
        self.assertEqual(credential.header, 'Bearer abc123')
        self.assertTrue(credential.is_local)

    def test_repr_hides_token(self):
        """The full token never shows up in a repr."""
        token = 'eyJhbGciOiJIUzI1NiJ9.secretpart.signature'
        credential = domain.Credential(token,
                                       domain.CredentialSource.FEDERATED)
        self.assertNotIn(token, repr(credential))
        self.assertIn('federated', repr(credential))
        self.assertFalse(credential.is_local)

    def test_round_trip(self):
        """A credential survives :func:`.to_dict` and :func:`.from_dict`."""
        issued = datetime(2024, 3, 1, 12, 30, tzinfo=UTC)
        credential = domain.Credential('abc123',
                                       domain.CredentialSource.LOCAL,
                                       issued_at=issued)
        data = domain.to_dict(credential)
        self.assertEqual(data['source'], 'local')
        self.assertEqual(data['issued_at'], issued.isoformat())
        self.assertEqual(domain.from_dict(domain.Credential, data),
                         credential)


class TestSessionState(TestCase):
    """Tests for :class:`.domain.SessionState`."""

    def test_nested_round_trip(self):
        """Nested accounts and enums are restored by :func:`.from_dict`."""
        account = domain.Account('u1', 'a@x.com', 'Ana', False)
        state = domain.SessionState.pending_verification(account)
        data = domain.to_dict(state)
        self.assertEqual(data['account']['email'], 'a@x.com')
        self.assertEqual(domain.from_dict(domain.SessionState, data), state)

    def test_constructors(self):
        """Each status carries only what belongs to it."""
        account = domain.Account('u1', 'a@x.com')
        self.assertIsNone(domain.SessionState.anonymous().account)
        self.assertTrue(
            domain.SessionState.authenticated(account).is_authenticated
        )
        failed = domain.SessionState.failed('nope')
        self.assertEqual(failed.status, domain.SessionStatus.FAILED)
        self.assertEqual(failed.message, 'nope')
        self.assertIsNone(failed.account)


class TestVerificationRequest(TestCase):
    """Tests for :meth:`.VerificationRequest.cooldown_remaining`."""

    def test_cooldown(self):
        """The cooldown counts down to zero."""
        issued = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
        request = domain.VerificationRequest('a@x.com', issued)
        self.assertEqual(
            request.cooldown_remaining(60, now=issued + timedelta(seconds=15)),
            45
        )
        self.assertEqual(
            request.cooldown_remaining(60, now=issued + timedelta(minutes=5)),
            0
        )


class TestRedact(TestCase):
    def test_redact(self):
        self.assertEqual(domain.redact(None), '<none>')
        self.assertEqual(domain.redact('short'), '***')
        self.assertEqual(domain.redact('abcdefghijklmnop'), 'abcdef...mnop')
