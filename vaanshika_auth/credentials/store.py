"""
Persistence for the local credential.

The local credential is the only durable artifact of the client. It is kept
under a single well-known key in a key-value backend, wrapped in a signed
JWT so that a tampered or corrupted record is detected on load rather than
sent to the backend.

:class:`CredentialStore` keeps an in-memory mirror of the persisted value,
so :meth:`CredentialStore.read` never touches the backend.
"""

import json
import secrets
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict

import jwt
import redis
from pytz import UTC
from retry import retry

import logging

from .. import domain
from ..exceptions import InvalidToken, Unavailable, \
    CredentialPersistenceFailed, CredentialDeletionFailed

logger = logging.getLogger(__name__)


class RedisBackend(object):
    """
    Key-value persistence in Redis.

    The StrictRedis instance is thread safe and connections are attached at
    the time a command is executed. This class simply provides a container
    for configuration, and translates connection errors.
    """

    def __init__(self, host: str = 'localhost', port: int = 6379,
                 db: int = 0, fake: bool = False) -> None:
        """Open the connection to Redis."""
        if fake:
            import fakeredis
            logger.debug('Using FakeRedis for credentials')
            self.r = fakeredis.FakeStrictRedis()
        else:
            logger.debug('New Redis connection at %s, port %s', host, port)
            self.r = redis.StrictRedis(host=host, port=port, db=db)

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.r.get(key)
        except redis.exceptions.ConnectionError as e:
            raise Unavailable(f'Connection failed: {e}') from e
        except redis.exceptions.RedisError as e:
            raise Unavailable(f'Failed to read: {e}') from e
        if isinstance(value, bytes):
            return value.decode('utf-8')
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self.r.set(key, value)
        except redis.exceptions.ConnectionError as e:
            raise CredentialPersistenceFailed(f'Connection failed: {e}') from e
        except redis.exceptions.RedisError as e:
            raise CredentialPersistenceFailed(f'Failed to store: {e}') from e

    def delete(self, key: str) -> None:
        try:
            self.r.delete(key)
        except redis.exceptions.ConnectionError as e:
            raise CredentialDeletionFailed(f'Connection failed: {e}') from e
        except redis.exceptions.RedisError as e:
            raise CredentialDeletionFailed(f'Failed to delete: {e}') from e


class FileBackend(object):
    """
    Key-value persistence in a single JSON file.

    The file is created with mode 0o600 so only the current user can read it.
    Other keys in the file are left alone.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except json.JSONDecodeError as e:
            logger.warning('Credential file %s is not JSON: %s', self.path, e)
            return {}
        except OSError as e:
            raise Unavailable(f'Could not read {self.path}: {e}') from e
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding='utf-8')
        self.path.chmod(0o600)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        try:
            data = self._read()
            data[key] = value
            self._write(data)
        except (OSError, Unavailable) as e:
            raise CredentialPersistenceFailed(f'Failed to store: {e}') from e

    def delete(self, key: str) -> None:
        try:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)
        except (OSError, Unavailable) as e:
            raise CredentialDeletionFailed(f'Failed to delete: {e}') from e


class CredentialStore(object):
    """
    Holds the current local credential.

    Only the session controller and the response interceptor's 401 handler
    write to the store; everything else reads.
    """

    def __init__(self, backend: object, key: str, secret: str) -> None:
        self._backend = backend
        self._key = key
        self._secret = secret
        self._credential: Optional[domain.Credential] = None

    @retry(Unavailable, tries=3, delay=0.5, backoff=2)
    def load(self) -> Optional[domain.Credential]:
        """
        Load the persisted credential into memory.

        A record that fails verification is discarded.

        Returns
        -------
        :class:`domain.Credential` or None

        Raises
        ------
        :class:`Unavailable`
            If the backend cannot be reached, after three attempts.

        """
        record = self._backend.get(self._key)
        if record is None:
            logger.debug('No persisted credential')
            self._credential = None
            return None
        try:
            self._credential = self._decode(record)
        except InvalidToken as e:
            logger.warning('Discarding persisted credential: %s', e)
            self._credential = None
            try:
                self._backend.delete(self._key)
            except CredentialDeletionFailed as e:
                logger.error('Could not discard bad credential: %s', e)
        return self._credential

    def read(self) -> Optional[domain.Credential]:
        """Get the stored local credential, if any. Performs no I/O."""
        return self._credential

    def write(self, credential: domain.Credential) -> None:
        """
        Store a local credential.

        The credential becomes active immediately, even if persisting it
        fails.

        Raises
        ------
        ValueError
            If ``credential`` is not a local credential.
        :class:`CredentialPersistenceFailed`
            If the credential could not be persisted.

        """
        if not credential.is_local:
            raise ValueError('Only local credentials are stored')
        if credential.issued_at is None:
            credential = credential._replace(issued_at=datetime.now(tz=UTC))
        self._credential = credential
        self._backend.set(self._key, self._encode(credential))
        logger.debug('Stored %r', credential)

    def clear(self, expected: Optional[domain.Credential] = None) -> bool:
        """
        Drop the local credential.

        Parameters
        ----------
        expected : :class:`domain.Credential`
            If given, only clear when the stored credential carries the same
            token. A newer credential written in the meantime is left alone.

        Returns
        -------
        bool
            Whether a credential was cleared.

        Raises
        ------
        :class:`CredentialDeletionFailed`
            If the persisted copy could not be removed. The in-memory
            credential is gone regardless.

        """
        current = self._credential
        if expected is not None and \
                (current is None or current.token != expected.token):
            return False
        self._credential = None
        self._backend.delete(self._key)
        if current is not None:
            logger.debug('Cleared %r', current)
        return current is not None

    def _encode(self, credential: domain.Credential) -> str:
        return jwt.encode(domain.to_dict(credential), self._secret,
                          algorithm='HS256')

    def _decode(self, record: str) -> domain.Credential:
        try:
            data = jwt.decode(record, self._secret, algorithms=['HS256'])
        except jwt.exceptions.InvalidSignatureError as e:
            raise InvalidToken('Invalid or corrupted credential record') from e
        except jwt.exceptions.InvalidTokenError as e:
            raise InvalidToken('Credential record is malformed') from e
        try:
            credential: domain.Credential = domain.from_dict(
                domain.Credential, data
            )
        except (TypeError, ValueError) as e:
            raise InvalidToken('Credential record is incomplete') from e
        if not credential.is_local:
            raise InvalidToken('Only local credentials are persisted')
        return credential


def get_backend(name: str, path: str = '', host: str = 'localhost',
                port: int = 6379, db: int = 0, fake: bool = False) -> object:
    """Get a persistence backend by name (``file`` or ``redis``)."""
    if name == 'file':
        return FileBackend(path)
    if name == 'redis':
        return RedisBackend(host, port, db, fake=fake)
    raise ValueError(f'Unknown credential backend: {name}')


def stored_secret(path: str) -> str:
    """
    Get the record signing secret kept at ``path``, creating it if needed.

    The file is created with mode 0o600. If it can't be read or written, a
    secret for this process only is used, and a credential persisted with
    it can't be loaded after a restart.
    """
    secret_file = Path(path)
    try:
        if secret_file.exists():
            secret = secret_file.read_text(encoding='utf-8').strip()
            if secret:
                return secret
        secret = secrets.token_urlsafe(32)
        secret_file.parent.mkdir(parents=True, exist_ok=True)
        secret_file.write_text(secret, encoding='utf-8')
        secret_file.chmod(0o600)
    except OSError as e:
        logger.error('Could not keep credential secret at %s: %s', path, e)
        return secrets.token_urlsafe(32)
    logger.info('Generated credential secret at %s', path)
    return secret
