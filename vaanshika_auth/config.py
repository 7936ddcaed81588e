"""Client configuration, read from the environment."""
import os

#################### Backend ####################
BACKEND_URL = os.environ.get('BACKEND_URL', 'http://localhost:5000/api')
"""Base URL of the first-party backend API.

Paths such as ``auth/login`` are resolved against this."""


#################### Credential persistence ####################
CREDENTIAL_KEY = os.environ.get('CREDENTIAL_KEY', 'vaanshika_auth_token')
"""The single well-known key under which the local credential is stored."""

CREDENTIAL_SECRET = os.environ.get('CREDENTIAL_SECRET', '')
"""Secret used to sign the persisted credential record.

If unset, a secret is generated on first use and kept in
``CREDENTIAL_SECRET_PATH``, so that later processes can read the record."""

CREDENTIAL_BACKEND = os.environ.get('CREDENTIAL_BACKEND', 'file')
"""Where the local credential is persisted: ``file`` or ``redis``."""

CREDENTIAL_PATH = os.environ.get(
    'CREDENTIAL_PATH',
    os.path.join(os.path.expanduser('~'), '.vaanshika', 'auth_data.json')
)
"""Path of the credential file, when ``CREDENTIAL_BACKEND`` is ``file``."""

CREDENTIAL_SECRET_PATH = os.environ.get('CREDENTIAL_SECRET_PATH', '')
"""Where the generated ``CREDENTIAL_SECRET`` is kept.

Defaults to ``auth_secret`` in the directory of ``CREDENTIAL_PATH``."""

REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')

REDIS_FAKE = bool(int(os.environ.get('REDIS_FAKE', '0')))
"""Use the FakeRedis library instead of a redis service.

Useful for testing, dev, beta."""


#################### Identity provider ####################
FIREBASE_API_KEY = os.environ.get('FIREBASE_API_KEY', '')
"""Web API key of the Firebase project."""

FIREBASE_AUTH_DOMAIN = os.environ.get('FIREBASE_AUTH_DOMAIN', '')
"""Used as the ``requestUri`` when exchanging federated assertions."""

IDENTITY_TOOLKIT_URL = os.environ.get(
    'IDENTITY_TOOLKIT_URL',
    'https://identitytoolkit.googleapis.com/v1'
)
SECURE_TOKEN_URL = os.environ.get(
    'SECURE_TOKEN_URL',
    'https://securetoken.googleapis.com/v1'
)


#################### Session behavior ####################
VERIFICATION_COOLDOWN = int(os.environ.get('VERIFICATION_COOLDOWN', '60'))
"""Seconds between verification resends, for display purposes only.

The backend enforces the real limit."""


#################### Logging ####################
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
LOG_JSON = bool(int(os.environ.get('LOG_JSON', '1')))
"""Emit JSON log records (``python-json-logger``) instead of plain text."""
