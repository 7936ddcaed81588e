"""
The credential store and the precedence resolver.

See :mod:`.store` and :mod:`.precedence`.
"""

from .store import CredentialStore, FileBackend, RedisBackend, get_backend, \
    stored_secret
from .precedence import PrecedenceResolver
