"""
The federated identity provider boundary.

:class:`.IdentityProvider` is the contract the rest of the package relies
on; :class:`.IdentityToolkitProvider` implements it against Firebase
Authentication.
"""

from .base import IdentityProvider, AuthStateListener
from .identity_toolkit import IdentityToolkitProvider, normalize_error
