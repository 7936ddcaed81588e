"""Defines account, credential and session concepts for the client."""

from typing import Any, Optional, NamedTuple, Callable, Union, \
    get_type_hints, get_origin, get_args
from datetime import datetime, timedelta
from enum import Enum
from functools import partial
import dateutil.parser
from pytz import UTC


class Account(NamedTuple):
    """An identity as known to the client."""

    uid: str
    """Unique identifier for the user."""

    email: str
    """The user's primary e-mail address."""

    display_name: str = ''
    """Human-friendly name, set at registration or by the provider."""

    email_verified: bool = False
    """Whether or not the user's e-mail address has been verified."""


class CredentialSource(Enum):
    """Where a bearer credential came from."""

    LOCAL = 'local'
    """Issued by the first-party backend; persisted across restarts."""

    FEDERATED = 'federated'
    """Derived from the identity provider's session; never persisted."""


class Credential(NamedTuple):
    """An opaque bearer token tagged with its source."""

    token: str
    """The bearer string sent in the ``Authorization`` header."""

    source: CredentialSource
    """One of :class:`CredentialSource`."""

    issued_at: Optional[datetime] = None
    """When the credential was obtained by this client."""

    @property
    def is_local(self) -> bool:
        """Whether this credential was issued by the backend."""
        return self.source is CredentialSource.LOCAL

    @property
    def header(self) -> str:
        """Value for the ``Authorization`` header."""
        return f'Bearer {self.token}'

    def __repr__(self) -> str:
        """Keep tokens out of logs and tracebacks."""
        return f'Credential(source={self.source.value}, ' \
               f'token={redact(self.token)})'


class SessionStatus(Enum):
    """The authentication status of the user, as seen by the application."""

    ANONYMOUS = 'anonymous'
    AUTHENTICATING = 'authenticating'
    PENDING_VERIFICATION = 'pending_verification'
    AUTHENTICATED = 'authenticated'
    FAILED = 'failed'


class SessionState(NamedTuple):
    """
    The single authoritative view of the user's authentication status.

    Construct these with the class methods rather than by hand, so that
    ``account`` and ``message`` are only present where they belong.
    """

    status: SessionStatus
    """One of :class:`SessionStatus`."""

    account: Optional[Account] = None
    """The account, while pending verification or authenticated."""

    message: Optional[str] = None
    """Reason for failure, when :attr:`status` is ``FAILED``."""

    @classmethod
    def anonymous(cls) -> 'SessionState':
        return cls(SessionStatus.ANONYMOUS)

    @classmethod
    def authenticating(cls) -> 'SessionState':
        return cls(SessionStatus.AUTHENTICATING)

    @classmethod
    def pending_verification(cls, account: Account) -> 'SessionState':
        return cls(SessionStatus.PENDING_VERIFICATION, account=account)

    @classmethod
    def authenticated(cls, account: Account) -> 'SessionState':
        return cls(SessionStatus.AUTHENTICATED, account=account)

    @classmethod
    def failed(cls, message: str) -> 'SessionState':
        return cls(SessionStatus.FAILED, message=message)

    @property
    def is_authenticated(self) -> bool:
        """Whether the user holds an active session."""
        return self.status is SessionStatus.AUTHENTICATED

    @property
    def is_pending_verification(self) -> bool:
        """Whether the user must verify their e-mail before logging in."""
        return self.status is SessionStatus.PENDING_VERIFICATION


class VerificationRequest(NamedTuple):
    """A verification e-mail that was (re)issued; drives cooldown display."""

    email: str
    """Address to which the verification e-mail was sent."""

    issued_at: datetime
    """When the request was accepted."""

    def cooldown_remaining(self, cooldown: int,
                           now: Optional[datetime] = None) -> int:
        """
        Number of seconds until another resend is worth attempting.

        Parameters
        ----------
        cooldown : int
            Length of the cooldown window, in seconds.
        now : :class:`datetime`
            Defaults to the current time (UTC).

        Returns
        -------
        int
            Zero once the window has passed.

        """
        now = now or datetime.now(tz=UTC)
        ends = self.issued_at + timedelta(seconds=cooldown)
        return max(int((ends - now).total_seconds()), 0)


# Helpers and private functions.


def redact(token: Optional[str]) -> str:
    """Abbreviate a token so that it can be logged."""
    if not token:
        return '<none>'
    if len(token) <= 12:
        return '***'
    return f'{token[:6]}...{token[-4:]}'


def to_dict(obj: tuple) -> dict:
    """
    Generate a dict representation of a NamedTuple instance.

    This uses the built-in ``_asdict`` method on the instance, and also
    calls this on any child NamedTuple instances (recursively) so that the
    entire tree is cast to ``dict``. Datetimes become ISO-8601 strings and
    enums become their values.

    Parameters
    ----------
    obj : tuple
        A NamedTuple instance.

    Returns
    -------
    dict

    """
    if not hasattr(obj, '_asdict'):  # NamedTuple-generated classes have this.
        return {}
    data = obj._asdict()  # type: ignore

    def _cast(obj: Any) -> Any:
        if hasattr(obj, '_asdict'):
            obj = to_dict(obj)
        elif isinstance(obj, datetime):
            obj = obj.isoformat()
        elif isinstance(obj, Enum):
            obj = obj.value
        elif isinstance(obj, list):
            obj = [_cast(o) for o in obj]
        return obj

    return {key: _cast(value) for key, value in data.items()}


def from_dict(cls: type, data: dict) -> Any:
    """
    Generate a NamedTuple instance from a dict, with recursion.

    This is the inverse of :func:`to_dict`. Fields typed with another
    NamedTuple (or ``Optional`` of one), a ``datetime`` or an ``Enum`` are
    coerced from their serialized form; unknown keys are ignored.

    Parameters
    ----------
    cls: type
        Any NamedTuple class.

    data: dict
        Data with which to instantiate ``cls`` and its children.

    Returns
    -------
    NamedTuple
        An instance of ``cls``.
    """
    _data = {}
    for field, field_type in get_type_hints(cls).items():
        if field not in data:
            continue
        value = data[field]
        target_type = _get_cast_type(field_type, value)
        if target_type:
            value = target_type(value)
        _data[field] = value
    return cls(**_data)


def _candidate_types(field_type: Any) -> tuple:
    """Unpack ``Optional[X]`` / ``Union[X, Y]`` into ``(X, Y)``."""
    if get_origin(field_type) is Union:
        return tuple(t for t in get_args(field_type) if t is not type(None))
    return (field_type,)


# Recursive coercion on anything more complicated than these simple cases
# is not needed by the domain classes above.
def _get_cast_type(field_type: Any, value: Any) -> Optional[Callable]:
    """Get a casting callable for a field type/value."""
    for candidate in _candidate_types(field_type):
        if not isinstance(candidate, type):
            continue
        if isinstance(value, candidate):
            return None
        if type(value) is dict and hasattr(candidate, '_fields'):
            return partial(from_dict, candidate)
        if type(value) is str and candidate is datetime:
            return dateutil.parser.parse
        if issubclass(candidate, Enum):
            return candidate
    return None
