"""Wire representations of backend responses."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, \
    ValidationError, field_validator

from ..domain import Account
from ..exceptions import ServerError


class UserPayload(BaseModel):
    """A user record as returned by the backend."""

    model_config = ConfigDict(extra='ignore')

    uid: str = Field(validation_alias=AliasChoices('uid', 'id', '_id',
                                                   'localId'))
    email: str = ''
    display_name: str = Field('', validation_alias=AliasChoices(
        'displayName', 'display_name', 'name'))
    email_verified: bool = Field(False, validation_alias=AliasChoices(
        'emailVerified', 'email_verified', 'isVerified', 'verified'))

    @field_validator('uid', mode='before')
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    def to_account(self) -> Account:
        return Account(uid=self.uid, email=self.email,
                       display_name=self.display_name or '',
                       email_verified=self.email_verified)


class LoginPayload(BaseModel):
    """Body of ``auth/login`` and ``auth/google-login`` responses."""

    model_config = ConfigDict(extra='ignore')

    token: Optional[str] = None
    """The local credential, if the backend issued one."""

    user: Optional[UserPayload] = None


class ErrorPayload(BaseModel):
    """Body of an error response. Every field is optional."""

    model_config = ConfigDict(extra='ignore')

    message: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None
    user: Optional[UserPayload] = None

    @property
    def detail(self) -> Optional[str]:
        return self.message or self.error


def parse_login(data: Any) -> LoginPayload:
    """Parse a login response body."""
    try:
        return LoginPayload.model_validate(data)
    except ValidationError as e:
        raise ServerError(f'Malformed login response: {e}') from e


def parse_user(data: Any) -> Account:
    """Parse a user record, bare or wrapped as ``{"user": {...}}``."""
    if isinstance(data, dict) and isinstance(data.get('user'), dict):
        data = data['user']
    try:
        return UserPayload.model_validate(data).to_account()
    except ValidationError as e:
        raise ServerError(f'Malformed user record: {e}') from e


def parse_error(data: Any) -> ErrorPayload:
    """Parse an error body; anything unexpected yields an empty payload."""
    if isinstance(data, str):
        return ErrorPayload(message=data)
    if not isinstance(data, dict):
        return ErrorPayload()
    try:
        return ErrorPayload.model_validate(data)
    except ValidationError:
        return ErrorPayload(message=str(data.get('message') or '') or None)
