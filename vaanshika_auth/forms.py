"""
Validation of user-supplied fields before anything leaves the client.

The forms are validated from plain data (no request object), for example:

.. code-block:: python

   form = validate(RegistrationForm, email=email, password=password,
                   display_name=display_name)

"""

import re
from typing import Any, Type

from wtforms import Form, StringField, PasswordField
from wtforms.validators import DataRequired, Email, Length, ValidationError

from .exceptions import MalformedRequest, WeakCredential

WEAK_PASSWORD = 'Password must be at least 8 characters and include an ' \
                'uppercase letter, a lowercase letter and a number.'

_strong = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}$', re.DOTALL)


def is_strong_password(password: str) -> bool:
    """At least 8 characters, with an uppercase, a lowercase and a digit."""
    return bool(password and _strong.match(password))


def strong_password(form: Form, field: Any) -> None:
    """Field validator for :func:`is_strong_password`."""
    if field.data and not is_strong_password(field.data):
        raise ValidationError(WEAK_PASSWORD)


class RegistrationForm(Form):
    """New account."""

    email = StringField('Email', validators=[DataRequired(), Email()])
    password = PasswordField('Password',
                             validators=[DataRequired(), strong_password])
    display_name = StringField('Name', validators=[DataRequired(),
                                                   Length(min=2, max=100)])


class LoginForm(Form):
    """Log in form."""

    email = StringField('Email', validators=[DataRequired(), Email()])
    password = PasswordField('Password', validators=[DataRequired()])


class PasswordResetForm(Form):
    """Request a password reset e-mail."""

    email = StringField('Email', validators=[DataRequired(), Email()])


class ResendVerificationForm(PasswordResetForm):
    """Request another verification e-mail."""


class NewPasswordForm(Form):
    """Complete a password reset."""

    token = StringField('Token', validators=[DataRequired()])
    password = PasswordField('Password',
                             validators=[DataRequired(), strong_password])


def validate(form_class: Type[Form], **data: Any) -> Form:
    """
    Validate ``data`` with ``form_class``.

    Raises
    ------
    :class:`.WeakCredential`
        If the only thing wrong with the password is its strength.
    :class:`.MalformedRequest`
        For any other invalid field.

    """
    if isinstance(data.get('display_name'), str):
        data['display_name'] = data['display_name'].strip()
    form = form_class(data=data)
    if form.validate():
        return form
    errors = dict(form.errors)
    if errors.get('password') == [WEAK_PASSWORD]:
        errors.pop('password')
        if not errors:
            raise WeakCredential(WEAK_PASSWORD)
    problems = '; '.join(f'{name}: {", ".join(messages)}'
                         for name, messages in sorted(errors.items()))
    raise MalformedRequest(problems)
