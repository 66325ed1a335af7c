"""Typed input models, one per form/JSON operation.

Form posts arrive as strings; pydantic coerces them (``"75.50"`` -> Decimal,
``"2024-05-01"`` -> date) and rejects anything that does not fit.
"""
import datetime
import re
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class FormInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra='ignore')

    @classmethod
    def from_form(cls, form):
        # blank optional fields fall back to their defaults
        data = {}
        for key, value in form.items():
            field = cls.model_fields.get(key)
            if field is not None and not field.is_required() and value == '':
                continue
            data[key] = value
        return cls.model_validate(data)


class EmailInput(FormInput):
    email: str = Field(max_length=255)

    @field_validator('email')
    @classmethod
    def check_email(cls, value: str) -> str:
        value = value.lower()
        if not EMAIL_RE.match(value):
            raise ValueError('must be a valid email address')
        return value


class RegisterInput(EmailInput):
    username: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6)


class LoginInput(FormInput):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class AccountInput(EmailInput):
    username: str = Field(min_length=3, max_length=255)


class PasswordChangeInput(FormInput):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)
    password_confirmation: str = Field(min_length=1)

    @model_validator(mode='after')
    def passwords_match(self):
        if self.new_password != self.password_confirmation:
            raise ValueError('new password and confirmation do not match')
        return self


class ProfileInput(FormInput):
    name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=20)
    position_or_company: Optional[str] = Field(default=None, max_length=255)
    marital_status: Optional[str] = Field(default=None, max_length=50)
    children: int = Field(default=0, ge=0)
    initial_balance: Decimal = Field(default=Decimal('0.00'), max_digits=15, decimal_places=2)


class LedgerEntryInput(FormInput):
    date: datetime.date
    description: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(ge=0, max_digits=15, decimal_places=2)
    type: str = Field(min_length=1, max_length=50)
    profile_id: int


def validation_errors(exc: ValidationError) -> dict:
    """Flatten a ValidationError into ``{field: [messages]}``."""
    errors = {}
    for err in exc.errors():
        field = str(err['loc'][0]) if err['loc'] else 'general'
        message = err['msg'].removeprefix('Value error, ')
        errors.setdefault(field, []).append(message)
    return errors
