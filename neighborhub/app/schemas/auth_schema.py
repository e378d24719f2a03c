"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, formats, regex patterns.
  - services/auth_service.py: USERNAME_TAKEN / PHONE_TAKEN / EMAIL_TAKEN
    checks (cross-entity: require a DB lookup, not a schema concern).

All schemas inherit from marshmallow.Schema directly, so they load without
an application context.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates


USERNAME_FIELD_RULES = [
    validate.Length(
        min=3,
        max=50,
        error="Username must be between 3 and 50 characters.",
    ),
    validate.Regexp(
        r"^[a-zA-Z0-9_]+$",
        error="Username may only contain letters, numbers, and underscores.",
    ),
]

# Digits with an optional leading "+", 7–20 characters.
PHONE_FIELD_RULES = validate.Regexp(
    r"^\+?[0-9]{7,19}$",
    error="Phone must contain 7 to 19 digits, optionally prefixed with '+'.",
)

# bcrypt only accepts inputs up to 72 bytes.
SECRET_MAX_BYTES = 72


def validate_secret_length(value: str) -> None:
    if len(value.encode("utf-8")) > SECRET_MAX_BYTES:
        raise ValidationError(
            f"Secret must be at most {SECRET_MAX_BYTES} bytes long."
        )


class SignupSchema(Schema):
    """
    POST /auth/signup

    Field rules:
      username : 3–50 chars, alphanumeric + underscore only
      email    : valid email format
      phone    : digits, optional leading "+"
      secret   : min 8 chars, max 72 bytes UTF-8, at least one letter and one digit

    Uniqueness is enforced in auth_service.py because it needs a DB query.
    """

    username = fields.Str(required=True, validate=USERNAME_FIELD_RULES)
    email = fields.Email(required=True, validate=validate.Length(max=255))
    phone = fields.Str(required=True, validate=PHONE_FIELD_RULES)
    secret = fields.Str(required=True, load_only=True)

    @validates("secret")
    def validate_secret_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Secret must be at least 8 characters long.")
        validate_secret_length(value)
        if not any(c.isalpha() for c in value):
            raise ValidationError("Secret must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Secret must contain at least one digit.")


class LoginSchema(Schema):
    """
    POST /auth/login

    `identifier` is a username or an email. Credential correctness is checked
    in security/credentials.py (INVALID_CREDENTIALS, 400).
    """

    identifier = fields.Str(required=True, validate=validate.Length(min=1))
    secret = fields.Str(required=True, load_only=True, validate=validate_secret_length)


class UpdateProfileSchema(Schema):
    """PUT /user/me — every field optional; absent fields are left unchanged."""

    username = fields.Str(validate=USERNAME_FIELD_RULES)
    email = fields.Email(validate=validate.Length(max=255))
    phone = fields.Str(validate=PHONE_FIELD_RULES)
