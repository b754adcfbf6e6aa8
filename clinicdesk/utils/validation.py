import re
from datetime import date, datetime, timezone

from flask import request

from clinicdesk.errors import ValidationError

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MIN_PASSWORD_LENGTH = 8


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be JSON')
    return data


def require_fields(data, *fields):
    missing = [name for name in fields if data.get(name) in (None, '')]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            fields=missing,
        )
    return [data[name] for name in fields]


def require_text_fields(data, *fields):
    """Same as require_fields, but every value must also be a string."""
    values = require_fields(data, *fields)
    wrong = [name for name, value in zip(fields, values) if not isinstance(value, str)]
    if wrong:
        raise ValidationError(
            f"Fields must be strings: {', '.join(wrong)}",
            fields=wrong,
        )
    return values


def optional_text(data, field):
    """Stripped string value of an optional field; None when absent or blank."""
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string', fields=[field])
    return value.strip() or None


def normalize_email(value):
    if not isinstance(value, str):
        raise ValidationError('Invalid email address')
    email = value.strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError('Invalid email address')
    return email


def validate_password(password):
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    return password


def parse_date(value, field='date'):
    """Parse YYYY-MM-DD."""
    if value in (None, ''):
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be YYYY-MM-DD') from None


def parse_datetime(value, field='datetime'):
    """Parse an ISO-8601 timestamp into a naive UTC datetime."""
    if value in (None, ''):
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an ISO-8601 timestamp') from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
