from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .exceptions import ValidationError


def to_amount(value, field='amount', default=None):
    """Coerce a number (or numeric string) into a non-negative Decimal."""
    if value is None or value == '':
        if default is None:
            raise ValidationError(f"{field} is required.")
        return Decimal(str(default))
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number.")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number.")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number.")
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative.")
    return amount


def parse_timestamp(value, field='timestamp'):
    """Accept a datetime, a date or an ISO-8601 string and return an aware datetime."""
    if value is None or value == '':
        raise ValidationError(f"{field} is required.")
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        try:
            parsed = parse_datetime(value.strip().replace('Z', '+00:00'))
            if parsed is None:
                day = parse_date(value.strip())
                parsed = datetime.combine(day, time.min) if day else None
        except ValueError:
            parsed = None
        if parsed is None:
            raise ValidationError(f"{field} is not a valid ISO-8601 timestamp.")
    else:
        raise ValidationError(f"{field} is not a valid ISO-8601 timestamp.")

    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def parse_day(value, field='date'):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = parse_date(str(value).strip())
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD).")
    return parsed
