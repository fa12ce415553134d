# apps/core/utils.py

from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .exceptions import ValidationError

CENTS = Decimal('0.01')
RATE_PLACES = Decimal('0.0001')
ZERO = Decimal('0.00')


def to_decimal(value, field='amount'):
    """
    Convert an external value to Decimal without passing through binary floats.

    Args:
        value: Decimal, int or numeric string
        field: field name reported in the validation error

    Returns:
        Decimal: the exact value

    Raises:
        ValidationError: for floats, booleans, blanks and non-numeric input
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a decimal string, not a float", field=field)
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str) and value.strip():
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"{field} is not a valid decimal: '{value}'", field=field)
    else:
        raise ValidationError(f"{field} is required", field=field)

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    return result


def quantize_money(value):
    """Round to cents, half-up"""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def quantize_rate(value):
    return Decimal(value).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def money_str(value):
    """Render a money value as a fixed two-place decimal string"""
    return str(quantize_money(value if value is not None else ZERO))


def format_document_number(prefix, value):
    """
    Format a sequence value as a document number.

    >>> format_document_number('INV', 7)
    'INV-0007'
    """
    return f"{prefix}-{value:04d}"


def to_datetime(value, field='datetime'):
    """Accept an aware/naive datetime or an ISO-8601 string; return an aware datetime"""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, str):
        try:
            result = parse_datetime(value.strip())
            if result is None:
                parsed_date = parse_date(value.strip())
                if parsed_date is not None:
                    result = datetime.combine(parsed_date, time.min)
        except ValueError:
            result = None
    else:
        result = None
    if result is None:
        raise ValidationError(f"{field} is not a valid datetime", field=field)
    if timezone.is_naive(result):
        result = timezone.make_aware(result)
    return result


def to_date(value, field='date'):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            result = parse_date(value.strip())
        except ValueError:
            result = None
        if result is not None:
            return result
    raise ValidationError(f"{field} is not a valid date", field=field)
