"""
Request validation

Business-rule checks for staff edits and parsing of JSON payload values.
Every failure raises services.errors.ValidationError (HTTP 400).
"""

from models import PackageItem
from services.errors import ValidationError


def parse_id(value, field):
    """
    Positive integer ID from a payload value

    Example:
        >>> parse_id("42", "schedule_id")
        42
        >>> parse_id(None, "schedule_id")
        ValidationError: Schedule ID is required
    """
    label = field.replace('_id', ' ID').replace('_', ' ')
    label = label[0].upper() + label[1:]
    if value is None or value == '':
        raise ValidationError(f"{label} is required", code='MISSING_FIELD')
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a positive integer", code='INVALID_FIELD')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a positive integer", code='INVALID_FIELD')
    if number <= 0:
        raise ValidationError(f"{label} must be a positive integer", code='INVALID_FIELD')
    return number


def parse_positive_int(value, field, default=None):
    if value is None or value == '':
        if default is not None:
            return default
        raise ValidationError(f"{field} is required", code='MISSING_FIELD')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive integer", code='INVALID_FIELD')
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer", code='INVALID_FIELD')
    return number


def require_text(value, field, min_length=1):
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field} must be text", code='INVALID_FIELD')
    text = (value or '').strip()
    if len(text) < min_length:
        raise ValidationError(f"{field} must be at least {min_length} characters", code='INVALID_FIELD')
    return text


def validate_capacity_change(current_count, new_capacity):
    """
    Capacity change check

    Capacity may not drop below the seats already booked on an upcoming
    instance of the class.

    Args:
        current_count (int): highest booked count among upcoming instances
        new_capacity (int): requested capacity

    Returns:
        tuple: (is_valid: bool, error_message: str or None)

    Example:
        >>> validate_capacity_change(3, 5)
        (True, None)

        >>> validate_capacity_change(3, 2)
        (False, "Capacity cannot be lower than the 3 seats already booked.")
    """
    if new_capacity < current_count:
        return (
            False,
            f"Capacity cannot be lower than the {current_count} seats already booked."
        )

    return (True, None)


def parse_package_items(raw_items):
    """
    Package lines from a payload

    Args:
        raw_items (list[dict]): [{"class_type": "Yoga", "credits": 4}, ...]

    Returns:
        list[PackageItem]: in payload (declaration) order

    Raises:
        ValidationError: no lines, empty class type, non-positive credits or
            the same class type twice
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("You must add at least one class type.", code='INVALID_PACKAGE_ITEMS')

    items = []
    seen = set()
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Package items must be objects.", code='INVALID_PACKAGE_ITEMS')
        class_type = raw.get('class_type')
        if class_type is not None and not isinstance(class_type, str):
            raise ValidationError("Class type must be text.", code='INVALID_PACKAGE_ITEMS')
        class_type = (class_type or '').strip()
        if not class_type:
            raise ValidationError("Class type is required.", code='INVALID_PACKAGE_ITEMS')
        if class_type.lower() in seen:
            raise ValidationError(f"Class type {class_type} is listed twice.", code='INVALID_PACKAGE_ITEMS')
        seen.add(class_type.lower())
        credits = parse_positive_int(raw.get('credits'), 'Credits')
        items.append(PackageItem(class_type, credits))
    return items
