"""
JSON response helpers

Every endpoint answers with one of these shapes:
    success: {"message": "...", ...extra}
    error:   {"error": "...", "code": "..."}
"""


def message(text, status=200, **extra):
    """
    Success response

    Args:
        text (str): message shown to the user
        status (int): HTTP status (default 200)
        **extra: additional top-level keys

    Returns:
        tuple: (dict, status) for Flask

    Example:
        >>> message("Booking successful", 201, booking_id=7)
        ({"message": "Booking successful", "booking_id": 7}, 201)
    """
    body = {"message": text}
    body.update(extra)
    return body, status


def error(text, status, code=None):
    """
    Error response

    Example:
        >>> error("The class is full.", 409, "CLASS_FULL")
        ({"error": "The class is full.", "code": "CLASS_FULL"}, 409)
    """
    body = {"error": text}
    if code:
        body["code"] = code
    return body, status


def error_from(exc):
    """Error response for a services.errors.BookingError"""
    return error(exc.message, exc.status, exc.code)


def listing(key, items, status=200, **meta):
    """Collection response: {key: [...], "count": n, ...meta}"""
    body = {key: items, "count": len(items)}
    body.update(meta)
    return body, status
