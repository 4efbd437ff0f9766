import math
import re
import uuid
import secrets
import logging

from whisperwalls.exceptions import Unavailable, ValidationError
from whisperwalls.models import Coordinates, Tone

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_PASSWORD_BYTES = 72


def validate_username(username):

    if not username or not isinstance(username, str):
        return False, "Username is required"
    if len(username) < 3:
        return False, "Username must be at least 3 characters"
    if len(username) > 50:
        return False, "Username must be less than 50 characters"
    if not username.replace("_", "").replace("-", "").isalnum():
        return False, "Username can only contain letters, numbers, hyphens, and underscores"
    return True, ""


def validate_password(password):

    if not password or not isinstance(password, str):
        return False, "Password is required"
    if len(password) < 8:
        return False, "Password must be at least 8 characters"
    # bcrypt only looks at the first 72 bytes
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False, f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
    return True, ""


def validate_email(email):

    if not email or not isinstance(email, str):
        return False, "Email is required"
    if len(email) > 254 or not EMAIL_PATTERN.match(email):
        return False, "Email address is not valid"
    return True, ""


def _number(value, name):
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite")
    return float(value)


def parse_coordinates(location):
    """Accept ``{latitude, longitude}`` or a GeoJSON ``Point`` (``[lng, lat]``)."""
    if isinstance(location, Coordinates):
        latitude, longitude = location.latitude, location.longitude
    elif isinstance(location, dict) and location.get("type") == "Point":
        coords = location.get("coordinates")
        if not isinstance(coords, (list, tuple)) or len(coords) != 2:
            raise ValidationError("Point coordinates must be [longitude, latitude]")
        longitude, latitude = coords
    elif isinstance(location, dict) and "latitude" in location and "longitude" in location:
        latitude, longitude = location["latitude"], location["longitude"]
    else:
        raise ValidationError("Invalid location format")

    latitude = _number(latitude, "latitude")
    longitude = _number(longitude, "longitude")
    if not -90.0 <= latitude <= 90.0:
        raise ValidationError("latitude must be between -90 and 90")
    if not -180.0 <= longitude <= 180.0:
        raise ValidationError("longitude must be between -180 and 180")
    return Coordinates(latitude, longitude)


def parse_tone(tone):
    if isinstance(tone, Tone):
        return tone
    try:
        return Tone(tone)
    except ValueError:
        allowed = ", ".join(t.value for t in Tone)
        raise ValidationError(f"tone must be one of: {allowed}") from None


def validate_text(value, max_length, name, required=True):
    """Length is counted in code points, after stripping surrounding whitespace."""
    if value is None and not required:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    value = value.strip()
    if not value:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if len(value) > max_length:
        raise ValidationError(f"{name} must be at most {max_length} characters")
    return value


def parse_positive(value, name, default, maximum):
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number") from None
    if not math.isfinite(number) or number <= 0:
        raise ValidationError(f"{name} must be greater than zero")
    if number > maximum:
        raise ValidationError(f"{name} must be at most {maximum:g}")
    return number


def parse_seconds(value, name, default, maximum):
    """Whole, non-negative number of seconds no larger than ``maximum``."""
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    if not math.isfinite(value) or value != int(value):
        raise ValidationError(f"{name} must be a whole number of seconds")
    if not 0 <= value <= maximum:
        raise ValidationError(f"{name} must be between 0 and {maximum}")
    return int(value)


def new_token():
    """Unguessable identifier; fails closed when no entropy source exists."""
    try:
        return secrets.token_urlsafe(32)
    except NotImplementedError as e:
        logger.error(f"No entropy source available: {e}")
        raise Unavailable("No entropy source available") from e


def new_id():
    return uuid.uuid4().hex
