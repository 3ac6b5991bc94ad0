"""
Request Parameter Validation

Validators used while building provider queries. Each returns the
validated (and type-normalized) value or raises InvalidRequest; none of
them touch the network or the filesystem.
"""

from typing import Any, Iterable, Tuple

from .logging_utils import InvalidRequest


def _as_number(value: Any, parameter_name: str) -> float:
    if isinstance(value, bool):
        raise InvalidRequest(f"{parameter_name} must be numeric, got: {value!r}",
                             {'parameter': parameter_name, 'value': value})
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{parameter_name} must be numeric, got: {value!r}",
                             {'parameter': parameter_name, 'value': value})


def validate_coordinates(lat: Any, lon: Any) -> Tuple[float, float]:
    """
    Validate a site location in decimal degrees.

    Args:
        lat: Latitude, must lie in [-90, 90]
        lon: Longitude, must lie in [-180, 180]

    Returns:
        tuple: (latitude, longitude) as floats
    """
    latitude = _as_number(lat, 'lat')
    longitude = _as_number(lon, 'lon')

    if not -90.0 <= latitude <= 90.0:
        raise InvalidRequest(f"Latitude must be within [-90, 90], got: {latitude}",
                             {'lat': latitude})
    if not -180.0 <= longitude <= 180.0:
        raise InvalidRequest(f"Longitude must be within [-180, 180], got: {longitude}",
                             {'lon': longitude})

    return latitude, longitude


def validate_integer(value: Any, parameter_name: str) -> int:
    """Accept ints and integral strings/floats, reject everything else."""
    if isinstance(value, bool):
        raise InvalidRequest(f"{parameter_name} must be an integer, got: {value!r}",
                             {'parameter': parameter_name, 'value': value})
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{parameter_name} must be an integer, got: {value!r}",
                             {'parameter': parameter_name, 'value': value})
    if not number.is_integer():
        raise InvalidRequest(f"{parameter_name} must be an integer, got: {value!r}",
                             {'parameter': parameter_name, 'value': value})
    return int(number)


def validate_positive_integer(value: Any, parameter_name: str) -> int:
    number = validate_integer(value, parameter_name)
    if number <= 0:
        raise InvalidRequest(f"{parameter_name} must be positive, got: {number}",
                             {'parameter': parameter_name, 'value': number})
    return number


def validate_year_range(start_year: Any, end_year: Any) -> Tuple[int, int]:
    """Validate an inclusive year span (start <= end)."""
    start = validate_integer(start_year, 'start_year')
    end = validate_integer(end_year, 'end_year')
    if start > end:
        raise InvalidRequest(f"start_year {start} is after end_year {end}",
                             {'start_year': start, 'end_year': end})
    return start, end


def validate_choice(value: Any, choices: Iterable[str], parameter_name: str) -> str:
    """Case-insensitive membership check; returns the lower-cased value."""
    text = str(value).strip().lower()
    allowed = [str(choice).lower() for choice in choices]
    if text not in allowed:
        raise InvalidRequest(f"Unsupported {parameter_name}: {value!r}. Supported: {allowed}",
                             {'parameter': parameter_name, 'value': value})
    return text


def validate_country_code(value: Any) -> str:
    """ISO 3166-1 alpha-2 country code, returned upper-case."""
    text = str(value).strip().upper()
    if len(text) != 2 or not text.isalpha():
        raise InvalidRequest(f"Country must be a two-letter ISO code, got: {value!r}",
                             {'country': value})
    return text


def validate_non_empty_text(value: Any, parameter_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequest(f"Please provide a valid {parameter_name}",
                             {'parameter': parameter_name, 'value': value})
    return value.strip()
