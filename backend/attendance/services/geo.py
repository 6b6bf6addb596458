"""Great-circle distance and coordinate validation."""
import math
from numbers import Real

from attendance.utils.errors import AttendanceError, ErrorKind

EARTH_RADIUS_METERS = 6371000


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two GPS points in meters (Haversine)."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def validate_coordinates(latitude, longitude) -> tuple:
    """Return (latitude, longitude) as floats or raise InvalidCoordinates."""
    if not _is_number(latitude) or not _is_number(longitude):
        raise AttendanceError(ErrorKind.INVALID_COORDINATES, "Invalid GPS coordinates")

    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise AttendanceError(
            ErrorKind.INVALID_COORDINATES,
            "Invalid GPS coordinates",
            latitude=latitude,
            longitude=longitude,
        )

    return float(latitude), float(longitude)
