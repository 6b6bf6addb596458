"""Geofence admission for GPS-based check-in.

Coordinates come from the student's device and are trusted as sent: a
spoofed position is admitted if it falls inside the fence. Detecting
spoofing is not attempted here; this gate only applies the fence policy
to whatever position it receives.
"""
from dataclasses import dataclass, asdict
from typing import Dict, Optional

from attendance.models.course import ClassGeofence
from attendance.services.geo import calculate_distance, validate_coordinates


@dataclass
class ProximityResult:
    """Outcome of a single geofence check."""
    admitted: bool
    configured: bool
    distance_meters: Optional[float]
    allowed_radius: Optional[float]
    room: Optional[str] = None

    @property
    def rounded_distance(self) -> Optional[int]:
        if self.distance_meters is None:
            return None
        return round(self.distance_meters)

    def confidence(self) -> float:
        """Proximity-derived score in [0, 1]; 1 at the fence center."""
        if not self.admitted or self.distance_meters is None or not self.allowed_radius:
            return 0.0
        return max(0.0, (self.allowed_radius - self.distance_meters) / self.allowed_radius)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['distance_meters'] = self.rounded_distance
        return data


class ProximityService:
    """Service for geofence verification."""

    @staticmethod
    def check(latitude: float, longitude: float, geofence: ClassGeofence) -> ProximityResult:
        """Decide whether a claimed position lies inside the class geofence."""
        latitude, longitude = validate_coordinates(latitude, longitude)

        if not geofence.is_configured:
            return ProximityResult(
                admitted=False,
                configured=False,
                distance_meters=None,
                allowed_radius=geofence.radius_meters,
                room=geofence.room,
            )

        distance = calculate_distance(
            latitude, longitude,
            geofence.latitude, geofence.longitude
        )

        return ProximityResult(
            admitted=distance <= geofence.radius_meters,
            configured=True,
            distance_meters=distance,
            allowed_radius=geofence.radius_meters,
            room=geofence.room,
        )
