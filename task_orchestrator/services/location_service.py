"""
User location detection.

A location sent by the client (browser geolocation) is used as-is. Without
one, the location is looked up from the caller's IP address. Lookup
failures yield None rather than an error.
"""

from typing import Any

from task_orchestrator.orchestration.states.medicine_state import Location
from task_orchestrator.utils.error_handling import APIError
from task_orchestrator.utils.logging import get_logger
from task_orchestrator.utils.rate_limiting import APIClient, RateLimitManager

logger = get_logger(__name__)

IP_API_BASE = "http://ip-api.com/json"
IP_API_FIELDS = "status,message,city,regionName,country,lat,lon,zip"


def location_from_request(request_location: dict[str, Any] | None) -> Location | None:
    """
    Location passed by the client, when it carries coordinates.

    Args:
        request_location: Mapping with lat, lng and an optional address

    Returns:
        Location, or None if no coordinates were given
    """
    if not request_location:
        return None
    lat = request_location.get("lat")
    lng = request_location.get("lng")
    if lat is None or lng is None:
        return None
    return Location(
        lat=lat,
        lng=lng,
        address=request_location.get("address") or f"{lat}, {lng}",
    )


def location_from_ip_api(data: dict[str, Any]) -> Location | None:
    """Convert an ip-api.com response to a Location."""
    if data.get("status") != "success" or data.get("lat") is None or data.get("lon") is None:
        return None
    city = data.get("city") or ""
    region = data.get("regionName") or ""
    country = data.get("country") or ""
    address = ", ".join(part for part in (city, region, country) if part) or "Unknown"
    return Location(
        lat=data["lat"],
        lng=data["lon"],
        address=address,
        city=city or None,
        state=region or None,
        country=country or None,
    )


class LocationService:
    """Detects a user's location from the request or their IP address."""

    def __init__(
        self,
        manager: RateLimitManager | None = None,
        timeout_seconds: float = 5.0,
        client: APIClient | None = None,
    ):
        self.client = client or APIClient(
            "ip-api", IP_API_BASE, manager=manager, timeout_seconds=timeout_seconds
        )

    async def detect_from_ip(self) -> Location | None:
        try:
            data = await self.client.request("GET", "", params={"fields": IP_API_FIELDS})
        except APIError as e:
            logger.warning(f"Location from IP failed: {e!s}")
            return None

        location = location_from_ip_api(data)
        if location is not None:
            logger.info(f"Location detected from IP: {location.city}, {location.country}")
        return location

    async def detect(
        self, request_location: dict[str, Any] | None = None
    ) -> Location | None:
        """
        Detect the user's location.

        Args:
            request_location: Location sent by the client (optional)

        Returns:
            The detected location, or None when it cannot be determined
        """
        location = location_from_request(request_location)
        if location is not None:
            return location
        return await self.detect_from_ip()
