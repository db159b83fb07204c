"""
Geocoding and nearby-place search backed by Mapbox.

Forward and reverse geocoding use the Geocoding v6 API. Nearby places come
from the Search Box category endpoint, falling back to a text search when a
category returns nothing. Results are filtered to the requested radius by
great-circle distance and sorted closest first.
"""

import math
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from task_orchestrator.tools.base import BaseTool
from task_orchestrator.utils.error_handling import APIError, ToolError
from task_orchestrator.utils.logging import get_logger
from task_orchestrator.utils.rate_limiting import APIClient, RateLimitManager

logger = get_logger(__name__)

MAPBOX_BASE_URL = "https://api.mapbox.com"
EARTH_RADIUS_METERS = 6_371_000
MAX_NEARBY_PLACES = 10

SEARCH_TYPE_TO_CATEGORY = {
    "pharmacy": "health_services",
    "restaurant": "restaurant",
    "hotel": "lodging",
    "any": "food_and_drink",
}
SEARCH_TYPE_TO_QUERY = {
    "pharmacy": "pharmacy",
    "restaurant": "restaurant",
    "hotel": "hotel",
    "any": "store",
}


class Coordinates(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class GeocodingInput(BaseModel):
    address: str | None = Field(default=None, description="Address to geocode")
    coordinates: Coordinates | None = Field(
        default=None, description="Coordinates for reverse geocoding"
    )
    radius: int = Field(default=5000, ge=100, le=50000, description="Meters")
    search_type: Literal["pharmacy", "restaurant", "hotel", "any"] | None = Field(
        default=None, alias="searchType", description="Type of places to find nearby"
    )

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def require_address_or_coordinates(self) -> "GeocodingInput":
        if not self.address and self.coordinates is None:
            raise ValueError("Either address or coordinates must be provided")
        return self


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _feature_coordinates(feature: dict[str, Any]) -> tuple[float, float] | None:
    coords = (feature.get("geometry") or {}).get("coordinates")
    if coords and len(coords) >= 2:
        return coords[1], coords[0]
    props = (feature.get("properties") or {}).get("coordinates") or {}
    if props.get("latitude") is not None and props.get("longitude") is not None:
        return props["latitude"], props["longitude"]
    return None


def _location_from_feature(feature: dict[str, Any], fallback: str) -> dict[str, Any]:
    props = feature.get("properties") or {}
    context = props.get("context") or {}
    name = props.get("name") or ""
    place_formatted = props.get("place_formatted") or ""
    lat, lng = _feature_coordinates(feature)
    return {
        "lat": lat,
        "lng": lng,
        "formattedAddress": (
            f"{name}, {place_formatted}" if name else place_formatted or fallback
        ),
        "city": (context.get("place") or {}).get("name") or "Unknown City",
        "state": (context.get("region") or {}).get("name") or "Unknown State",
        "country": (context.get("country") or {}).get("name") or "Unknown Country",
        "postalCode": (context.get("postcode") or {}).get("name"),
    }


class GeocodingTool(BaseTool):
    """Resolve addresses and coordinates, optionally listing nearby places."""

    name = "geocoding"
    description = (
        "Convert addresses to coordinates, or find nearby places like pharmacies, "
        "restaurants, hotels. Uses Mapbox for geocoding and location search."
    )
    args_schema = GeocodingInput

    def __init__(
        self,
        access_token: str | None = None,
        timeout_seconds: float = 5.0,
        manager: RateLimitManager | None = None,
        client: APIClient | None = None,
    ):
        self.access_token = access_token
        # Mapbox takes the token as a query parameter, not a bearer header
        self.client = client or APIClient(
            "mapbox", MAPBOX_BASE_URL, manager=manager, timeout_seconds=timeout_seconds
        )

    async def _run(self, args: GeocodingInput) -> dict[str, Any]:
        if not self.access_token:
            return self.failure("MAPBOX_ACCESS_TOKEN is not configured")

        try:
            if args.address:
                location = await self.geocode_address(args.address)
                result: dict[str, Any] = {
                    "type": "geocode",
                    "query": args.address,
                    "location": location,
                }
            else:
                location = await self.reverse_geocode(
                    args.coordinates.lat, args.coordinates.lng
                )
                result = {
                    "type": "reverse_geocode",
                    "coordinates": args.coordinates.model_dump(),
                    "location": location,
                }
        except (APIError, ToolError) as e:
            return self.failure(str(e))

        result["nearbyPlaces"] = (
            await self.find_nearby_places(
                location["lat"], location["lng"], args.radius, args.search_type
            )
            if args.search_type
            else []
        )
        return self.success(result)

    async def geocode_address(self, address: str) -> dict[str, Any]:
        """
        Forward geocode an address.

        Raises:
            ToolError: If Mapbox has no match for the address
        """
        data = await self.client.request(
            "GET",
            "search/geocode/v6/forward",
            params={
                "q": address,
                "access_token": self.access_token,
                "limit": "1",
                "autocomplete": "false",
            },
        )
        features = data.get("features") or []
        if not features or _feature_coordinates(features[0]) is None:
            raise ToolError(f"No results for address: {address}", self.name)
        return _location_from_feature(features[0], address)

    async def reverse_geocode(self, lat: float, lng: float) -> dict[str, Any]:
        data = await self.client.request(
            "GET",
            "search/geocode/v6/reverse",
            params={
                "longitude": str(lng),
                "latitude": str(lat),
                "access_token": self.access_token,
                "limit": "1",
            },
        )
        features = data.get("features") or []
        if not features or _feature_coordinates(features[0]) is None:
            return {
                "lat": lat,
                "lng": lng,
                "formattedAddress": f"{lat:.4f}, {lng:.4f}",
                "city": "Unknown City",
                "state": "Unknown State",
                "country": "Unknown Country",
            }
        return _location_from_feature(features[0], f"{lat}, {lng}")

    async def find_nearby_places(
        self, lat: float, lng: float, radius: int, search_type: str
    ) -> list[dict[str, Any]]:
        """Nearby places within radius, by category first and then by text."""
        category = SEARCH_TYPE_TO_CATEGORY.get(search_type, "food_and_drink")
        places = await self._search(
            f"search/searchbox/v1/category/{category}",
            {"proximity": f"{lng},{lat}", "limit": "25", "language": "en"},
            lat,
            lng,
            radius,
            search_type,
        )
        if places:
            return places

        logger.debug(f"Category search empty for {category}, trying text search")
        return await self._search(
            "search/searchbox/v1/forward",
            {
                "q": SEARCH_TYPE_TO_QUERY.get(search_type, search_type),
                "proximity": f"{lng},{lat}",
                "limit": "10",
                "language": "en",
                "types": "poi",
            },
            lat,
            lng,
            radius,
            search_type,
        )

    async def _search(
        self,
        endpoint: str,
        params: dict[str, str],
        lat: float,
        lng: float,
        radius: int,
        search_type: str,
    ) -> list[dict[str, Any]]:
        try:
            data = await self.client.request(
                "GET", endpoint, params={**params, "access_token": self.access_token}
            )
        except APIError as e:
            logger.warning(f"Mapbox place search failed on {endpoint}: {e!s}")
            return []

        places = []
        for feature in data.get("features") or []:
            coords = _feature_coordinates(feature)
            if coords is None:
                continue
            distance = haversine_distance(lat, lng, coords[0], coords[1])
            if distance > radius:
                continue
            props = feature.get("properties") or {}
            places.append(
                {
                    "id": f"{search_type}_{len(places) + 1}",
                    "name": props.get("name") or "Unknown",
                    "type": search_type,
                    "address": props.get("full_address")
                    or props.get("address")
                    or props.get("place_formatted")
                    or "",
                    "lat": coords[0],
                    "lng": coords[1],
                    "distance": round(distance),
                }
            )
            if len(places) >= MAX_NEARBY_PLACES:
                break

        return sorted(places, key=lambda place: place["distance"])
