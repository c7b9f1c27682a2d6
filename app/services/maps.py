# app/services/maps.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"
PLACES_NEARBY_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"


class MapsError(RuntimeError):
    pass


class MapsClient:
    """Google Maps web services over httpx (directions and nearby places)."""

    def __init__(self, api_key: str, timeout: float = 10.0, http: Optional[httpx.Client] = None) -> None:
        self.api_key = api_key
        self._client = http or httpx.Client(timeout=httpx.Timeout(timeout, connect=5.0))

    def _get(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise MapsError("GOOGLE_MAPS_API_KEY is not configured")
        r = self._client.get(url, params={**params, "key": self.api_key})
        r.raise_for_status()
        return r.json()

    def calculate_route(self, origin: Dict[str, float], destination: Dict[str, float]) -> Dict[str, Any]:
        """Driving route between two {lat, lng} points, traffic-aware."""
        data = self._get(DIRECTIONS_URL, {
            "origin": f"{origin['lat']},{origin['lng']}",
            "destination": f"{destination['lat']},{destination['lng']}",
            "mode": "driving",
            "departure_time": "now",
            "traffic_model": "best_guess",
        })
        if data.get("status") != "OK":
            raise MapsError(f"Route calculation failed: {data.get('status')}")

        route = data["routes"][0]
        leg = route["legs"][0]
        return {
            "distance": leg.get("distance"),
            "duration": leg.get("duration"),
            "duration_in_traffic": leg.get("duration_in_traffic"),
            "polyline": (route.get("overview_polyline") or {}).get("points"),
        }

    def nearby_hospitals(self, location: Dict[str, float], radius: int = 5000) -> List[Dict[str, Any]]:
        """Hospitals around a point, normalized to the API's hospital shape."""
        data = self._get(PLACES_NEARBY_URL, {
            "location": f"{location['lat']},{location['lng']}",
            "radius": radius,
            "type": "hospital",
        })
        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            raise MapsError(f"Nearby search failed: {status}")

        results = []
        for place in data.get("results", []):
            loc = place.get("geometry", {}).get("location", {})
            results.append({
                "source": "google",
                "name": place.get("name", ""),
                "address": {"street": place.get("vicinity", ""), "city": "", "state": "", "zip_code": "", "country": ""},
                "location": {"lat": loc.get("lat"), "lng": loc.get("lng")},
                "phone": place.get("formatted_phone_number", ""),
                "rating": {"average": place.get("rating", 0), "count": place.get("user_ratings_total", 0)},
                "google_place_id": place.get("place_id"),
            })
        return results

    def close(self) -> None:
        try:
            self._client.close()
        except Exception:
            logger.debug("Error closing maps HTTP client", exc_info=True)
