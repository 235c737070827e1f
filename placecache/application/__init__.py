"""Application services."""

from placecache.application.context import make_nearby_places_service
from placecache.application.nearby_places import NearbyPlacesService
from placecache.application.usage import UsageRecorder

__all__ = ["NearbyPlacesService", "UsageRecorder", "make_nearby_places_service"]
