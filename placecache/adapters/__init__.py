"""Places provider adapters."""

from placecache.adapters.geoapify import GeoapifyPlacesClient
from placecache.adapters.normalizer import normalize_feature, normalize_features

__all__ = ["GeoapifyPlacesClient", "normalize_feature", "normalize_features"]
