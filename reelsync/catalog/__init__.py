"""Metadata catalog package."""

from reelsync.catalog.models import CanonicalMovie, CatalogLookup
from reelsync.catalog.tmdb import TmdbCatalogClient

__all__ = ["CanonicalMovie", "CatalogLookup", "TmdbCatalogClient"]
