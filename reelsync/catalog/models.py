"""Catalog data models and the lookup contract consumed by the core."""

from dataclasses import dataclass
from datetime import date
from typing import Optional, Protocol


@dataclass(frozen=True)
class CanonicalMovie:
    """A movie as known by the metadata catalog."""

    catalog_id: int
    title: str
    release_date: Optional[date] = None
    poster_ref: Optional[str] = None
    original_title: Optional[str] = None

    @property
    def release_year(self) -> Optional[int]:
        return self.release_date.year if self.release_date else None


class CatalogLookup(Protocol):
    """Read-only, rate-limited catalog lookup."""

    async def search_by_title(
        self, text: str, year: Optional[int] = None
    ) -> list[CanonicalMovie]:
        """Search movies by title. Results are ranked, best first."""
        ...

    async def find_by_id(self, catalog_id: int) -> Optional[CanonicalMovie]:
        """Return the movie or None when the id is unknown upstream."""
        ...
