"""Resolve provider activity records to catalog movies.

A Matcher lives for one job run (or one webhook request). Its caches are
instance state and must never be shared between runs or users.
"""

import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from reelsync.catalog.models import CanonicalMovie, CatalogLookup
from reelsync.providers.base import RawActivityRecord

logger = structlog.get_logger(__name__)

# Latin look-alikes from Cyrillic and Greek, lowercase (applied after casefold).
HOMOGLYPHS = str.maketrans(
    {
        # Cyrillic
        "а": "a",
        "в": "b",
        "е": "e",
        "ё": "e",
        "з": "3",
        "і": "i",
        "ї": "i",
        "ј": "j",
        "к": "k",
        "м": "m",
        "н": "h",
        "о": "o",
        "р": "p",
        "с": "c",
        "т": "t",
        "у": "y",
        "х": "x",
        "ѕ": "s",
        "ԁ": "d",
        "ԛ": "q",
        "ԝ": "w",
        "һ": "h",
        # Greek
        "α": "a",
        "β": "b",
        "ε": "e",
        "η": "n",
        "ι": "i",
        "κ": "k",
        "μ": "m",
        "ν": "v",
        "ο": "o",
        "ρ": "p",
        "τ": "t",
        "υ": "u",
        "χ": "x",
        "ζ": "z",
    }
)

_YEAR_SUFFIX = re.compile(r"\s*[\(\[]\s*(?:18|19|20)\d{2}\s*[\)\]]\s*$")
_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


def normalize_title(title: str) -> str:
    """Canonical comparison form of a title.

    "Thе Mаtrix (1999)" with Cyrillic е/а and "the matrix" both become
    "the matrix".
    """
    if not title:
        return ""
    value = unicodedata.normalize("NFKC", title)
    value = _YEAR_SUFFIX.sub("", value)
    value = value.casefold().translate(HOMOGLYPHS)
    value = "".join(
        ch for ch in unicodedata.normalize("NFKD", value) if not unicodedata.combining(ch)
    )
    value = value.replace("&", " and ")
    value = _NON_WORD.sub(" ", value)
    return _WHITESPACE.sub(" ", value).strip()


def search_query(title: str, fold: bool = True) -> str:
    """Catalog query text for a title.

    A trailing year is dropped and, with fold, confusable Cyrillic and Greek
    letters are replaced by their Latin look-alike. Case, accents and
    punctuation are kept for the catalog's own ranking.
    """
    value = _YEAR_SUFFIX.sub("", unicodedata.normalize("NFKC", title or "")).strip()
    if not fold:
        return value
    return "".join(_fold_confusable(ch) for ch in value)


def _fold_confusable(ch: str) -> str:
    lower = ch.lower()
    folded = lower.translate(HOMOGLYPHS)
    if folded == lower:
        return ch
    return folded.upper() if ch.isupper() else folded


class MatchConfidence(str, Enum):
    """How a match was established."""

    NATIVE_ID = "native_id"
    TITLE_YEAR = "title_year"
    TITLE = "title"
    MANUAL = "manual"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class MatchResult:
    """Outcome of resolving one record. Unmatched is a value, not an error."""

    catalog_id: Optional[int]
    confidence: MatchConfidence
    movie: Optional[CanonicalMovie] = None

    @property
    def matched(self) -> bool:
        return self.catalog_id is not None

    @classmethod
    def unmatched(cls) -> "MatchResult":
        return cls(catalog_id=None, confidence=MatchConfidence.UNMATCHED)

    @classmethod
    def of(cls, movie: CanonicalMovie, confidence: MatchConfidence) -> "MatchResult":
        return cls(catalog_id=movie.catalog_id, confidence=confidence, movie=movie)


class Matcher:
    """Per-run resolver with id and title caches."""

    def __init__(self, catalog: CatalogLookup):
        self._catalog = catalog
        self._by_id: dict[int, MatchResult] = {}
        self._by_title: dict[tuple[str, Optional[int]], MatchResult] = {}
        self.lookups = 0

    async def resolve(self, record: RawActivityRecord) -> MatchResult:
        if record.catalog_id is not None:
            return await self._resolve_by_id(record.catalog_id)
        return await self._resolve_by_title(record.external_title, record.release_year)

    async def _resolve_by_id(self, catalog_id: int) -> MatchResult:
        cached = self._by_id.get(catalog_id)
        if cached is not None:
            return cached

        self.lookups += 1
        movie = await self._catalog.find_by_id(catalog_id)
        if movie is None:
            result = MatchResult.unmatched()
            logger.info("match_stale_catalog_id", catalog_id=catalog_id)
        else:
            result = MatchResult.of(movie, MatchConfidence.NATIVE_ID)
        self._by_id[catalog_id] = result
        return result

    async def _resolve_by_title(self, title: str, year: Optional[int]) -> MatchResult:
        normalized = normalize_title(title)
        if not normalized:
            return MatchResult.unmatched()

        key = (normalized, year)
        cached = self._by_title.get(key)
        if cached is not None:
            return cached

        query = search_query(title)
        self.lookups += 1
        candidates = await self._catalog.search_by_title(query)
        result = select_candidate(normalized, year, candidates)
        unfolded = search_query(title, fold=False)
        if not result.matched and query != unfolded:
            # titles genuinely written in Cyrillic or Greek only match as-is
            candidates = await self._catalog.search_by_title(unfolded)
            result = select_candidate(normalized, year, candidates)
        if result.movie is not None:
            self._by_id.setdefault(result.movie.catalog_id, result)
        else:
            logger.info("match_title_unmatched", title=title, year=year, candidates=len(candidates))
        self._by_title[key] = result
        return result


def select_candidate(
    normalized_title: str,
    year: Optional[int],
    candidates: list[CanonicalMovie],
) -> MatchResult:
    """Pick the best candidate from a ranked search result.

    Only candidates whose normalized title (or original title) equals the
    query qualify. Among them the first with the record's year wins,
    otherwise the first in search order.
    """
    qualifying = [
        movie
        for movie in candidates
        if normalize_title(movie.title) == normalized_title
        or (movie.original_title and normalize_title(movie.original_title) == normalized_title)
    ]
    if not qualifying:
        return MatchResult.unmatched()

    if year is not None:
        for movie in qualifying:
            if movie.release_year == year:
                return MatchResult.of(movie, MatchConfidence.TITLE_YEAR)

    return MatchResult.of(qualifying[0], MatchConfidence.TITLE)
