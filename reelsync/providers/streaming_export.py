"""Streaming-service activity export (CSV) parsing.

Two flavours are supported:

- history: one row per viewing, columns ``Title`` (or ``Name``) and ``Date``
  (or ``Watched Date``), optional ``Year`` and ``Rating``
- ratings: columns ``Title`` (or ``Name``) and ``Rating`` (0.5 to 5 stars),
  optional ``Year``

TV episode rows (``Show: Season 1: Pilot``) are skipped; only movies are
tracked. Files are validated before a job is created, so a parse error while
the job runs means the file changed on disk.
"""

import asyncio
import csv
import re
from datetime import date, datetime
from pathlib import Path
from typing import AsyncIterator, Iterator, Optional, Union

import structlog

from reelsync.providers.base import InvalidImportFile, RawActivityRecord

logger = structlog.get_logger(__name__)

TITLE_COLUMNS = ("Title", "Name")
DATE_COLUMNS = ("Watched Date", "Date")
YEAR_COLUMN = "Year"
RATING_COLUMN = "Rating"

DEFAULT_DATE_FORMAT = "%m/%d/%y"

EPISODE_PATTERN = re.compile(
    r"^.+?: (?:Season|Series|Part|Volume|Chapter|Book|Collection|Limited Series)\b[^:]*: .+$",
    re.IGNORECASE,
)

PathLike = Union[str, Path]


def is_episode_title(title: str) -> bool:
    return bool(EPISODE_PATTERN.match(title))


def parse_export_date(value: str, date_format: str = DEFAULT_DATE_FORMAT) -> date:
    """Parse an export date. ISO dates are always accepted.

    Raises:
        ValueError: value matches neither ISO nor date_format
    """
    value = value.strip()
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        pass
    return datetime.strptime(value, date_format).date()


def parse_star_rating(value: str) -> int:
    """Convert a 0.5..5 star rating to the 1..10 scale.

    Raises:
        ValueError: not a number or outside the star range
    """
    stars = float(value.strip())
    if not 0.5 <= stars <= 5:
        raise ValueError(f"rating {value!r} outside 0.5-5")
    return int(round(stars * 2))


def _parse_year(value: Optional[str]) -> Optional[int]:
    if not value or not value.strip():
        return None
    year = int(value.strip())
    if not 1870 <= year <= 2200:
        raise ValueError(f"year {value!r} out of range")
    return year


def _pick_column(fieldnames: list[str], candidates: tuple[str, ...]) -> Optional[str]:
    for name in candidates:
        if name in fieldnames:
            return name
    return None


def _iter_rows(
    path: PathLike, ratings: bool, date_format: str
) -> Iterator[RawActivityRecord]:
    kind = "ratings" if ratings else "history"
    try:
        with open(path, newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh)
            fieldnames = [name.strip() for name in (reader.fieldnames or [])]
            reader.fieldnames = fieldnames

            title_col = _pick_column(fieldnames, TITLE_COLUMNS)
            if title_col is None:
                raise InvalidImportFile(
                    f"Import file is missing a title column (expected one of: {', '.join(TITLE_COLUMNS)})"
                )
            date_col = _pick_column(fieldnames, DATE_COLUMNS)
            if not ratings and date_col is None:
                raise InvalidImportFile(
                    f"Import file is missing a date column (expected one of: {', '.join(DATE_COLUMNS)})"
                )
            if ratings and RATING_COLUMN not in fieldnames:
                raise InvalidImportFile("Import file is missing the Rating column")

            for line_no, row in enumerate(reader, start=2):
                title = (row.get(title_col) or "").strip()
                if not title:
                    continue
                if is_episode_title(title):
                    continue

                try:
                    year = _parse_year(row.get(YEAR_COLUMN))
                    rating_raw = (row.get(RATING_COLUMN) or "").strip()
                    rating = parse_star_rating(rating_raw) if rating_raw else None
                    watched_at = None
                    if not ratings:
                        watched_at = parse_export_date(row.get(date_col) or "", date_format)
                except ValueError as e:
                    raise InvalidImportFile(f"Line {line_no}: {e}") from e

                if ratings and rating is None:
                    raise InvalidImportFile(f"Line {line_no}: rating is empty")

                yield RawActivityRecord(
                    external_title=title,
                    watched_at=watched_at,
                    release_year=year,
                    provider_rating=rating,
                )
    except UnicodeDecodeError as e:
        raise InvalidImportFile(f"Import file is not a UTF-8 CSV file ({kind})") from e
    except csv.Error as e:
        raise InvalidImportFile(f"Import file is not a valid CSV file: {e}") from e
    except OSError as e:
        raise InvalidImportFile(f"Import file cannot be read: {e.strerror or e}") from e


def validate_history_file(path: PathLike, date_format: str = DEFAULT_DATE_FORMAT) -> int:
    """Check a history export fully. Returns the number of movie rows.

    Raises:
        InvalidImportFile: with a user-facing reason
    """
    count = sum(1 for _ in _iter_rows(path, ratings=False, date_format=date_format))
    if count == 0:
        raise InvalidImportFile("Import file contains no movie rows")
    return count


def validate_ratings_file(path: PathLike) -> int:
    """Check a ratings export fully. Returns the number of movie rows.

    Raises:
        InvalidImportFile: with a user-facing reason
    """
    count = sum(1 for _ in _iter_rows(path, ratings=True, date_format=DEFAULT_DATE_FORMAT))
    if count == 0:
        raise InvalidImportFile("Import file contains no movie rows")
    return count


class StreamingHistoryExport:
    """One-shot parser for a history export file."""

    ratings = False

    def __init__(self, path: PathLike, date_format: str = DEFAULT_DATE_FORMAT):
        self.path = Path(path)
        self.date_format = date_format

    async def fetch_activity(
        self, cursor: Optional[datetime] = None
    ) -> AsyncIterator[RawActivityRecord]:
        # cursor is ignored: an export file is always read in full
        records = await asyncio.to_thread(
            lambda: list(_iter_rows(self.path, self.ratings, self.date_format))
        )
        logger.info(
            "streaming_export_parsed",
            path=str(self.path),
            ratings=self.ratings,
            records=len(records),
        )
        for record in records:
            yield record


class StreamingRatingsExport(StreamingHistoryExport):
    """One-shot parser for a ratings export file."""

    ratings = True

    def __init__(self, path: PathLike):
        super().__init__(path, DEFAULT_DATE_FORMAT)
