"""In-memory stand-ins for the catalog and the repositories.

They mirror the uniqueness rules of db/schema.sql so reconciliation
properties can be checked without a database.
"""

from datetime import date
from typing import Optional
from uuid import uuid4

import pytest

from reelsync.catalog.models import CanonicalMovie
from reelsync.jobs.models import Job
from reelsync.jobs.types import JobStatus, JobType
from reelsync.repositories.history import UnmatchedRecord
from reelsync.repositories.jobs import DuplicatePendingJob


class FakeCatalog:
    """Text search over known movies, in the given ranking order.

    Like a real catalog it only returns titles containing the query text.
    """

    def __init__(self, movies: Optional[list[CanonicalMovie]] = None):
        self.movies = list(movies or [])
        self.search_calls: list[tuple[str, Optional[int]]] = []
        self.id_calls: list[int] = []

    async def search_by_title(self, text: str, year: Optional[int] = None) -> list[CanonicalMovie]:
        self.search_calls.append((text, year))
        needle = text.casefold()
        return [
            movie
            for movie in self.movies
            if needle in movie.title.casefold()
            or (movie.original_title and needle in movie.original_title.casefold())
        ]

    async def find_by_id(self, catalog_id: int) -> Optional[CanonicalMovie]:
        self.id_calls.append(catalog_id)
        for movie in self.movies:
            if movie.catalog_id == catalog_id:
                return movie
        return None


class FakeMovieRepo:
    def __init__(self):
        self.movies: dict[int, CanonicalMovie] = {}

    async def upsert(self, movie: CanonicalMovie) -> None:
        self.movies[movie.catalog_id] = movie

    async def list_with_posters(self) -> list[CanonicalMovie]:
        return [m for m in self.movies.values() if m.poster_ref]

    async def list_stale(self, max_age_hours: int) -> list[int]:
        return sorted(self.movies)


class FakeHistoryRepo:
    def __init__(self):
        self.entries: set[tuple[int, int, date, str]] = set()
        self.ratings: dict[tuple[int, int], int] = {}
        self.unmatched: dict[int, UnmatchedRecord] = {}
        self.manual_matches: dict[tuple[int, str, str], int] = {}
        self._next_id = 1

    async def add_entry(self, user_id, movie_id, watched_at, source, provider_rating=None) -> bool:
        key = (user_id, movie_id, watched_at, source)
        if key in self.entries:
            return False
        self.entries.add(key)
        return True

    async def upsert_rating(self, user_id, movie_id, rating, source) -> bool:
        key = (user_id, movie_id)
        if self.ratings.get(key) == rating:
            return False
        self.ratings[key] = rating
        return True

    async def add_unmatched(
        self,
        user_id,
        source,
        kind,
        external_title,
        normalized_title,
        release_year=None,
        watched_at=None,
        provider_rating=None,
    ) -> bool:
        for record in self.unmatched.values():
            if (record.user_id, record.source, record.kind, record.normalized_title, record.watched_at) == (
                user_id,
                source,
                kind,
                normalized_title,
                watched_at,
            ):
                return False
        record = UnmatchedRecord(
            id=self._next_id,
            user_id=user_id,
            source=source,
            kind=kind,
            external_title=external_title,
            normalized_title=normalized_title,
            release_year=release_year,
            watched_at=watched_at,
            provider_rating=provider_rating,
        )
        self.unmatched[record.id] = record
        self._next_id += 1
        return True

    async def list_unmatched(self, user_id):
        return [r for r in self.unmatched.values() if r.user_id == user_id]

    async def get_unmatched(self, user_id, unmatched_id):
        record = self.unmatched.get(unmatched_id)
        return record if record and record.user_id == user_id else None

    async def delete_unmatched(self, user_id, unmatched_id) -> bool:
        record = await self.get_unmatched(user_id, unmatched_id)
        if record is None:
            return False
        del self.unmatched[unmatched_id]
        return True


    async def save_manual_match(self, user_id, source, normalized_title, catalog_id):
        self.manual_matches[(user_id, source, normalized_title)] = catalog_id

    async def get_manual_match(self, user_id, source, normalized_title):
        return self.manual_matches.get((user_id, source, normalized_title))


class FakeJobRepo:
    """Enforces one pending/in-progress job per (user, type)."""

    def __init__(self):
        self.jobs: list[Job] = []

    def _active(self, user_id, job_type) -> Optional[Job]:
        for job in self.jobs:
            if job.user_id == user_id and job.type == job_type and not job.status.is_terminal:
                return job
        return None

    async def enqueue(self, user_id, job_type, payload=None) -> Job:
        if self._active(user_id, job_type):
            raise DuplicatePendingJob(user_id, job_type)
        job = Job(
            id=uuid4(),
            type=job_type,
            status=JobStatus.PENDING,
            payload=dict(payload or {}),
            user_id=user_id,
        )
        self.jobs.append(job)
        return job

    async def append_to_pending(self, user_id, job_type, key, items):
        job = self._active(user_id, job_type)
        if job is None or job.status != JobStatus.PENDING:
            return None
        job.payload.setdefault(key, []).extend(items)
        return job

    async def find(self, user_id, job_type):
        return [j for j in reversed(self.jobs) if j.user_id == user_id and j.type == job_type]


class FakePlaybackRepo:
    def __init__(self):
        self.states: dict[tuple[int, str], str] = {}

    async def get_state(self, user_id, media_key):
        return self.states.get((user_id, media_key))

    async def set_state(self, user_id, media_key, state):
        self.states[(user_id, media_key)] = state

    async def clear(self, user_id, media_key):
        self.states.pop((user_id, media_key), None)


@pytest.fixture
def inception():
    return CanonicalMovie(
        catalog_id=27205,
        title="Inception",
        release_date=date(2010, 7, 15),
        poster_ref="/inception.jpg",
    )


@pytest.fixture
def the_matrix():
    return CanonicalMovie(
        catalog_id=603,
        title="The Matrix",
        release_date=date(1999, 3, 30),
        poster_ref="/matrix.jpg",
    )


@pytest.fixture
def catalog(inception, the_matrix):
    return FakeCatalog([inception, the_matrix])


@pytest.fixture
def history_repo():
    return FakeHistoryRepo()


@pytest.fixture
def movie_repo():
    return FakeMovieRepo()


@pytest.fixture
def job_repo():
    return FakeJobRepo()


@pytest.fixture
def playback_repo():
    return FakePlaybackRepo()


def make_job(job_type=JobType.STREAMING_HISTORY_IMPORT, payload=None, user_id=1, status=JobStatus.IN_PROGRESS):
    return Job(
        id=uuid4(),
        type=job_type,
        status=status,
        payload=payload or {},
        user_id=user_id,
    )


@pytest.fixture
def job_factory():
    return make_job


@pytest.fixture
def make_catalog():
    """Build a FakeCatalog over arbitrary movies."""
    return FakeCatalog
