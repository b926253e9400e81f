"""Pytest configuration and fixtures for mixcatalog tests."""

import os

# Settings are cached on first use; point them at SQLite before anything imports them
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("INGESTION_LOG_ENABLED", "false")

from collections.abc import Callable, Generator  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from mixcatalog.db.session import enable_sqlite_savepoints  # noqa: E402
from mixcatalog.models import Artist, RawMix, RawTrack, Track, TrackArtist  # noqa: E402
from mixcatalog.models.base import Base  # noqa: E402
from mixcatalog.schemas.canonicalization import CanonicalizationOptions  # noqa: E402

# Use SQLite in-memory for tests (fast, isolated)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_savepoints(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_raw_mix(db: Session) -> Callable[..., RawMix]:
    """Factory for staged raw mixes. Tracks are (line_text, raw_artist, raw_title) tuples."""
    counter = {"n": 0}

    def _make(
        tracks: list[tuple[str, str | None, str | None]] | None = None,
        provider: str = "youtube",
        external_id: str | None = None,
        **fields,
    ) -> RawMix:
        counter["n"] += 1
        n = counter["n"]
        raw_mix = RawMix(
            provider=provider,
            source_url=fields.pop("source_url", f"https://example.com/mix/{n}"),
            external_id=external_id if external_id is not None else f"vid{n}",
            raw_title=fields.pop("raw_title", f"Test Mix {n}"),
            **fields,
        )
        for position, (line_text, raw_artist, raw_title) in enumerate(tracks or [], start=1):
            raw_mix.tracks.append(
                RawTrack(
                    line_text=line_text,
                    position=position,
                    raw_artist=raw_artist,
                    raw_title=raw_title,
                    source=provider,
                )
            )
        db.add(raw_mix)
        db.commit()
        db.refresh(raw_mix)
        return raw_mix

    return _make


@pytest.fixture
def make_track(db: Session) -> Callable[..., Track]:
    """Factory for catalog tracks credited to one artist."""

    def _make(title: str, artist_name: str | None = None) -> Track:
        track = Track(title=title, ingestion_source="manual")
        db.add(track)
        db.flush()
        if artist_name:
            artist = db.query(Artist).filter(Artist.name == artist_name).first()
            if artist is None:
                artist = Artist(name=artist_name, ingestion_source="manual")
                db.add(artist)
                db.flush()
            db.add(TrackArtist(track_id=track.id, artist_id=artist.id, role="primary", position=1))
        db.commit()
        db.refresh(track)
        return track

    return _make


@pytest.fixture
def backfill_options() -> CanonicalizationOptions:
    return CanonicalizationOptions(mode="backfill")


@pytest.fixture
def rolling_options() -> CanonicalizationOptions:
    return CanonicalizationOptions(
        mode="rolling", auto_verify_threshold=0.9, system_user_id="system-user"
    )
