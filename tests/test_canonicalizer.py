"""Tests for canonicalizing staged raw mixes into catalog rows."""

import pytest
from sqlalchemy.orm import Session

from mixcatalog.models import (
    Artist,
    Mix,
    MixArtist,
    MixTrack,
    RawMix,
    RawMixStatus,
    Track,
    TrackAlias,
)
from mixcatalog.schemas.canonicalization import CanonicalizationOptions
from mixcatalog.services.canonicalizer import (
    MixCanonicalizer,
    add_track_alias,
    should_auto_verify_mix,
    should_auto_verify_track,
    verification_fields,
)
from mixcatalog.services.similarity import ConfidenceTier
from mixcatalog.services.track_matcher import TrackMatcher


class ExplodingMatcher(TrackMatcher):
    """Matcher that fails on one tracklist position."""

    def __init__(self, db: Session, fail_at: int):
        super().__init__(db)
        self.fail_at = fail_at

    def match_track(self, candidate):
        if candidate.position == self.fail_at:
            raise RuntimeError("matcher exploded")
        return super().match_track(candidate)


FIVE_TRACKS = [
    ("01. Amelie Lens - Alpha One", None, None),
    ("02. Bicep - Bravo Two", None, None),
    ("03. Charlotte de Witte - Charlie Three", None, None),
    ("04. Dixon - Delta Four", None, None),
    ("05. Enrico Sangiuliano - Echo Five", None, None),
]


class TestCreateNewMix:
    def test_creates_mix_tracks_and_artists(self, db: Session, make_raw_mix, backfill_options):
        raw_mix = make_raw_mix(
            tracks=[("01. Deadmau5 - Strobe", None, None), ("02. Eric Prydz - Opus", None, None)],
            raw_artist="Lane 8",
            raw_title="Lane 8 Summer Mix",
        )

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id, backfill_options)

        assert result.success
        assert not result.is_duplicate
        assert result.tracks_created == 2
        assert result.tracks_matched == 0
        assert result.artists_created == 3
        assert result.aliases_created == 10
        assert result.errors == []

        mix = db.query(Mix).filter(Mix.id == result.mix_id).one()
        assert mix.title == "Lane 8 Summer Mix"
        assert mix.external_ids == {"youtube": f"yt:{raw_mix.external_id}"}
        assert mix.raw_mix_id == raw_mix.id
        assert [mt.position for mt in mix.tracks] == [1, 2]
        assert [mt.track.title for mt in mix.tracks] == ["Strobe", "Opus"]
        dj = db.query(MixArtist).filter(MixArtist.mix_id == mix.id).one()
        assert dj.artist.name == "Lane 8"
        assert dj.role == "dj"

    def test_marks_raw_mix_canonicalized(self, db: Session, make_raw_mix, backfill_options):
        raw_mix = make_raw_mix(tracks=[("Deadmau5 - Strobe", None, None)])

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id, backfill_options)

        db.refresh(raw_mix)
        assert raw_mix.status == RawMixStatus.CANONICALIZED.value
        assert raw_mix.canonicalized_mix_id == result.mix_id
        assert raw_mix.processed_at is not None
        assert raw_mix.error_message is None

    def test_structured_fields_preferred_over_line(
        self, db: Session, make_raw_mix, backfill_options
    ):
        raw_mix = make_raw_mix(tracks=[("garbled line", "Deadmau5", "Strobe")])

        MixCanonicalizer(db).canonicalize_mix(raw_mix.id, backfill_options)

        track = db.query(Track).one()
        assert track.title == "Strobe"
        assert [ta.artist.name for ta in track.artists] == ["Deadmau5"]

    def test_untitled_mix(self, db: Session, make_raw_mix, backfill_options):
        raw_mix = make_raw_mix(raw_title=None)

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id, backfill_options)

        assert db.query(Mix).filter(Mix.id == result.mix_id).one().title == "Untitled Mix"


class TestTrackMatching:
    def test_reuses_high_confidence_track(self, db: Session, make_raw_mix, make_track):
        existing = make_track("Strobe", "Deadmau5")
        raw_mix = make_raw_mix(tracks=[("Deadmau5 - Strobe", None, None)])

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        assert result.tracks_matched == 1
        assert result.tracks_created == 0
        assert db.query(Track).count() == 1
        assert db.query(MixTrack).one().track_id == existing.id

    def test_medium_confidence_creates_new_track(self, db: Session, make_raw_mix, make_track):
        make_track("Strobe", "Deadmau5")
        raw_mix = make_raw_mix(tracks=[("Deadmau5 - Strobo", None, None)])

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        assert result.tracks_created == 1
        assert db.query(Track).count() == 2

    def test_matched_artist_is_linked_not_duplicated(self, db: Session, make_raw_mix):
        db.add(Artist(name="Deadmau5"))
        db.commit()
        raw_mix = make_raw_mix(tracks=[("Deadmau5 - Brand New Song", None, None)])

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        assert result.artists_created == 0
        assert db.query(Artist).count() == 1

    def test_same_track_twice_in_one_mix(self, db: Session, make_raw_mix):
        raw_mix = make_raw_mix(
            tracks=[("Deadmau5 - Strobe", None, None), ("Deadmau5 - Strobe", None, None)]
        )

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        assert result.tracks_created == 1
        assert result.tracks_matched == 1
        assert db.query(Track).count() == 1
        assert db.query(MixTrack).count() == 2


class TestDuplicates:
    def test_same_external_id_is_merged(self, db: Session, make_raw_mix):
        first = make_raw_mix(external_id="abc", source_url="https://youtube.com/watch?v=abc")
        second = make_raw_mix(external_id="abc", source_url="https://youtu.be/abc")
        canonicalizer = MixCanonicalizer(db)

        first_result = canonicalizer.canonicalize_mix(first.id)
        second_result = canonicalizer.canonicalize_mix(second.id)

        assert second_result.success
        assert second_result.is_duplicate
        assert second_result.mix_id == first_result.mix_id
        assert db.query(Mix).count() == 1

    def test_rerun_is_idempotent(self, db: Session, make_raw_mix):
        raw_mix = make_raw_mix(tracks=[("Deadmau5 - Strobe", None, None)])
        canonicalizer = MixCanonicalizer(db)

        canonicalizer.canonicalize_mix(raw_mix.id)
        again = canonicalizer.canonicalize_mix(raw_mix.id)

        assert again.skipped
        assert db.query(Mix).count() == 1
        assert db.query(MixTrack).count() == 1

    def test_merge_fills_gaps_and_keeps_ids(self, db: Session, make_raw_mix):
        mix = Mix(
            title="Existing",
            description=None,
            external_ids={"youtube": "yt:abc", "soundcloud": "sc:2"},
        )
        db.add(mix)
        db.commit()
        raw_mix = make_raw_mix(external_id="abc", raw_description="From YouTube")

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        db.refresh(mix)
        assert result.mix_id == mix.id
        assert mix.description == "From YouTube"
        assert mix.title == "Existing"
        assert mix.external_ids == {"youtube": "yt:abc", "soundcloud": "sc:2"}

    def test_merge_preserves_existing_tracks(self, db: Session, make_raw_mix, make_track):
        mix = Mix(title="Existing", external_ids={"youtube": "yt:abc"})
        db.add(mix)
        db.commit()
        track = make_track("Original Track", "Someone")
        db.add(MixTrack(mix_id=mix.id, track_id=track.id, position=1, start_time=95))
        db.add(TrackAlias(track_id=track.id, alias="Someone - Original Track", mix_id=mix.id))
        db.commit()
        raw_mix = make_raw_mix(
            external_id="abc",
            tracks=[("A - One", None, None), ("B - Two", None, None), ("C - Three", None, None)],
        )

        def snapshot():
            rows = (
                db.query(MixTrack.position, MixTrack.track_id, MixTrack.start_time)
                .filter(MixTrack.mix_id == mix.id)
                .order_by(MixTrack.position)
                .all()
            )
            aliases = db.query(TrackAlias).filter(TrackAlias.mix_id == mix.id).count()
            return [tuple(row) for row in rows], aliases

        before = snapshot()
        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        assert result.is_duplicate
        assert result.tracks_created == 0
        assert result.aliases_created == 0
        assert snapshot() == before == ([(1, track.id, 95)], 1)

    def test_merge_imports_tracks_when_mix_has_none(self, db: Session, make_raw_mix):
        mix = Mix(title="Existing", external_ids={"youtube": "yt:abc"})
        db.add(mix)
        db.commit()
        raw_mix = make_raw_mix(external_id="abc", tracks=[("Deadmau5 - Strobe", None, None)])

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        assert result.tracks_created == 1
        assert db.query(MixTrack).filter(MixTrack.mix_id == mix.id).count() == 1


class TestVerificationGating:
    @pytest.mark.parametrize(
        "mode,threshold,confidence,expected",
        [
            ("backfill", 0.9, ConfidenceTier.HIGH, False),
            ("rolling", 0.9, ConfidenceTier.HIGH, True),
            ("rolling", 0.8, ConfidenceTier.MEDIUM, False),
            ("rolling", 0.6, ConfidenceTier.MEDIUM, True),
            ("rolling", 0.6, ConfidenceTier.LOW, False),
        ],
    )
    def test_track_auto_verify(self, mode, threshold, confidence, expected):
        options = CanonicalizationOptions(mode=mode, auto_verify_threshold=threshold)
        assert should_auto_verify_track(confidence, options) is expected

    def test_mix_auto_verify_only_in_rolling(self):
        assert not should_auto_verify_mix(CanonicalizationOptions(mode="backfill"))
        assert should_auto_verify_mix(CanonicalizationOptions(mode="rolling"))

    def test_verification_requires_system_user(self):
        options = CanonicalizationOptions(mode="rolling")
        assert verification_fields(options, True)["is_verified"] is False

    def test_verification_records_system_user(self, rolling_options):
        fields = verification_fields(rolling_options, True)
        assert fields["is_verified"] is True
        assert fields["verified_by"] == "system-user"
        assert fields["verified_at"] is not None

    def test_backfill_leaves_everything_unverified(
        self, db: Session, make_raw_mix, backfill_options
    ):
        raw_mix = make_raw_mix(tracks=[("Deadmau5 - Strobe", None, None)], raw_artist="Lane 8")

        MixCanonicalizer(db).canonicalize_mix(raw_mix.id, backfill_options)

        assert db.query(Mix).filter(Mix.is_verified.is_(True)).count() == 0
        assert db.query(Track).filter(Track.is_verified.is_(True)).count() == 0
        assert db.query(Artist).filter(Artist.is_verified.is_(True)).count() == 0

    def test_rolling_verifies_mix(self, db: Session, make_raw_mix, rolling_options):
        raw_mix = make_raw_mix()

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id, rolling_options)

        mix = db.query(Mix).filter(Mix.id == result.mix_id).one()
        assert mix.is_verified
        assert mix.verified_by == "system-user"

    def test_rolling_low_confidence_track_unverified(
        self, db: Session, make_raw_mix, rolling_options
    ):
        raw_mix = make_raw_mix(tracks=[("Nobody - Unknown Song", None, None)])

        MixCanonicalizer(db).canonicalize_mix(raw_mix.id, rolling_options)

        assert not db.query(Track).one().is_verified

    @pytest.mark.parametrize("threshold,expected", [(0.8, False), (0.6, True)])
    def test_rolling_medium_confidence_track(self, db: Session, make_raw_mix, threshold, expected):
        db.add(Artist(name="Deadmau5"))
        db.commit()
        raw_mix = make_raw_mix(tracks=[("Deadmau5 - Brand New Song", None, None)])
        options = CanonicalizationOptions(
            mode="rolling", auto_verify_threshold=threshold, system_user_id="system-user"
        )

        MixCanonicalizer(db).canonicalize_mix(raw_mix.id, options)

        assert db.query(Track).one().is_verified is expected


class TestFailureIsolation:
    def test_one_failing_track_does_not_fail_mix(self, db: Session, make_raw_mix):
        raw_mix = make_raw_mix(tracks=FIVE_TRACKS)

        result = MixCanonicalizer(db, ExplodingMatcher(db, fail_at=3)).canonicalize_mix(raw_mix.id)

        assert result.success
        assert result.tracks_created == 4
        assert result.errors == ["Failed to process track 3: matcher exploded"]
        assert db.query(MixTrack).count() == 4
        db.refresh(raw_mix)
        assert raw_mix.status == RawMixStatus.CANONICALIZED.value

    def test_missing_raw_mix(self, db: Session):
        result = MixCanonicalizer(db).canonicalize_mix(999)

        assert not result.success
        assert result.errors == ["Raw mix not found: 999"]

    def test_non_pending_raw_mix_skipped(self, db: Session, make_raw_mix):
        raw_mix = make_raw_mix(status=RawMixStatus.FAILED.value)

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        assert result.skipped
        assert not result.success
        assert db.query(Mix).count() == 0

    def test_mix_level_failure_leaves_processing(self, db: Session, make_raw_mix, monkeypatch):
        raw_mix = make_raw_mix(raw_artist="Lane 8")
        canonicalizer = MixCanonicalizer(db)

        def boom(names):
            raise RuntimeError("artist lookup failed")

        monkeypatch.setattr(canonicalizer.matcher, "find_matching_artists", boom)

        result = canonicalizer.canonicalize_mix(raw_mix.id)

        assert not result.success
        assert "artist lookup failed" in result.errors[0]
        assert db.query(RawMix).filter(RawMix.id == raw_mix.id).one().status == "processing"
        assert db.query(Mix).count() == 0


class TestTrackAliases:
    def test_alias_insert_is_idempotent(self, db: Session, make_track):
        track = make_track("Strobe")

        assert add_track_alias(db, track.id, "Deadmau5 - Strobe", None)
        assert not add_track_alias(db, track.id, "Deadmau5 - Strobe", None)
        db.commit()

        assert db.query(TrackAlias).filter(TrackAlias.track_id == track.id).count() == 1


class TestCandidateRecall:
    def test_exact_title_found_behind_crowded_prefix(self, db: Session, make_raw_mix, make_track):
        db.add_all([Track(title=f"The Song {i}") for i in range(50)])
        db.commit()
        existing = make_track("The Journey")
        raw_mix = make_raw_mix(tracks=[("Someone - The Journey", None, None)])

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        assert result.tracks_matched == 1
        assert result.tracks_created == 0
        assert db.query(Track).filter(Track.title == "The Journey").count() == 1
        assert db.query(MixTrack).one().track_id == existing.id

    def test_exact_artist_found_behind_crowded_prefix(self, db: Session, make_raw_mix):
        db.add_all([Artist(name=f"DJ Person {i}") for i in range(50)])
        db.add(Artist(name="DJ Koze"))
        db.commit()
        raw_mix = make_raw_mix(tracks=[("DJ Koze - Pick Up", None, None)])

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        assert result.artists_created == 0
        assert db.query(Artist).filter(Artist.name == "DJ Koze").count() == 1

    def test_non_ascii_title_is_matched(self, db: Session, make_raw_mix, make_track):
        existing = make_track("Éclat")
        raw_mix = make_raw_mix(tracks=[("Someone - Éclat", None, None)])

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        assert result.tracks_matched == 1
        assert db.query(Track).count() == 1
        assert db.query(MixTrack).one().track_id == existing.id

    def test_non_ascii_artist_is_matched(self, db: Session, make_raw_mix):
        db.add(Artist(name="Röyksopp"))
        db.commit()
        raw_mix = make_raw_mix(tracks=[("RÖYKSOPP - Eple", None, None)])

        result = MixCanonicalizer(db).canonicalize_mix(raw_mix.id)

        assert result.artists_created == 0
        assert db.query(Artist).count() == 1


class TestMatchThresholds:
    @pytest.mark.parametrize("score,matched,created", [(0.90, 1, 0), (0.899, 0, 1)])
    def test_track_reuse_boundary(
        self, db: Session, make_raw_mix, make_track, score, matched, created
    ):
        make_track("Strobe")
        raw_mix = make_raw_mix(tracks=[("Deadmau5 - Strobe", None, None)])
        matcher = TrackMatcher(db, scorer=lambda a, b: score)

        result = MixCanonicalizer(db, matcher).canonicalize_mix(raw_mix.id)

        assert result.tracks_matched == matched
        assert result.tracks_created == created
        assert db.query(Track).count() == 1 + created

    @pytest.mark.parametrize("score,created", [(0.85, 0), (0.849, 1)])
    def test_artist_reuse_boundary(self, db: Session, make_raw_mix, score, created):
        db.add(Artist(name="Deadmau5"))
        db.commit()
        raw_mix = make_raw_mix(tracks=[("Deadmau5 - Brand New Song", None, None)])
        matcher = TrackMatcher(db, scorer=lambda a, b: score)

        result = MixCanonicalizer(db, matcher).canonicalize_mix(raw_mix.id)

        assert result.artists_created == created
        assert db.query(Artist).count() == 1 + created
