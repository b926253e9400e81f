"""Tests for persisting detected contexts and venues."""

from sqlalchemy.orm import Session

from mixcatalog.models import Context, ContextType, Mix, MixContext, MixContextRole, Venue
from mixcatalog.services.context_detector import (
    DetectedContext,
    DetectedVenue,
    DetectionResult,
    detect_contexts_and_venues,
)
from mixcatalog.services.context_venue import (
    apply_detection_results,
    ensure_context,
    find_existing_context,
    find_existing_venue,
    get_context_stats,
)


def make_mix(db: Session, title: str = "Live Set") -> Mix:
    mix = Mix(title=title)
    db.add(mix)
    db.commit()
    db.refresh(mix)
    return mix


class TestFindExisting:
    def test_context_exact_name(self, db: Session):
        context = Context(name="Tomorrowland 2019", type=ContextType.FESTIVAL.value)
        db.add(context)
        db.commit()

        found = find_existing_context(db, "Tomorrowland 2019", ContextType.FESTIVAL)
        assert found.id == context.id

    def test_context_normalized_name(self, db: Session):
        context = Context(name="Defqon.1", type=ContextType.FESTIVAL.value)
        db.add(context)
        db.commit()

        assert find_existing_context(db, "defqon 1", ContextType.FESTIVAL).id == context.id

    def test_context_type_must_match(self, db: Session):
        db.add(Context(name="Cercle", type=ContextType.PUBLISHER.value))
        db.commit()

        assert find_existing_context(db, "Cercle", ContextType.FESTIVAL) is None

    def test_venue_with_city(self, db: Session):
        venue = Venue(name="Fabric", city="London")
        db.add(venue)
        db.commit()

        assert find_existing_venue(db, "fabric", "london").id == venue.id
        assert find_existing_venue(db, "Fabric", "Berlin") is None


class TestEnsureContext:
    def test_creates_then_reuses(self, db: Session):
        detected = DetectedContext(
            name="Essential Mix",
            type=ContextType.RADIO_SHOW,
            role=MixContextRole.BROADCASTED_ON,
            confidence=0.95,
            reason_codes=("title_pattern",),
        )

        first, created_first = ensure_context(db, detected)
        second, created_second = ensure_context(db, detected)

        assert created_first
        assert not created_second
        assert first.id == second.id


class TestApplyDetectionResults:
    def test_radio_show_linked_to_parent(self, db: Session):
        mix = make_mix(db)
        detection = detect_contexts_and_venues("Bicep - Essential Mix 2020")

        result = apply_detection_results(db, mix.id, detection)

        assert result.contexts_created == 2
        assert result.mix_contexts_created == 2
        show = db.query(Context).filter(Context.name == "Essential Mix").one()
        parent = db.query(Context).filter(Context.name == "BBC Radio 1").one()
        assert show.parent_id == parent.id
        roles = {link.role for link in db.query(MixContext).filter(MixContext.mix_id == mix.id)}
        assert roles == {"broadcasted_on", "published_by"}

    def test_idempotent(self, db: Session):
        mix = make_mix(db)
        detection = detect_contexts_and_venues("Bicep - Essential Mix 2020")

        apply_detection_results(db, mix.id, detection)
        again = apply_detection_results(db, mix.id, detection)

        assert again.contexts_created == 0
        assert again.contexts_reused == 2
        assert again.mix_contexts_created == 0
        assert db.query(Context).count() == 2
        assert db.query(MixContext).count() == 2

    def test_contexts_shared_across_mixes(self, db: Session):
        first = make_mix(db, "Set One")
        second = make_mix(db, "Set Two")
        detection = detect_contexts_and_venues("Tomorrowland 2019 Mainstage")

        apply_detection_results(db, first.id, detection)
        apply_detection_results(db, second.id, detection)

        assert db.query(Context).count() == 1
        assert db.query(MixContext).count() == 2

    def test_venue_assigned_to_mix(self, db: Session):
        mix = make_mix(db)
        detection = detect_contexts_and_venues("Live at Printworks London")

        result = apply_detection_results(db, mix.id, detection)

        db.refresh(mix)
        assert result.venue_created
        assert mix.venue_id == result.venue_id
        assert db.query(Venue).one().city == "London"

    def test_missing_mix_venue_is_reported_not_raised(self, db: Session):
        detection = DetectionResult(
            venue=DetectedVenue(name="Berghain", confidence=0.9, reason_codes=("venue_pattern",))
        )

        result = apply_detection_results(db, 9999, detection)

        assert result.venue_id is None
        assert len(result.errors) == 1

    def test_empty_detection(self, db: Session):
        mix = make_mix(db)
        result = apply_detection_results(db, mix.id, DetectionResult())
        assert result.contexts_created == 0
        assert result.venue_id is None


class TestContextStats:
    def test_counts(self, db: Session):
        mix = make_mix(db)
        detection = detect_contexts_and_venues("Bicep - Essential Mix 2020 live at Fabric")
        apply_detection_results(db, mix.id, detection)

        stats = get_context_stats(db)

        assert stats["total_contexts"] == 2
        assert stats["contexts_by_type"] == {"radio_show": 1, "publisher": 1}
        assert stats["total_venues"] == 1
        assert stats["total_mix_contexts"] == 2
