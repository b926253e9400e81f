"""Tests for provider-namespaced external identifiers."""

import pytest

from mixcatalog.services.external_ids import (
    Provider,
    UnknownProviderError,
    add_external_id,
    all_external_ids,
    create_external_id,
    find_matching_external_id,
    get_external_id,
    has_matching_external_ids,
    parse_external_id,
)


class TestCreateExternalId:
    def test_youtube(self):
        assert create_external_id("youtube", "abc") == "yt:abc"

    def test_soundcloud(self):
        assert create_external_id(Provider.SOUNDCLOUD, "123") == "sc:123"

    def test_1001tracklists(self):
        assert create_external_id("1001tracklists", "xyz") == "1001:xyz"

    def test_already_prefixed_is_unchanged(self):
        assert create_external_id("youtube", "yt:abc") == "yt:abc"

    def test_unknown_provider(self):
        with pytest.raises(UnknownProviderError):
            create_external_id("mixcloud", "abc")


class TestParseExternalId:
    def test_valid(self):
        assert parse_external_id("sc:123") == (Provider.SOUNDCLOUD, "123")

    def test_missing_prefix(self):
        assert parse_external_id("abc") is None

    def test_unknown_prefix(self):
        assert parse_external_id("mc:abc") is None

    def test_too_many_parts(self):
        assert parse_external_id("yt:a:b") is None


class TestExternalIdMappings:
    def test_add_uses_1001_key(self):
        assert add_external_id({}, "1001tracklists", "xyz") == {"1001": "1001:xyz"}

    def test_add_does_not_mutate(self):
        existing = {"youtube": "yt:abc"}
        updated = add_external_id(existing, "soundcloud", "123")
        assert existing == {"youtube": "yt:abc"}
        assert updated == {"youtube": "yt:abc", "soundcloud": "sc:123"}

    def test_get(self):
        assert get_external_id({"youtube": "yt:abc"}, "youtube") == "yt:abc"
        assert get_external_id({"youtube": "yt:abc"}, "soundcloud") is None
        assert get_external_id(None, "youtube") is None

    def test_find_matching(self):
        ids1 = {"youtube": "yt:1"}
        ids2 = {"youtube": "yt:1", "soundcloud": "sc:2"}
        assert find_matching_external_id(ids1, ids2) == "yt:1"
        assert has_matching_external_ids(ids1, ids2)

    def test_same_value_under_other_key_does_not_match(self):
        assert find_matching_external_id({"youtube": "sc:2"}, {"soundcloud": "sc:2"}) is None

    def test_no_match_with_empty(self):
        assert not has_matching_external_ids({}, {"youtube": "yt:1"})
        assert not has_matching_external_ids(None, None)

    def test_all_external_ids(self):
        ids = {"youtube": "yt:1", "soundcloud": "sc:2"}
        assert sorted(all_external_ids(ids)) == ["sc:2", "yt:1"]
        assert all_external_ids(None) == []
