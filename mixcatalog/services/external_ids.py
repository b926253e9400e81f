"""Provider-namespaced external identifiers.

A mix stores its identifiers as ``{"youtube": "yt:abc", "soundcloud": "sc:123",
"1001": "1001:xyz"}``: one entry per provider, each value prefixed with the
provider tag so values from different providers can never collide.
"""

from enum import Enum

ExternalIds = dict[str, str]


class Provider(str, Enum):
    YOUTUBE = "youtube"
    SOUNDCLOUD = "soundcloud"
    TRACKLISTS_1001 = "1001tracklists"


PROVIDER_PREFIXES: dict[Provider, str] = {
    Provider.YOUTUBE: "yt",
    Provider.SOUNDCLOUD: "sc",
    Provider.TRACKLISTS_1001: "1001",
}
PREFIX_PROVIDERS: dict[str, Provider] = {prefix: p for p, prefix in PROVIDER_PREFIXES.items()}

# Mapping keys are the provider names, except 1001tracklists which is stored as "1001"
ID_KEYS: dict[Provider, str] = {
    Provider.YOUTUBE: "youtube",
    Provider.SOUNDCLOUD: "soundcloud",
    Provider.TRACKLISTS_1001: "1001",
}


class UnknownProviderError(ValueError):
    """Raised when a provider name is not one of the supported providers."""


def to_provider(provider: str | Provider) -> Provider:
    try:
        return Provider(provider)
    except ValueError:
        raise UnknownProviderError(f"Unknown provider: {provider}") from None


def create_external_id(provider: str | Provider, native_id: str) -> str:
    """Namespace a native id: ``create_external_id("youtube", "abc") == "yt:abc"``.

    Ids that already carry the provider prefix are returned unchanged.
    """
    prefix = PROVIDER_PREFIXES[to_provider(provider)]
    if native_id.startswith(f"{prefix}:"):
        return native_id
    return f"{prefix}:{native_id}"


def parse_external_id(external_id: str) -> tuple[Provider, str] | None:
    """Split ``"sc:123"`` into ``(Provider.SOUNDCLOUD, "123")``; None if malformed."""
    parts = external_id.split(":")
    if len(parts) != 2:
        return None
    prefix, native_id = parts
    provider = PREFIX_PROVIDERS.get(prefix)
    if provider is None:
        return None
    return provider, native_id


def add_external_id(
    existing: ExternalIds | None, provider: str | Provider, native_id: str
) -> ExternalIds:
    """Return a new mapping with the provider's entry set; the input is not mutated."""
    resolved = to_provider(provider)
    return {**(existing or {}), ID_KEYS[resolved]: create_external_id(resolved, native_id)}


def get_external_id(external_ids: ExternalIds | None, provider: str | Provider) -> str | None:
    if not external_ids:
        return None
    return external_ids.get(ID_KEYS[to_provider(provider)]) or None


def find_matching_external_id(
    ids1: ExternalIds | None, ids2: ExternalIds | None
) -> str | None:
    """Return the first identifier value both mappings carry under the same key."""
    if not ids1 or not ids2:
        return None
    for key in ID_KEYS.values():
        value = ids1.get(key)
        if value and value == ids2.get(key):
            return value
    return None


def has_matching_external_ids(ids1: ExternalIds | None, ids2: ExternalIds | None) -> bool:
    return find_matching_external_id(ids1, ids2) is not None


def all_external_ids(external_ids: ExternalIds | None) -> list[str]:
    if not external_ids:
        return []
    return [value for value in external_ids.values() if value]
