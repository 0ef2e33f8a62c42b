"""
Query key factory.

Every key is a tuple laid out as

    (entity_type, kind, user_id, scenario_id, *details)

so that one scenario's entries can be matched with a pattern such as
(ANY, ANY, user_id, scenario_id). ANY matches any single component.
"""

from typing import Hashable, NamedTuple, Optional, Tuple

Key = Tuple[Hashable, ...]

LIST = "list"
CONVERTED = "converted"
PAYMENTS_CONVERTED = "payments-converted"
DISPLAY = "display"


class _Any:
    def __repr__(self) -> str:
        return "ANY"


ANY = _Any()


class CollectionVersion(NamedTuple):
    """Cheap proxy for a collection's content, not a full hash"""

    size: int
    resolved: int


def list_key(entity_type: str, user_id: Optional[str], scenario_id: Optional[str]) -> Key:
    return (entity_type, LIST, user_id, scenario_id)


def converted_key(
    entity_type: str,
    user_id: Optional[str],
    scenario_id: Optional[str],
    currency: Optional[str],
    version: CollectionVersion,
    kind: str = CONVERTED,
) -> Key:
    return (entity_type, kind, user_id, scenario_id, currency, version.size, version.resolved)


def display_key(
    entity_type: str,
    user_id: Optional[str],
    scenario_id: Optional[str],
    currency: Optional[str],
    version: CollectionVersion,
) -> Key:
    # Own kind: base-currency invalidations by kind never reach it.
    return (entity_type, DISPLAY, user_id, scenario_id, currency, version.size, version.resolved)


def entity_pattern(entity_type, user_id, scenario_id, kind=ANY) -> Key:
    return (entity_type, kind, user_id, scenario_id)


def scope_pattern(user_id, scenario_id) -> Key:
    return (ANY, ANY, user_id, scenario_id)


def matches(key: Key, pattern: Key) -> bool:
    """True when `key` starts with `pattern`, ANY matching any component"""
    if len(key) < len(pattern):
        return False
    return all(p is ANY or p == k for p, k in zip(pattern, key))
