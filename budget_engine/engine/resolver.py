"""Converted amount resolution - bulk conversion of a collection, cached per version"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence

from budget_engine.config import settings
from budget_engine.domain.models import ConversionItem, ScenarioContext
from budget_engine.engine.cache import CacheEntry, QueryCache
from budget_engine.engine.keys import CONVERTED, DISPLAY, CollectionVersion, Key, converted_key, display_key
from budget_engine.engine.ports import ConversionGateway
from budget_engine.infrastructure.observability.logging import log_conversion_failure
from budget_engine.utils.money import round_half_up

logger = logging.getLogger(__name__)

WHOLE_UNITS = 0  # display totals
CENTS = 2  # monthly payment figures


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def is_convertible(item: ConversionItem, target_currency: str) -> bool:
    """Item carries a usable amount in a currency other than the target"""
    return (
        item.currency != target_currency
        and _is_number(item.amount)
        and isinstance(item.currency, str)
        and item.currency != ""
    )


def select_convertible(items: Iterable[ConversionItem], target_currency: str) -> List[ConversionItem]:
    return [item for item in items if is_convertible(item, target_currency)]


def zip_converted(
    items: Sequence[ConversionItem],
    response: Any,
    places: int = WHOLE_UNITS,
) -> Dict[str, float]:
    """
    Attach converted amounts back to their records by position.

    Entry i of the response belongs to items[i]; entries that are not objects
    with a numeric `converted_amount` are skipped, leaving that record absent.
    """
    converted: Dict[str, float] = {}
    if not isinstance(response, list):
        return converted

    for index, item in enumerate(items):
        entry = response[index] if index < len(response) else None
        amount = entry.get("converted_amount") if isinstance(entry, dict) else None
        if not _is_number(amount):
            logger.warning(
                "Malformed conversion entry",
                extra={"record_id": item.id, "index": index, "entry": repr(entry)},
            )
            continue
        converted[item.id] = round_half_up(amount, places)
    return converted


class ConvertedAmountResolver:
    """
    Produces the record id → converted amount map for one entity collection.

    Only records whose currency differs from the target are sent to the
    gateway. The map is cached under a key made of the entity type, user,
    scenario, target currency and collection version, so a new record count,
    a new target currency or a newly settled upstream value all force a
    fresh computation instead of reusing a map built from other inputs.
    """

    def __init__(
        self,
        cache: QueryCache,
        gateway: ConversionGateway,
        entity_type: str,
        places: int = WHOLE_UNITS,
        kind: str = CONVERTED,
        stale_seconds: float | None = None,
    ):
        self.cache = cache
        self.gateway = gateway
        self.entity_type = entity_type
        self.places = places
        self.kind = kind
        self.stale_seconds = stale_seconds if stale_seconds is not None else settings.conversion_stale_seconds

    def version(
        self,
        items: Sequence[ConversionItem],
        target_currency: str,
        resolved: Optional[int] = None,
    ) -> CollectionVersion:
        if resolved is None:
            resolved = len(select_convertible(items, target_currency))
        return CollectionVersion(size=len(items), resolved=resolved)

    def key(
        self,
        context: ScenarioContext,
        items: Sequence[ConversionItem],
        target_currency: str,
        resolved: Optional[int] = None,
    ) -> Key:
        version = self.version(items, target_currency, resolved)
        if self.kind == DISPLAY:
            return display_key(self.entity_type, context.user_id, context.id, target_currency, version)
        return converted_key(self.entity_type, context.user_id, context.id, target_currency, version, self.kind)

    def current(
        self,
        context: ScenarioContext,
        items: Sequence[ConversionItem],
        target_currency: Optional[str],
        resolved: Optional[int] = None,
    ) -> Optional[CacheEntry]:
        """Entry for these items without triggering a computation"""
        if not target_currency:
            return None
        return self.cache.peek(self.key(context, items, target_currency, resolved))

    async def resolve(
        self,
        context: ScenarioContext,
        items: Sequence[ConversionItem],
        target_currency: Optional[str],
        resolved: Optional[int] = None,
    ) -> Optional[CacheEntry]:
        """Fetch (or reuse) the converted map; None when there is nothing to resolve"""
        if not target_currency or not items:
            return None

        snapshot = list(items)
        key = self.key(context, snapshot, target_currency, resolved)

        async def compute() -> Dict[str, float]:
            return await self._convert(snapshot, target_currency)

        return await self.cache.fetch(key, compute, stale_seconds=self.stale_seconds)

    async def _convert(self, items: List[ConversionItem], target_currency: str) -> Dict[str, float]:
        to_convert = select_convertible(items, target_currency)
        if not to_convert:
            return {}

        response = await self.gateway.convert_bulk(to_convert, target_currency)
        if not isinstance(response, list):
            log_conversion_failure(self.entity_type, target_currency, len(to_convert), "no data")
            return {}

        return zip_converted(to_convert, response, self.places)
