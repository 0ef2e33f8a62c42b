"""Entity aggregators - cached collections and currency-normalized totals"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from budget_engine.domain.amortization import available_amount, monthly_payments
from budget_engine.domain.interest import amount_with_interest
from budget_engine.domain.models import (
    ALLOCATIONS,
    EXPENSES,
    GOALS,
    INCOMES,
    SAVINGS,
    ConversionItem,
    FinancialRecord,
    Goal,
    GoalSavingsAllocation,
    Savings,
    ScenarioContext,
)
from budget_engine.engine.cache import CacheEntry, QueryCache, QueryStatus
from budget_engine.engine.keys import DISPLAY, PAYMENTS_CONVERTED, Key, list_key
from budget_engine.engine.ports import ConversionGateway, RecordStore
from budget_engine.engine.resolver import CENTS, ConvertedAmountResolver
from budget_engine.infrastructure.observability.logging import log_interest_failure, log_missing_conversion
from budget_engine.infrastructure.observability.metrics import missing_conversion_counter
from budget_engine.utils.date_utils import utcnow

Adjust = Callable[[Any, float], float]


def _keep(record: Any, amount: float) -> float:
    return amount


def normalized_total(
    entity_type: str,
    records: Sequence[Any],
    items: Sequence[ConversionItem],
    base_currency: Optional[str],
    conversion: Optional[CacheEntry],
    adjust: Adjust = _keep,
) -> float:
    """
    Sum a collection in the scenario's base currency.

    `items[i]` is the amount-bearing view of `records[i]`. Per record:
    - no base currency set → native amount
    - same currency → native amount
    - converted amount known → converted amount
    - unknown while the conversion is still pending → left out silently
    - unknown after the conversion settled → left out, with a warning

    `adjust` runs last on each contribution (e.g. annual → monthly).
    """
    total = 0.0
    converted = conversion.data if conversion is not None and conversion.data else {}
    pending = conversion is None or conversion.is_pending

    for record, item in zip(records, items):
        if not base_currency or item.currency == base_currency:
            amount = item.amount or 0
        elif item.id in converted:
            amount = converted[item.id]
        else:
            if not pending:
                missing_conversion_counter.labels(entity_type=entity_type).inc()
                log_missing_conversion(entity_type, item.id, item.currency, base_currency)
            continue
        total += adjust(record, amount)
    return total


class EntityAggregator:
    """
    One record collection of a scenario plus its base-currency total.

    The collection lives in the shared query cache under the list key, so the
    mutation coordinator's writes are what every read sees. Aggregators only
    read the cache; they never write collections themselves.
    """

    entity_type: str = ""

    def __init__(
        self,
        cache: QueryCache,
        store: RecordStore,
        gateway: ConversionGateway,
        context: ScenarioContext,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cache = cache
        self.store = store
        self.gateway = gateway
        self.context = context
        self.clock = clock
        self.resolver = ConvertedAmountResolver(cache, gateway, self.entity_type)
        self.display_resolver = ConvertedAmountResolver(cache, gateway, self.entity_type, kind=DISPLAY)

    @property
    def base_currency(self) -> Optional[str]:
        return self.context.base_currency

    @property
    def list_key(self) -> Key:
        return list_key(self.entity_type, self.context.user_id, self.context.id)

    @property
    def entry(self) -> Optional[CacheEntry]:
        return self.cache.peek(self.list_key)

    @property
    def records(self) -> List[Any]:
        entry = self.entry
        return list(entry.data) if entry is not None and entry.data else []

    @property
    def status(self) -> QueryStatus:
        entry = self.entry
        return entry.status if entry is not None else QueryStatus.IDLE

    @property
    def is_loaded(self) -> bool:
        """Fetched at least once, possibly empty"""
        return self.status is QueryStatus.RESOLVED

    @property
    def is_fetching(self) -> bool:
        entry = self.entry
        return entry is not None and entry.is_fetching

    @property
    def error(self) -> Optional[BaseException]:
        entry = self.entry
        return entry.error if entry is not None else None

    async def load(self) -> CacheEntry:
        return await self.cache.fetch(self.list_key, self._fetch_records)

    async def _fetch_records(self) -> List[FinancialRecord]:
        if not self.context.user_id or not self.context.id:
            return []
        return await self.store.list(self.entity_type, self.context.user_id, self.context.id)

    def to_item(self, record: Any) -> ConversionItem:
        return ConversionItem(id=record.id, amount=record.amount, currency=record.currency)

    def adjust(self, record: Any, amount: float) -> float:
        return amount

    def conversion_items(self) -> List[ConversionItem]:
        return [self.to_item(record) for record in self.records]

    def conversion(self) -> Optional[CacheEntry]:
        return self.resolver.current(self.context, self.conversion_items(), self.base_currency)

    def converted_amounts(self) -> Optional[Dict[str, float]]:
        entry = self.conversion()
        return entry.data if entry is not None and entry.is_resolved else None

    async def refresh_conversions(self) -> Optional[CacheEntry]:
        return await self.resolver.resolve(self.context, self.conversion_items(), self.base_currency)

    async def refresh(self) -> None:
        """Load the collection, then settle every conversion derived from it"""
        await self.load()
        await self.refresh_conversions()

    def total(self) -> float:
        records = self.records
        items = [self.to_item(record) for record in records]
        conversion = self.resolver.current(self.context, items, self.base_currency)
        return normalized_total(self.entity_type, records, items, self.base_currency, conversion, self.adjust)

    async def compute_total(self) -> float:
        await self.refresh()
        return self.total()

    async def display_amounts(self, display_currency: Optional[str]) -> Dict[str, float]:
        """
        Converted amounts in a display currency chosen by the viewer.

        Independent of the scenario's base currency: it neither reads nor
        invalidates the base-currency caches.
        """
        entry = await self.display_resolver.resolve(self.context, self.conversion_items(), display_currency)
        return dict(entry.data) if entry is not None and entry.data else {}


class RecurringAggregator(EntityAggregator):
    """Incomes and expenses: annual figures count as one twelfth per month"""

    def adjust(self, record: Any, amount: float) -> float:
        if getattr(record, "frequency", None) == "annual":
            return amount / 12
        return amount


class IncomeAggregator(RecurringAggregator):
    entity_type = INCOMES


class ExpenseAggregator(RecurringAggregator):
    entity_type = EXPENSES


class SavingsAggregator(EntityAggregator):
    """
    Savings with interest accrued up to now.

    The conversion request carries principal plus interest, so the converted
    figure already includes the interest of the moment it was computed.
    """

    entity_type = SAVINGS

    def to_item(self, record: Savings) -> ConversionItem:
        return ConversionItem(id=record.id, amount=self._amount_with_interest(record), currency=record.currency)

    def _amount_with_interest(self, record: Savings) -> float:
        """Principal plus interest; the principal alone when the projection fails"""
        try:
            return amount_with_interest(record, now=self.clock())
        except (ArithmeticError, ValueError, TypeError) as e:
            log_interest_failure(record.id, record.interest_rate, record.capitalization_period, str(e))
            return record.amount or 0

    def total_with_interest(self) -> float:
        return self.total()

    def total_principal(self) -> float:
        """Plain sum of deposited principals, in their native currencies"""
        return sum(record.amount or 0 for record in self.records)


class GoalAggregator(EntityAggregator):
    """
    Goals, their savings allocations, and the monthly payments they require.

    Monthly payments are derived in each goal's own currency and memoized on a
    fingerprint of every input they depend on; a second resolver normalizes
    them into the base currency for the summary.
    """

    entity_type = GOALS

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.payments_resolver = ConvertedAmountResolver(
            self.cache, self.gateway, self.entity_type, places=CENTS, kind=PAYMENTS_CONVERTED
        )
        self._payments_memo: Optional[Tuple[Tuple, Dict[str, float]]] = None

    @property
    def allocations_key(self) -> Key:
        return list_key(ALLOCATIONS, self.context.user_id, self.context.id)

    @property
    def allocations_entry(self) -> Optional[CacheEntry]:
        return self.cache.peek(self.allocations_key)

    @property
    def allocations(self) -> List[GoalSavingsAllocation]:
        entry = self.allocations_entry
        return list(entry.data) if entry is not None and entry.data else []

    async def load(self) -> CacheEntry:
        entry, _ = await asyncio.gather(super().load(), self.load_allocations())
        return entry

    async def load_allocations(self) -> CacheEntry:
        return await self.cache.fetch(self.allocations_key, self._fetch_allocations)

    async def _fetch_allocations(self) -> List[GoalSavingsAllocation]:
        if not self.context.user_id or not self.context.id:
            return []
        return await self.store.list_allocations(self.context.user_id, self.context.id)

    def to_item(self, record: Goal) -> ConversionItem:
        return ConversionItem(id=record.id, amount=record.target_amount, currency=record.currency)

    def total_target(self) -> float:
        return self.total()

    def total_current(self) -> float:
        return sum(goal.current_amount or 0 for goal in self.records)

    def monthly_payments(self) -> Dict[str, float]:
        """
        Required monthly payment per goal id, in the goal's currency.

        Empty until both goals and allocations have settled, so that payments
        never show un-netted figures while allocations are still loading.
        """
        allocations_entry = self.allocations_entry
        if not self.is_loaded or allocations_entry is None or allocations_entry.is_pending:
            return {}

        goals = self.records
        allocations = self.allocations
        fingerprint = (
            tuple((g.id, g.target_amount, g.created_at, g.target_date, g.currency) for g in goals),
            tuple((a.id, a.goal_id, a.amount_used, a.currency) for a in allocations),
        )
        if self._payments_memo is None or self._payments_memo[0] != fingerprint:
            self._payments_memo = (fingerprint, monthly_payments(goals, allocations))
        return self._payments_memo[1]

    def payment_items(self) -> List[ConversionItem]:
        payments = self.monthly_payments()
        return [
            ConversionItem(id=goal.id, amount=payments[goal.id], currency=goal.currency)
            for goal in self.records
            if goal.id in payments
        ]

    def _payments_version(self, items: Sequence[ConversionItem]) -> int:
        return len(self.monthly_payments()) if items else 0

    async def refresh_conversions(self) -> Optional[CacheEntry]:
        entry = await super().refresh_conversions()
        items = self.payment_items()
        await self.payments_resolver.resolve(
            self.context, items, self.base_currency, resolved=self._payments_version(items)
        )
        return entry

    def total_monthly_payments(self) -> float:
        goals = [goal for goal in self.records if goal.id in self.monthly_payments()]
        items = self.payment_items()
        conversion = self.payments_resolver.current(
            self.context, items, self.base_currency, resolved=self._payments_version(items)
        )
        return normalized_total(self.entity_type, goals, items, self.base_currency, conversion)

    def available_amount(
        self,
        savings_id: Optional[str],
        total_amount: float,
        currency: str,
        exclude_goal_id: Optional[str] = None,
    ) -> float:
        entry = self.allocations_entry
        allocations = entry.data if entry is not None and entry.is_resolved else None
        return available_amount(savings_id, total_amount, currency, allocations, exclude_goal_id)
