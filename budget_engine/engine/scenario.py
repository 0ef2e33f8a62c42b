"""Per-scenario wiring of aggregators, summary and mutation coordinator"""

import dataclasses
import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from budget_engine.domain.exceptions import ScenarioNotFoundError, UnknownEntityTypeError
from budget_engine.domain.models import EXPENSES, GOALS, INCOMES, SAVINGS, ScenarioContext
from budget_engine.engine.aggregators import (
    EntityAggregator,
    ExpenseAggregator,
    GoalAggregator,
    IncomeAggregator,
    SavingsAggregator,
)
from budget_engine.engine.cache import QueryCache
from budget_engine.engine.keys import ANY, CONVERTED, PAYMENTS_CONVERTED, entity_pattern, scope_pattern
from budget_engine.engine.mutations import OptimisticMutationCoordinator
from budget_engine.engine.ports import ConversionGateway, RecordStore
from budget_engine.engine.summary import SummaryAggregator
from budget_engine.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class ScenarioEngine:
    """Everything one open scenario needs, sharing a single query cache"""

    def __init__(
        self,
        context: ScenarioContext,
        store: RecordStore,
        gateway: ConversionGateway,
        cache: Optional[QueryCache] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cache = cache if cache is not None else QueryCache()
        self.store = store
        self.gateway = gateway

        args = (self.cache, store, gateway, context)
        self.incomes = IncomeAggregator(*args, clock=clock)
        self.expenses = ExpenseAggregator(*args, clock=clock)
        self.goals = GoalAggregator(*args, clock=clock)
        self.savings = SavingsAggregator(*args, clock=clock)
        self.summary = SummaryAggregator(self.incomes, self.expenses, self.goals, self.savings)
        self.mutations = OptimisticMutationCoordinator(
            self.cache, store, context, after_settle=self._after_settle, clock=clock
        )
        self._context = context

    @property
    def context(self) -> ScenarioContext:
        return self._context

    @property
    def aggregators(self) -> Dict[str, EntityAggregator]:
        return {
            INCOMES: self.incomes,
            EXPENSES: self.expenses,
            GOALS: self.goals,
            SAVINGS: self.savings,
        }

    def aggregator(self, entity_type: str) -> EntityAggregator:
        aggregator = self.aggregators.get(entity_type)
        if aggregator is None:
            raise UnknownEntityTypeError(f"Unknown entity type: {entity_type}")
        return aggregator

    async def refresh(self):
        return await self.summary.refresh()

    async def _after_settle(self, entity_type: str) -> None:
        await self.aggregator(entity_type).refresh()

    def set_base_currency(self, currency: Optional[str]) -> None:
        """Switch the scenario's base currency and drop every converted total"""
        context = dataclasses.replace(self._context, base_currency=currency)
        self._context = context
        for aggregator in self.aggregators.values():
            aggregator.context = context
        self.mutations.context = context

        for kind in (CONVERTED, PAYMENTS_CONVERTED):
            self.cache.invalidate(entity_pattern(ANY, context.user_id, context.id, kind=kind))
        logger.info(
            "Base currency changed",
            extra={"scenario_id": context.id, "base_currency": currency},
        )

    def close(self) -> int:
        """Forget every cached entry of this scenario"""
        return self.cache.remove(scope_pattern(self._context.user_id, self._context.id))


class ScenarioEngineRegistry:
    """
    Keeps one live ScenarioEngine per user.

    Opening another scenario tears down the previous one, so its cached
    collections and conversions cannot leak into the new scenario.
    """

    def __init__(
        self,
        store: RecordStore,
        gateway: ConversionGateway,
        cache: Optional[QueryCache] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.gateway = gateway
        self.cache = cache if cache is not None else QueryCache()
        self.clock = clock
        self._engines: Dict[str, ScenarioEngine] = {}

    def current(self, user_id: str) -> Optional[ScenarioEngine]:
        return self._engines.get(user_id)

    async def open(self, user_id: str, scenario_id: str) -> ScenarioEngine:
        """
        Engine for the user's scenario, reusing the live one when it matches.

        The scenario is re-read on every call so a base currency set after the
        engine was opened is picked up.
        """
        scenario = await self.store.get_scenario(user_id, scenario_id)
        if scenario is None:
            raise ScenarioNotFoundError(f"Scenario {scenario_id} not found")

        engine = self._engines.get(user_id)
        if engine is not None and engine.context.id == scenario_id:
            if engine.context.base_currency != scenario.base_currency:
                engine.set_base_currency(scenario.base_currency)
            return engine
        if engine is not None:
            removed = engine.close()
            logger.info(
                "Scenario switched",
                extra={"user_id": user_id, "from": engine.context.id, "to": scenario_id, "evicted": removed},
            )

        engine = ScenarioEngine(scenario.to_context(), self.store, self.gateway, cache=self.cache, clock=self.clock)
        self._engines[user_id] = engine
        return engine

    def close(self, user_id: str) -> None:
        engine = self._engines.pop(user_id, None)
        if engine is not None:
            engine.close()

    def close_all(self) -> None:
        for user_id in list(self._engines):
            self.close(user_id)
