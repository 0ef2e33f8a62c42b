"""Interfaces of the collaborators the engine consumes"""

from typing import Any, Dict, List, Optional, Protocol, Sequence

from budget_engine.domain.models import ConversionItem, FinancialRecord, GoalSavingsAllocation, Scenario


class RecordStore(Protocol):
    """Per-entity-type persistence of financial records, scoped by user and scenario"""

    async def list(self, entity_type: str, user_id: str, scenario_id: str) -> List[FinancialRecord]:
        """Records of one type, newest first"""
        ...

    async def create(self, entity_type: str, payload: Dict[str, Any]) -> FinancialRecord:
        ...

    async def update(
        self, entity_type: str, user_id: str, scenario_id: str, record_id: str, payload: Dict[str, Any]
    ) -> FinancialRecord:
        """Raises RecordNotFoundError unless the record belongs to this user and scenario"""
        ...

    async def list_allocations(self, user_id: str, scenario_id: str) -> List[GoalSavingsAllocation]:
        ...

    async def list_scenarios(self, user_id: str) -> List[Scenario]:
        """Scenarios oldest first"""
        ...

    async def get_scenario(self, user_id: str, scenario_id: str) -> Optional[Scenario]:
        ...

    async def set_base_currency(self, user_id: str, scenario_id: str, base_currency: str) -> Scenario:
        """Raises ScenarioNotFoundError when the user has no such scenario"""
        ...


class ConversionGateway(Protocol):
    """Bulk currency conversion with index-aligned request and response"""

    async def convert_bulk(
        self,
        items: Sequence[ConversionItem],
        target_currency: str,
    ) -> Optional[List[Dict[str, Any]]]:
        ...
