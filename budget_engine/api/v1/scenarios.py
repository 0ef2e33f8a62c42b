"""/v1/scenarios - scenario listing and base currency, summary and goal payments"""

from fastapi import APIRouter, Depends, HTTPException

from budget_engine.api.dependencies import get_engine, get_record_store, get_registry, get_user_id
from budget_engine.api.v1.schemas import (
    GoalPaymentsResponse,
    ScenarioListResponse,
    ScenarioResponse,
    ScenarioUpdate,
    SummaryResponse,
)
from budget_engine.domain.exceptions import ScenarioNotFoundError
from budget_engine.domain.models import Scenario
from budget_engine.engine.ports import RecordStore
from budget_engine.engine.scenario import ScenarioEngine, ScenarioEngineRegistry

router = APIRouter()


def _scenario_response(scenario: Scenario) -> ScenarioResponse:
    return ScenarioResponse(
        id=scenario.id,
        slug=scenario.slug,
        name=scenario.name,
        base_currency=scenario.base_currency,
        created_at=scenario.created_at,
    )


@router.get("/scenarios", response_model=ScenarioListResponse)
async def list_scenarios(
    user_id: str = Depends(get_user_id),
    store: RecordStore = Depends(get_record_store),
):
    """Caller's scenarios in the order they were created"""
    scenarios = await store.list_scenarios(user_id)
    return ScenarioListResponse(
        user_id=user_id,
        scenarios=[_scenario_response(s) for s in scenarios],
    )


@router.patch("/scenarios/{scenario_id}", response_model=ScenarioResponse)
async def update_scenario(
    scenario_id: str,
    payload: ScenarioUpdate,
    user_id: str = Depends(get_user_id),
    registry: ScenarioEngineRegistry = Depends(get_registry),
):
    """Set the scenario's base currency; cached converted totals are dropped"""
    try:
        scenario = await registry.store.set_base_currency(user_id, scenario_id, payload.base_currency)
    except ScenarioNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    await registry.open(user_id, scenario_id)
    return _scenario_response(scenario)


@router.get("/scenarios/{scenario_id}/summary", response_model=SummaryResponse)
async def get_summary(engine: ScenarioEngine = Depends(get_engine)):
    """
    Monthly income, expenses, goal payments and savings in the base currency.

    Returns:
        Figures with balance = income - expense - goal; records whose
        conversion is unavailable are left out of their total.
    """
    summary = await engine.refresh()
    return SummaryResponse(
        scenario_id=engine.context.id,
        base_currency=engine.context.base_currency,
        income=summary.income,
        expense=summary.expense,
        goal=summary.goal,
        savings=summary.savings,
        balance=summary.balance,
    )


@router.get("/scenarios/{scenario_id}/goals/payments", response_model=GoalPaymentsResponse)
async def get_goal_payments(engine: ScenarioEngine = Depends(get_engine)):
    """Required monthly payment per goal, each in the goal's own currency"""
    await engine.goals.refresh()
    return GoalPaymentsResponse(
        scenario_id=engine.context.id,
        base_currency=engine.context.base_currency,
        payments=engine.goals.monthly_payments(),
        total=engine.goals.total_monthly_payments(),
    )
