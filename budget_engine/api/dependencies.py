"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Header, HTTPException, Request

from budget_engine.domain.exceptions import ScenarioNotFoundError
from budget_engine.engine.ports import RecordStore
from budget_engine.engine.scenario import ScenarioEngine, ScenarioEngineRegistry


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_user_id(x_user_id: str = Header(..., alias="X-User-ID", min_length=1)) -> str:
    """Caller identity; authentication happens upstream"""
    return x_user_id


def get_registry(request: Request) -> ScenarioEngineRegistry:
    """Provide the app-wide scenario engine registry"""
    return request.app.state.registry


def get_record_store(registry: ScenarioEngineRegistry = Depends(get_registry)) -> RecordStore:
    return registry.store


async def get_engine(
    scenario_id: str,
    user_id: str = Depends(get_user_id),
    registry: ScenarioEngineRegistry = Depends(get_registry),
) -> ScenarioEngine:
    """Open (or reuse) the caller's engine for the scenario in the path"""
    try:
        return await registry.open(user_id, scenario_id)
    except ScenarioNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
