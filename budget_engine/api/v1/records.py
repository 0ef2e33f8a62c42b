"""GET/POST/PATCH /v1/scenarios/{scenario_id}/{entity} - financial record endpoints"""

import dataclasses
import logging
from typing import Any, Dict, Optional, Type

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from pydantic import ValidationError

from budget_engine.api.dependencies import get_engine, get_request_id
from budget_engine.api.v1.schemas import (
    CREATE_SCHEMAS,
    UPDATE_SCHEMAS,
    RecordListResponse,
    RecordPayload,
    RecordResponse,
    normalize_currency,
)
from budget_engine.domain.exceptions import (
    InvalidRecordError,
    MutationFailedError,
    MutationInProgressError,
    RecordNotFoundError,
    UnknownEntityTypeError,
)
from budget_engine.engine.aggregators import EntityAggregator, GoalAggregator, SavingsAggregator
from budget_engine.engine.scenario import ScenarioEngine

router = APIRouter()


def _aggregator(engine: ScenarioEngine, entity: str) -> EntityAggregator:
    try:
        return engine.aggregator(entity)
    except UnknownEntityTypeError as e:
        raise HTTPException(status_code=404, detail=str(e))


def _parse(schemas: Dict[str, Type[RecordPayload]], entity: str, body: Dict[str, Any]) -> RecordPayload:
    schema = schemas.get(entity)
    if schema is None:
        raise HTTPException(status_code=404, detail=f"Unknown entity type: {entity}")
    try:
        return schema.model_validate(body)
    except ValidationError as e:
        errors = [{"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]} for err in e.errors()]
        raise HTTPException(status_code=422, detail=errors)


def _extra_totals(aggregator: EntityAggregator) -> Dict[str, float]:
    if isinstance(aggregator, SavingsAggregator):
        return {
            "total_with_interest": aggregator.total_with_interest(),
            "total_principal": aggregator.total_principal(),
        }
    if isinstance(aggregator, GoalAggregator):
        return {
            "total_current": aggregator.total_current(),
            "total_monthly_payments": aggregator.total_monthly_payments(),
        }
    return {}


def _mutation_error(e: Exception, request_id: str) -> HTTPException:
    """Translate a failed mutation into the HTTP error the caller sees"""
    if isinstance(e, MutationInProgressError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, InvalidRecordError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, UnknownEntityTypeError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, MutationFailedError) and isinstance(e.__cause__, RecordNotFoundError):
        return HTTPException(status_code=404, detail=str(e.__cause__))
    logging.error(f"Mutation failed: {e}", extra={"request_id": request_id})
    return HTTPException(status_code=502, detail=str(e))


@router.get("/scenarios/{scenario_id}/{entity}", response_model=RecordListResponse)
async def list_records(
    entity: str,
    display_currency: Optional[str] = Query(None, description="Convert amounts for display only"),
    engine: ScenarioEngine = Depends(get_engine),
):
    """
    Records of one entity type with their base-currency total.

    `display_currency` adds per-record converted amounts without touching
    the scenario's base-currency totals.
    """
    aggregator = _aggregator(engine, entity)
    try:
        display_currency = normalize_currency(display_currency)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    await aggregator.refresh()
    display_amounts = await aggregator.display_amounts(display_currency) if display_currency else {}
    error = aggregator.error

    return RecordListResponse(
        entity_type=entity,
        status=aggregator.status.value,
        base_currency=aggregator.base_currency,
        records=[dataclasses.asdict(record) for record in aggregator.records],
        total=aggregator.total(),
        totals=_extra_totals(aggregator),
        display_currency=display_currency,
        display_amounts=display_amounts,
        error=str(error) if error is not None else None,
    )


@router.post("/scenarios/{scenario_id}/{entity}", response_model=RecordResponse, status_code=201)
async def create_record(
    entity: str,
    request: Request,
    body: Dict[str, Any] = Body(...),
    engine: ScenarioEngine = Depends(get_engine),
):
    """Create a record; it shows up in cached lists before the store confirms"""
    payload = _parse(CREATE_SCHEMAS, entity, body)
    try:
        record = await engine.mutations.create(entity, payload.model_dump())
    except (MutationFailedError, MutationInProgressError, InvalidRecordError, UnknownEntityTypeError) as e:
        raise _mutation_error(e, get_request_id(request))
    return RecordResponse(entity_type=entity, record=dataclasses.asdict(record))


@router.patch("/scenarios/{scenario_id}/{entity}/{record_id}", response_model=RecordResponse)
async def update_record(
    entity: str,
    record_id: str,
    request: Request,
    body: Dict[str, Any] = Body(...),
    engine: ScenarioEngine = Depends(get_engine),
):
    """Update the given fields of a record"""
    payload = _parse(UPDATE_SCHEMAS, entity, body)
    try:
        record = await engine.mutations.update(entity, record_id, payload.model_dump(exclude_unset=True))
    except (MutationFailedError, MutationInProgressError, InvalidRecordError, UnknownEntityTypeError) as e:
        raise _mutation_error(e, get_request_id(request))
    return RecordResponse(entity_type=entity, record=dataclasses.asdict(record))
