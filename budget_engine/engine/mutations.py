"""Optimistic create/update of financial records with rollback and reconciliation"""

import dataclasses
import time
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from budget_engine.domain.exceptions import (
    InvalidRecordError,
    MutationFailedError,
    MutationInProgressError,
    UnknownEntityTypeError,
)
from budget_engine.domain.models import RECORD_TYPES, FinancialRecord, ScenarioContext, record_field_names
from budget_engine.engine.cache import QueryCache
from budget_engine.engine.keys import Key, entity_pattern, list_key
from budget_engine.engine.ports import RecordStore
from budget_engine.infrastructure.observability.logging import log_mutation
from budget_engine.infrastructure.observability.metrics import record_mutation
from budget_engine.utils.date_utils import utcnow

TEMP_ID_PREFIX = "temp-"
PROTECTED_FIELDS = {"id", "user_id", "scenario_id", "created_at"}

Records = Optional[List[FinancialRecord]]


def is_placeholder(record: FinancialRecord) -> bool:
    return str(record.id).startswith(TEMP_ID_PREFIX)


def replace_placeholder(records: List[FinancialRecord], placeholder_id: str, saved: FinancialRecord) -> List[FinancialRecord]:
    """
    Swap the placeholder with the stored record.

    Matches the placeholder by its exact temporary id. If it is gone the
    stored record goes to the head of the list; a stored id that is already
    present (a refetch got there first) is never duplicated.
    """
    result = [record for record in records if record.id != saved.id]
    for index, record in enumerate(result):
        if record.id == placeholder_id:
            result[index] = saved
            return result
    return [saved] + result


def replace_by_id(records: List[FinancialRecord], saved: FinancialRecord) -> List[FinancialRecord]:
    return [saved if record.id == saved.id else record for record in records]


class OptimisticMutationCoordinator:
    """
    Applies create/update locally before the store confirms them.

    Protocol per mutation:
    1. Cancel reads in flight for the collection, snapshot the cached list
    2. Apply speculatively: placeholder with a temporary id for creates,
       merged fields for updates (same policy for every entity type)
    3. Submit to the record store
    4. Success: swap in the stored record, invalidate derived caches, and
       let `after_settle` recompute totals
    5. Failure: restore the snapshot and raise MutationFailedError

    The coordinator is the only writer of cached collections.
    """

    def __init__(
        self,
        cache: QueryCache,
        store: RecordStore,
        context: ScenarioContext,
        after_settle: Optional[Callable[[str], Awaitable[Any]]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cache = cache
        self.store = store
        self.context = context
        self.after_settle = after_settle
        self.clock = clock
        self._in_flight: Set[Tuple[str, str]] = set()

    async def create(self, entity_type: str, payload: Dict[str, Any]) -> FinancialRecord:
        record_cls = self._record_cls(entity_type)
        fields = self._validated_fields(record_cls, payload)
        placeholder = self._placeholder(record_cls, fields)

        key = self._list_key(entity_type)
        await self.cache.cancel(key)
        snapshot = self._snapshot(key)
        applied = [placeholder] + (snapshot or [])
        self.cache.set_data(key, applied)

        start_time = time.time()
        try:
            saved = await self.store.create(
                entity_type,
                {**fields, "user_id": self.context.user_id, "scenario_id": self.context.id},
            )
        except Exception as e:
            self._rollback(key, snapshot, applied, lambda current: [r for r in current if r.id != placeholder.id])
            self._record(entity_type, "create", False, None, start_time)
            raise MutationFailedError(entity_type, "create", f"Failed to save {entity_type}: {e}") from e

        current = self.cache.get_data(key)
        self.cache.set_data(key, replace_placeholder(list(current or []), placeholder.id, saved))
        self._record(entity_type, "create", True, saved.id, start_time)
        await self._settle(entity_type)
        return saved

    async def update(self, entity_type: str, record_id: str, payload: Dict[str, Any]) -> FinancialRecord:
        record_cls = self._record_cls(entity_type)
        fields = self._validated_fields(record_cls, payload, partial=True)

        in_flight_key = (entity_type, record_id)
        if in_flight_key in self._in_flight:
            raise MutationInProgressError(f"{entity_type} {record_id} is already being saved")
        self._in_flight.add(in_flight_key)

        try:
            key = self._list_key(entity_type)
            await self.cache.cancel(key)
            snapshot = self._snapshot(key)
            applied = snapshot
            if snapshot is not None:
                applied = [
                    dataclasses.replace(record, **fields) if record.id == record_id else record
                    for record in snapshot
                ]
                self.cache.set_data(key, applied)

            original = next((r for r in snapshot or [] if r.id == record_id), None)

            def revert(current: List[FinancialRecord]) -> List[FinancialRecord]:
                if original is None:
                    return current
                return [original if r.id == record_id else r for r in current]

            start_time = time.time()
            try:
                saved = await self.store.update(
                    entity_type, self.context.user_id, self.context.id, record_id, fields
                )
            except Exception as e:
                if applied is not snapshot:
                    self._rollback(key, snapshot, applied, revert)
                self._record(entity_type, "update", False, record_id, start_time)
                raise MutationFailedError(entity_type, "update", f"Failed to save {entity_type}: {e}") from e

            current = self.cache.get_data(key)
            if current is not None:
                self.cache.set_data(key, replace_by_id(list(current), saved))
            self._record(entity_type, "update", True, saved.id, start_time)
        finally:
            self._in_flight.discard(in_flight_key)

        await self._settle(entity_type)
        return saved

    def _record_cls(self, entity_type: str) -> type:
        record_cls = RECORD_TYPES.get(entity_type)
        if record_cls is None:
            raise UnknownEntityTypeError(f"Unknown entity type: {entity_type}")
        return record_cls

    def _validated_fields(self, record_cls: type, payload: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        fields = {k: v for k, v in payload.items() if k not in PROTECTED_FIELDS}
        unknown = set(fields) - record_field_names(record_cls)
        if unknown:
            raise InvalidRecordError(f"Unknown fields for {record_cls.__name__}: {sorted(unknown)}")
        if not partial:
            missing = {
                f.name for f in dataclasses.fields(record_cls)
                if f.name not in PROTECTED_FIELDS
                and f.default is dataclasses.MISSING
                and f.default_factory is dataclasses.MISSING
                and f.name not in fields
            }
            if missing:
                raise InvalidRecordError(f"Missing fields for {record_cls.__name__}: {sorted(missing)}")
        return fields

    def _placeholder(self, record_cls: type, fields: Dict[str, Any]) -> FinancialRecord:
        return record_cls(
            id=f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}",
            user_id=self.context.user_id,
            scenario_id=self.context.id,
            created_at=self.clock(),
            **fields,
        )

    def _list_key(self, entity_type: str) -> Key:
        return list_key(entity_type, self.context.user_id, self.context.id)

    def _snapshot(self, key: Key) -> Records:
        data = self.cache.get_data(key)
        return list(data) if data is not None else None

    def _rollback(
        self,
        key: Key,
        snapshot: Records,
        applied: Records,
        revert: Callable[[List[FinancialRecord]], List[FinancialRecord]],
    ) -> None:
        """
        Undo this mutation's speculative change.

        While the cached list is still the one this mutation wrote, the snapshot
        is restored as-is. Once a newer mutation has written, only this
        mutation's own change is reverted so the newer one survives.
        """
        entry = self.cache.peek(key)
        if entry is None:
            return
        if entry.data is applied:
            if snapshot is None:
                self.cache.remove(key)
            else:
                self.cache.set_data(key, snapshot)
        elif entry.data is not None:
            self.cache.set_data(key, revert(list(entry.data)))

    async def _settle(self, entity_type: str) -> None:
        user_id, scenario_id = self.context.user_id, self.context.id
        self.cache.invalidate(entity_pattern(entity_type, user_id, scenario_id))
        if self.after_settle is not None:
            await self.after_settle(entity_type)

    def _record(self, entity_type: str, operation: str, confirmed: bool, record_id: Optional[str], start_time: float) -> None:
        duration_ms = (time.time() - start_time) * 1000
        record_mutation(entity_type, operation, confirmed)
        log_mutation(entity_type, operation, "confirmed" if confirmed else "rolled_back", record_id, duration_ms)
