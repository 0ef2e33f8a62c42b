"""Data access layer for scenarios and financial records"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from budget_engine.domain.exceptions import (
    InvalidRecordError,
    RecordNotFoundError,
    RecordStoreError,
    ScenarioNotFoundError,
    UnknownEntityTypeError,
)
from budget_engine.domain.models import (
    EXPENSES,
    GOALS,
    INCOMES,
    RECORD_TYPES,
    SAVINGS,
    FinancialRecord,
    GoalSavingsAllocation,
    Scenario,
    record_field_names,
)
from budget_engine.infrastructure.database.models import (
    ExpenseRow,
    GoalRow,
    GoalSavingsAllocationRow,
    IncomeRow,
    SavingsRow,
    ScenarioRow,
)
from budget_engine.utils.date_utils import as_utc_datetime

logger = logging.getLogger(__name__)

ROW_TYPES = {
    INCOMES: IncomeRow,
    EXPENSES: ExpenseRow,
    GOALS: GoalRow,
    SAVINGS: SavingsRow,
}

DATETIME_FIELDS = ("created_at", "deposit_date")


def to_domain(entity_type: str, row) -> FinancialRecord:
    """Map an ORM row onto its domain dataclass"""
    record_cls = RECORD_TYPES[entity_type]
    values = {name: getattr(row, name) for name in record_field_names(record_cls)}
    for name in DATETIME_FIELDS:
        if values.get(name) is not None:
            values[name] = as_utc_datetime(values[name])
    return record_cls(**values)


def scenario_to_domain(row: ScenarioRow) -> Scenario:
    return Scenario(
        id=row.id,
        user_id=row.user_id,
        slug=row.slug,
        name=row.name,
        base_currency=row.base_currency,
        created_at=as_utc_datetime(row.created_at),
    )


def allocation_to_domain(row: GoalSavingsAllocationRow) -> GoalSavingsAllocation:
    return GoalSavingsAllocation(
        id=row.id,
        goal_id=row.goal_id,
        savings_id=row.savings_id,
        amount_used=row.amount_used,
        currency=row.currency,
        created_at=as_utc_datetime(row.created_at),
    )


class SqlRecordStore:
    """
    Record store backed by SQLAlchemy.

    Opens one session per call from `session_factory`; writes commit before
    returning and roll back on any database error.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    async def list(self, entity_type: str, user_id: str, scenario_id: str) -> List[FinancialRecord]:
        """Records of one type, newest first"""
        row_cls = self._row_cls(entity_type)
        with self._session() as db:
            rows = (
                db.query(row_cls)
                .filter(row_cls.user_id == user_id, row_cls.scenario_id == scenario_id)
                .order_by(row_cls.created_at.desc())
                .all()
            )
            return [to_domain(entity_type, row) for row in rows]

    async def create(self, entity_type: str, payload: Dict[str, Any]) -> FinancialRecord:
        row_cls = self._row_cls(entity_type)
        values = self._column_values(row_cls, payload)
        with self._session() as db:
            self._require_scenario(db, values.get("user_id"), values.get("scenario_id"))
            row = row_cls(**values)
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info(
                "Record created",
                extra={"entity_type": entity_type, "record_id": row.id, "scenario_id": row.scenario_id},
            )
            return to_domain(entity_type, row)

    async def update(
        self, entity_type: str, user_id: str, scenario_id: str, record_id: str, payload: Dict[str, Any]
    ) -> FinancialRecord:
        row_cls = self._row_cls(entity_type)
        values = self._column_values(row_cls, payload)
        for protected in ("id", "user_id", "scenario_id", "created_at"):
            values.pop(protected, None)
        with self._session() as db:
            row = (
                db.query(row_cls)
                .filter(
                    row_cls.id == record_id,
                    row_cls.user_id == user_id,
                    row_cls.scenario_id == scenario_id,
                )
                .one_or_none()
            )
            if row is None:
                raise RecordNotFoundError(f"{entity_type} {record_id} not found")
            for name, value in values.items():
                setattr(row, name, value)
            db.commit()
            db.refresh(row)
            return to_domain(entity_type, row)

    async def list_allocations(self, user_id: str, scenario_id: str) -> List[GoalSavingsAllocation]:
        with self._session() as db:
            rows = (
                db.query(GoalSavingsAllocationRow)
                .filter(
                    GoalSavingsAllocationRow.user_id == user_id,
                    GoalSavingsAllocationRow.scenario_id == scenario_id,
                )
                .order_by(GoalSavingsAllocationRow.created_at.desc())
                .all()
            )
            return [allocation_to_domain(row) for row in rows]

    async def create_allocation(
        self,
        user_id: str,
        scenario_id: str,
        goal_id: str,
        savings_id: str,
        amount_used: float,
        currency: str,
    ) -> GoalSavingsAllocation:
        with self._session() as db:
            self._require_scenario(db, user_id, scenario_id)
            row = GoalSavingsAllocationRow(
                user_id=user_id,
                scenario_id=scenario_id,
                goal_id=goal_id,
                savings_id=savings_id,
                amount_used=amount_used,
                currency=currency,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return allocation_to_domain(row)

    async def list_scenarios(self, user_id: str) -> List[Scenario]:
        """Scenarios oldest first"""
        with self._session() as db:
            rows = (
                db.query(ScenarioRow)
                .filter(ScenarioRow.user_id == user_id)
                .order_by(ScenarioRow.created_at.asc())
                .all()
            )
            return [scenario_to_domain(row) for row in rows]

    async def get_scenario(self, user_id: str, scenario_id: str) -> Optional[Scenario]:
        with self._session() as db:
            row = (
                db.query(ScenarioRow)
                .filter(ScenarioRow.id == scenario_id, ScenarioRow.user_id == user_id)
                .first()
            )
            return scenario_to_domain(row) if row is not None else None

    async def create_scenario(
        self,
        user_id: str,
        slug: str,
        name: Optional[str] = None,
        base_currency: Optional[str] = None,
    ) -> Scenario:
        with self._session() as db:
            row = ScenarioRow(user_id=user_id, slug=slug, name=name, base_currency=base_currency)
            db.add(row)
            db.commit()
            db.refresh(row)
            return scenario_to_domain(row)

    async def set_base_currency(self, user_id: str, scenario_id: str, base_currency: str) -> Scenario:
        with self._session() as db:
            row = (
                db.query(ScenarioRow)
                .filter(ScenarioRow.id == scenario_id, ScenarioRow.user_id == user_id)
                .first()
            )
            if row is None:
                raise ScenarioNotFoundError(f"Scenario {scenario_id} not found")
            row.base_currency = base_currency
            db.commit()
            db.refresh(row)
            logger.info("Base currency set", extra={"scenario_id": row.id, "base_currency": base_currency})
            return scenario_to_domain(row)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error: {e}", exc_info=True)
            raise RecordStoreError(f"Database error: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _row_cls(entity_type: str):
        row_cls = ROW_TYPES.get(entity_type)
        if row_cls is None:
            raise UnknownEntityTypeError(f"Unknown entity type: {entity_type}")
        return row_cls

    @staticmethod
    def _column_values(row_cls, payload: Dict[str, Any]) -> Dict[str, Any]:
        columns = set(row_cls.__table__.columns.keys())
        unknown = set(payload) - columns
        if unknown:
            raise InvalidRecordError(f"Unknown fields for {row_cls.__tablename__}: {sorted(unknown)}")
        return dict(payload)

    @staticmethod
    def _require_scenario(db: Session, user_id: Optional[str], scenario_id: Optional[str]) -> None:
        exists = (
            db.query(ScenarioRow.id)
            .filter(ScenarioRow.id == scenario_id, ScenarioRow.user_id == user_id)
            .first()
        )
        if exists is None:
            raise ScenarioNotFoundError(f"Scenario {scenario_id} not found")
