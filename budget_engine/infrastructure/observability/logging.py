"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from budget_engine.config import settings

logger = logging.getLogger("budget_engine")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)


def log_missing_conversion(entity_type: str, record_id: str, currency: Optional[str], target_currency: str) -> None:
    """Converted amount is absent although the conversion has settled"""
    logger.warning(
        "No converted amount for record",
        extra={
            "step": "normalize_total",
            "entity_type": entity_type,
            "record_id": record_id,
            "currency": currency,
            "target_currency": target_currency,
        },
    )


def log_conversion_failure(entity_type: str, target_currency: str, item_count: int, reason: str) -> None:
    """Bulk conversion yielded no usable data"""
    logger.warning(
        "Conversion returned no data",
        extra={
            "step": "resolve_conversions",
            "entity_type": entity_type,
            "target_currency": target_currency,
            "item_count": item_count,
            "reason": reason,
        },
    )


def log_interest_failure(record_id: str, interest_rate: Optional[float], capitalization_period: Optional[str], reason: str) -> None:
    """Interest projection failed; the principal is used instead"""
    logger.warning(
        "Interest calculation failed",
        extra={
            "step": "amount_with_interest",
            "record_id": record_id,
            "interest_rate": interest_rate,
            "capitalization_period": capitalization_period,
            "reason": reason,
        },
    )


def log_mutation(
    entity_type: str,
    operation: str,
    outcome: str,
    record_id: Optional[str],
    duration_ms: float,
) -> None:
    """Log structured outcome of an optimistic create/update"""
    level = logging.INFO if outcome == "confirmed" else logging.ERROR
    logger.log(
        level,
        "Mutation settled",
        extra={
            "step": "mutation_settled",
            "entity_type": entity_type,
            "operation": operation,
            "outcome": outcome,
            "record_id": record_id,
            "duration_ms": duration_ms,
        },
    )
