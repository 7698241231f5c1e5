"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger
from cardcycle_gateway.config import settings
from cardcycle_gateway.domain.models import RepairReport


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_repair(report: RepairReport, duration_ms: float) -> None:
    """Log structured repair outcome for analysis"""
    logging.getLogger("cardcycle_gateway.repair").info(
        "Cycle repair completed",
        extra={
            **report.as_dict(),
            "step": "repair_complete",
            "duration_ms": duration_ms,
        },
    )


def log_sync_failure(account_id: str, error_kind: str, detail: str, error_code: str | None = None) -> None:
    """Log a recompute that was abandoned without touching stored cycles"""
    logging.getLogger("cardcycle_gateway.sync").error(
        "Recompute aborted",
        extra={
            "account_id": account_id,
            "step": "recompute_aborted",
            "error_kind": error_kind,
            "error_code": error_code,
            "detail": detail,
        },
    )
