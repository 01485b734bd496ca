"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from homestay_registry.config import settings


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


def log_transition(
    request_id: Optional[str],
    application_id: str,
    actor_id: Optional[str],
    actor_role: str,
    action: str,
    from_status: str,
    to_status: str,
) -> None:
    """Log a committed workflow transition"""
    logging.info(
        "Workflow transition",
        extra={
            "request_id": request_id,
            "application_id": application_id,
            "actor_id": actor_id,
            "actor_role": actor_role,
            "step": "transition",
            "action": action,
            "from_status": from_status,
            "to_status": to_status,
        },
    )


def log_payment_event(
    request_id: Optional[str],
    application_id: str,
    payment_id: str,
    gateway: str,
    event: str,
    status: str,
    amount: Optional[str] = None,
) -> None:
    """Log a payment attempt lifecycle event (initiated, reconciled, failed)"""
    logging.info(
        "Payment event",
        extra={
            "request_id": request_id,
            "application_id": application_id,
            "payment_id": payment_id,
            "gateway": gateway,
            "step": event,
            "payment_status": status,
            "amount": amount,
        },
    )
