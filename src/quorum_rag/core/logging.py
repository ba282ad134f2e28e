"""
Logging configuration for QuorumRAG with structured audit logging support.
"""

import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from loguru import logger

from .config import settings


# Audit log levels
AuditLevel = Literal["info", "warning", "error", "critical"]

# Audit event types
AuditEventType = Literal[
    "agent_execution", "routing_decision", "configuration", "refinement", "answer"
]


def _is_audit(record: Dict[str, Any]) -> bool:
    return bool(record["extra"].get("audit", False))


class AuditLogger:
    """
    Structured audit logger for orchestration events.

    Emits one JSON line per event so traces can be shipped to a log pipeline.
    """

    def __init__(self):
        """Initialize audit logger with a JSON formatter."""
        self.audit_logger = logger.bind(audit=True)
        self._sink_id: Optional[int] = None

        if settings.log_to_file:
            audit_log_dir = settings.logs_path / "audit"
            audit_log_dir.mkdir(parents=True, exist_ok=True)

            self._sink_id = logger.add(
                str(audit_log_dir / "audit_{time:YYYY-MM-DD}.jsonl"),
                level="INFO",
                format=self._json_formatter,
                rotation="1 day",
                retention="90 days",
                compression="gzip",
                filter=_is_audit,
            )

    def _json_formatter(self, record: Dict[str, Any]) -> str:
        """
        Format log record as a JSON line.

        Args:
            record: Loguru record dictionary

        Returns:
            Format string holding the pre-serialized entry
        """
        audit_data = record["extra"].get("audit_data", {})

        log_entry = {
            "@timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "logger": "quorum-rag-audit",
            "message": record["message"],
            "service": "quorum-rag",
            "environment": settings.environment,
            **audit_data,
        }

        # loguru treats the returned value as a format string
        record["extra"]["serialized_audit"] = json.dumps(log_entry, ensure_ascii=False, default=str)
        return "{extra[serialized_audit]}\n"

    def log_event(
        self,
        event_type: AuditEventType,
        action: str,
        level: AuditLevel = "info",
        outcome: Literal["success", "failure", "error", "degraded"] = "success",
        duration_ms: Optional[float] = None,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> None:
        """
        Log a structured audit event.

        Args:
            event_type: Type of audit event
            action: Specific action performed
            level: Log level for the event
            outcome: Result of the action
            duration_ms: Elapsed time of the action, when measured
            error_message: Error message if action failed
            metadata: Additional metadata
            **kwargs: Additional fields
        """
        audit_data: Dict[str, Any] = {
            "event_type": event_type,
            "action": action,
            "outcome": outcome,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        if duration_ms is not None:
            audit_data["duration_ms"] = round(duration_ms, 2)
        if error_message:
            audit_data["error_message"] = error_message
        if metadata:
            audit_data["metadata"] = metadata

        audit_data.update(kwargs)

        message = f"{event_type.upper()}: {action}"
        if outcome != "success":
            message += f" - {outcome.upper()}"
        if error_message:
            message += f" - {error_message}"

        self.audit_logger.bind(audit_data=audit_data).log(level.upper(), message)

    def log_agent_execution(
        self,
        agent: str,
        invocation_type: str,
        duration_ms: float,
        success: bool,
        error_message: Optional[str] = None,
        **kwargs,
    ) -> None:
        """Log one agent invocation attempt."""
        self.log_event(
            event_type="agent_execution",
            action=f"{invocation_type}:{agent}",
            level="info" if success else "warning",
            outcome="success" if success else "failure",
            duration_ms=duration_ms,
            error_message=error_message,
            agent=agent,
            invocation_type=invocation_type,
            **kwargs,
        )

    def log_routing_decision(
        self,
        intent: str,
        agent_type: str,
        confidence: float,
        source: str,
        **kwargs,
    ) -> None:
        """Log the routing decision made for a question."""
        self.log_event(
            event_type="routing_decision",
            action=f"route:{agent_type}",
            outcome="success" if source == "llm" else "degraded",
            metadata={"intent": intent, "confidence": confidence, "source": source},
            **kwargs,
        )


def configure_logging():
    """Configure logging with Loguru."""
    logger.remove()

    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
               "<level>{level: <8}</level> | "
               "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
               "<level>{message}</level>",
        colorize=True,
        filter=lambda record: not _is_audit(record),
    )

    if not settings.log_to_file:
        return

    log_dir = settings.logs_path
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.add(
        str(log_dir / "application_{time:YYYY-MM-DD}.log"),
        level="INFO",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
        rotation="1 day",
        retention="30 days",
        compression="gzip",
        filter=lambda record: not _is_audit(record),
    )

    logger.add(
        str(log_dir / "errors_{time:YYYY-MM-DD}.log"),
        level="ERROR",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}\n{exception}",
        rotation="1 day",
        retention="90 days",
        compression="gzip",
        filter=lambda record: not _is_audit(record),
    )


# Configure logging on import
configure_logging()

# Create global audit logger instance
audit_logger = AuditLogger()

# Export configured loggers
__all__ = ["logger", "audit_logger", "AuditLogger", "configure_logging"]
