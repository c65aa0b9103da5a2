"""
Structured logging for the call-flow core.

JSON logs for production, readable lines for development.
Every line carries the call id of the turn being processed.

Usage:
    from callflow.logger import logger

    logger.set_call("contact-123")
    logger.info("Loaded customer state", keys=42)
    logger.event("DTMF_MENU_SELECTION", valid_selection=True, selection="1")
"""

import logging
import json
import os
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from callflow.settings import settings


# Context-local storage so concurrent turns for different calls never mix ids
_call_id_var: ContextVar[Optional[str]] = ContextVar('call_id', default=None)
_extra_context_var: ContextVar[Optional[Dict[str, Any]]] = ContextVar('extra_context', default=None)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class StructuredLogger:
    """
    Structured logger with JSON output and per-call correlation.

    Features:
    - JSON format for production (LOG_FORMAT=json)
    - Readable format for development (default)
    - call_id added to every line
    - event() for analytics records
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

        if not self.logger.handlers:
            self._setup_logger()

    def _setup_logger(self) -> None:
        """Configure level, handler and format from settings and environment"""
        level_name = settings.get_nested("logging.level", "INFO")
        level = getattr(logging, str(level_name).upper(), logging.INFO)
        self.logger.setLevel(level)

        handler = logging.StreamHandler()
        handler.setLevel(level)

        log_format = os.environ.get("LOG_FORMAT", "readable")

        if log_format == "json":
            formatter = logging.Formatter("%(message)s")
        else:
            formatter = logging.Formatter(
                "[%(asctime)s] %(levelname)s - %(message)s",
                datefmt="%H:%M:%S"
            )

        handler.setFormatter(formatter)
        self.logger.addHandler(handler)

        self.logger.propagate = False

    @property
    def call_id(self) -> Optional[str]:
        """Context-local call id"""
        return _call_id_var.get()

    def set_call(self, call_id: str) -> None:
        """Set the call id for the current turn"""
        _call_id_var.set(call_id)

    def clear_call(self) -> None:
        """Clear the call id"""
        _call_id_var.set(None)

    @property
    def _extra_context(self) -> Dict[str, Any]:
        ctx = _extra_context_var.get()
        if ctx is None:
            ctx = {}
            _extra_context_var.set(ctx)
        return ctx

    def set_context(self, **kwargs: Any) -> None:
        """Attach extra fields (rule set, rule, ...) to every following line"""
        ctx = dict(self._extra_context)
        ctx.update(kwargs)
        _extra_context_var.set(ctx)

    def clear_context(self) -> None:
        _extra_context_var.set({})

    def _format_structured(self, level: str, message: str, **kwargs: Any) -> Dict[str, Any]:
        log_entry = {
            "timestamp": _utc_now(),
            "level": level,
            "logger": self.name,
            "message": message,
        }

        if self.call_id:
            log_entry["call_id"] = self.call_id

        if self._extra_context:
            log_entry.update(self._extra_context)

        if kwargs:
            log_entry.update(kwargs)

        return log_entry

    def _should_use_json(self) -> bool:
        return os.environ.get("LOG_FORMAT", "readable") == "json"

    def _readable(self, message: str, **kwargs: Any) -> str:
        if kwargs:
            extras = ", ".join(f"{k}={v}" for k, v in kwargs.items())
            message = f"{message} [{extras}]"
        if self.call_id:
            message = f"[{self.call_id}] {message}"
        return message

    def _log(self, level: str, message: str, log_method, **kwargs: Any) -> None:
        if self._should_use_json():
            structured = self._format_structured(level, message, **kwargs)
            log_method(json.dumps(structured, ensure_ascii=False, default=str))
        else:
            log_method(self._readable(message, **kwargs))

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log("DEBUG", message, self.logger.debug, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log("INFO", message, self.logger.info, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log("WARNING", message, self.logger.warning, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log("ERROR", message, self.logger.error, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an error with the active traceback"""
        if self._should_use_json():
            kwargs["traceback"] = traceback.format_exc()
            structured = self._format_structured("ERROR", message, **kwargs)
            self.logger.error(json.dumps(structured, ensure_ascii=False, default=str))
        else:
            self.logger.exception(self._readable(message, **kwargs))

    def event(self, event_code: str, **kwargs: Any) -> None:
        """
        Log an analytics record.

        Args:
            event_code: Event code (e.g. "DTMF_MENU_SELECTION", "QUEUE_BEHAVIOUR")
            **kwargs: Event payload

        Example:
            logger.event("NLU_MENU_SELECTION", valid_intent=True, intent="Sales")
        """
        self._log("EVENT", event_code, self.logger.info, event_type="ANALYTICS", **kwargs)


logger = StructuredLogger("callflow")


def create_test_logger(name: str = "test") -> StructuredLogger:
    """Create an isolated logger for tests"""
    return StructuredLogger(f"callflow.{name}")
