# ============================================================================
# MODULE CONTEXT - LOGGING
# ============================================================================
# STATUS: Shared - used by repository, session, triggers and health modules
# PURPOSE: JSON structured logging for Azure Functions / Application Insights
# EXPORTS: ComponentType, LogLevel, LogContext, JSONFormatter, LoggerFactory, log_exceptions
# DEPENDENCIES: enum, dataclasses, typing, datetime, logging, json, traceback (stdlib only)
# PATTERNS: JSON-only output, factory per component, exception decorator
# ENTRY_POINTS: LoggerFactory.create_logger(), @log_exceptions decorator
# ============================================================================

"""
Structured Logger

Component loggers emit one JSON object per record. Context (subset session,
table, request) is attached to every record as customDimensions so a map
session's queries can be correlated in Application Insights.

Example:
    logger = LoggerFactory.create_logger(
        ComponentType.SESSION,
        "SubsetSession",
        LogContext(session_id="a1b2c3d4", table="fires")
    )
    logger.info("Query issued")
"""

import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Dict, Optional


class ComponentType(Enum):
    """Layers of the application, used as logger name prefixes."""
    TRIGGER = "trigger"        # HTTP entry points
    SERVICE = "service"        # Orchestration
    SESSION = "session"        # Interactive subset sessions
    REPOSITORY = "repository"  # Data access
    CODEC = "codec"            # Geometry decoding / reconstruction
    ADAPTER = "adapter"        # Display and raster boundaries


class LogLevel(Enum):
    """Standard Python log levels as enum for type safety."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_python_level(self) -> int:
        return getattr(logging, self.value)


@dataclass
class LogContext:
    """Correlation fields attached to every record of a logger."""
    session_id: Optional[str] = None   # Subset session
    table: Optional[str] = None        # Point table being queried

    def to_dict(self) -> Dict[str, Any]:
        return {
            k: v for k, v in {
                'session_id': self.session_id,
                'table': self.table
            }.items() if v is not None
        }


@dataclass
class ComponentConfig:
    """Per-component logging settings."""
    component_type: ComponentType
    log_level: LogLevel = LogLevel.INFO


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    Outputs records in a shape Application Insights parses automatically.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if hasattr(record, 'custom_dimensions'):
            log_obj['customDimensions'] = record.custom_dimensions

        if record.exc_info:
            log_obj['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(log_obj, default=str)


class _ContextAdapter(logging.LoggerAdapter):
    """Merges the logger's context into extra['custom_dimensions']."""

    def process(self, msg, kwargs):
        extra = kwargs.get('extra') or {}
        dims = dict(self.extra)
        dims.update(extra.get('custom_dimensions', {}))
        extra['custom_dimensions'] = dims
        kwargs['extra'] = extra
        return msg, kwargs


class LoggerFactory:
    """
    Factory for component-specific JSON loggers.

    Example:
        logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "SubsetRepository")
        logger.info("Executing subset query")
    """

    default_level = LogLevel.DEBUG if os.getenv('DEBUG_LOGGING', '').lower() == 'true' else LogLevel.INFO

    DEFAULT_CONFIGS = {
        ComponentType.TRIGGER: ComponentConfig(ComponentType.TRIGGER, default_level),
        ComponentType.SERVICE: ComponentConfig(ComponentType.SERVICE, default_level),
        ComponentType.SESSION: ComponentConfig(ComponentType.SESSION, default_level),
        # Repositories always log SQL activity at debug
        ComponentType.REPOSITORY: ComponentConfig(ComponentType.REPOSITORY, LogLevel.DEBUG),
        ComponentType.CODEC: ComponentConfig(ComponentType.CODEC, default_level),
        ComponentType.ADAPTER: ComponentConfig(ComponentType.ADAPTER, default_level),
    }

    @classmethod
    def create_logger(
        cls,
        component_type: ComponentType,
        name: str,
        context: Optional[LogContext] = None,
        config: Optional[ComponentConfig] = None
    ) -> logging.LoggerAdapter:
        """
        Create a logger for a specific component.

        Args:
            component_type: Layer the component belongs to
            name: Component name (e.g., "SubsetSession")
            context: Optional correlation context
            config: Optional custom configuration

        Returns:
            Logger adapter that adds context as custom dimensions
        """
        if config is None:
            config = cls.DEFAULT_CONFIGS.get(component_type, ComponentConfig(component_type))

        logger = logging.getLogger(f"{component_type.value}.{name}")
        log_level = config.log_level.to_python_level()
        logger.setLevel(log_level)

        # One JSON handler per named logger
        if not any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers):
            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(log_level)
            handler.setFormatter(JSONFormatter())
            logger.addHandler(handler)

        # Allow propagation to Azure's root logger for Application Insights
        logger.propagate = True

        dims = context.to_dict() if context else {}
        dims['component_type'] = component_type.value
        dims['component_name'] = name
        return _ContextAdapter(logger, dims)


def log_exceptions(component_type: ComponentType = ComponentType.SERVICE,
                   component_name: Optional[str] = None):
    """
    Decorator that logs exceptions with context, then re-raises them.

    Example:
        @log_exceptions(ComponentType.TRIGGER, "SubsetItemsTrigger")
        def handle(req):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                log = LoggerFactory.create_logger(
                    component_type,
                    component_name or func.__module__ or "unknown"
                )
                log.error(
                    f"Exception in {func.__name__}",
                    exc_info=True,
                    extra={
                        'custom_dimensions': {
                            'function_name': func.__name__,
                            'exception_type': type(e).__name__,
                            'exception_message': str(e),
                            'traceback': traceback.format_exc()
                        }
                    }
                )
                raise
        return wrapper
    return decorator
