"""Structured logging configuration for pdfrag."""

import logging
from typing import List

import structlog
from structlog.stdlib import LoggerFactory


def configure_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """Set the stdlib log level and route pipeline events through structlog.

    Module loggers keep using ``logging.getLogger(__name__)``; event loggers
    from :func:`get_event_logger` render either one JSON object per line or
    a human-readable console line.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


def get_event_logger(component: str) -> structlog.BoundLogger:
    """Get a structured logger bound to a pipeline component."""
    return structlog.get_logger(component).bind(component=component)


def log_ingestion_event(
    logger: structlog.BoundLogger,
    filename: str,
    chunks_created: int,
    record_ids: List[int],
    processing_time_ms: float,
) -> None:
    logger.info(
        "document_ingested",
        filename=filename,
        chunks_created=chunks_created,
        first_id=record_ids[0] if record_ids else None,
        last_id=record_ids[-1] if record_ids else None,
        processing_time_ms=processing_time_ms,
        event_type="document_ingestion",
    )


def log_search_event(
    logger: structlog.BoundLogger,
    query: str,
    limit: int,
    results_count: int,
    execution_time_ms: float,
) -> None:
    logger.info(
        "search_completed",
        query=query,
        limit=limit,
        results_count=results_count,
        execution_time_ms=execution_time_ms,
        event_type="search",
    )
