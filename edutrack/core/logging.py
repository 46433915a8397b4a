import logging

import structlog


def configure_logging(debug: bool = False) -> None:
    """Configure structured JSON logging for the collector and the pipeline"""
    level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )
