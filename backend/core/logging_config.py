"""
Logging Configuration

Centralized logging using loguru with structured output.
"""

import sys
from loguru import logger

# Remove default handler
logger.remove()

# Add console handler with custom format
logger.add(
    sys.stderr,
    format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[name]}</cyan> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
    level="DEBUG",
    colorize=True,
)

# Add file handler for persistent logs
logger.add(
    "logs/reports_{time:YYYY-MM-DD}.log",
    rotation="10 MB",
    retention="7 days",
    format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]} | {name}:{function}:{line} | {message}",
    level="DEBUG",
)

logger.configure(extra={"name": "app"})


def get_logger(name: str):
    """Get a logger with a specific name for component identification."""
    return logger.bind(name=name)


# Pre-configured loggers for different components
upload_logger = get_logger("upload")
analysis_logger = get_logger("analysis")
llm_logger = get_logger("llm")
report_logger = get_logger("report")
quality_logger = get_logger("quality")
sql_logger = get_logger("sql")
storage_logger = get_logger("storage")
