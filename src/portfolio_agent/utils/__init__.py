"""Shared utilities: logging setup and the retry combinator."""

from .logger import AgentLogger, JSONFormatter, get_agent_logger, setup_logging
from .retry import BackoffPolicy, with_retry

__all__ = [
    'AgentLogger',
    'JSONFormatter',
    'get_agent_logger',
    'setup_logging',
    'BackoffPolicy',
    'with_retry',
]
