"""
Logging setup for the agent.

Console (and optionally file) output, either as one JSON object per line or
as plain text. Anything passed through ``extra=`` ends up as a top-level key
in the JSON line, so decision ids, pairs and tx ids can be grepped out of a
run without parsing messages.
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

PLAIN_FORMAT = '%(asctime)s %(levelname)-7s [%(name)s] %(message)s'

# Attributes every LogRecord carries; everything else came in through extra=
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ('aiohttp', 'httpx', 'httpcore', 'asyncio')


class JSONFormatter(logging.Formatter):
    """One JSON object per record, extras included."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'ts': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
            'where': f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(
            (key, value) for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith('_')
        )
        if record.exc_info:
            entry['exc'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class AgentLogger:
    """
    Event helpers on top of a module logger.

    Keeps the wording of decision, trade and alert lines consistent so the
    JSON output can be filtered on ``event``.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    @contextmanager
    def timed(self, operation: str, **context):
        """Log ``operation`` with its wall time once the block exits."""
        started = time.perf_counter()
        failed = False
        try:
            yield
        except BaseException:
            failed = True
            raise
        finally:
            elapsed = round(time.perf_counter() - started, 4)
            level = logging.WARNING if failed else logging.INFO
            outcome = 'failed' if failed else 'finished'
            self.logger.log(
                level,
                f"{operation} {outcome} in {elapsed}s",
                extra={'event': 'timing', 'operation': operation, 'elapsed_s': elapsed, **context},
            )

    def decision(self, flow: str, action: str, target: Optional[str], confidence: str, **context):
        self.logger.info(
            f"{flow} decision: {action} {target or '-'} (confidence={confidence})",
            extra={'event': 'decision', 'flow': flow, 'action': action, 'confidence': confidence, **context},
        )

    def trade(self, pair: str, stage: str, **context):
        self.logger.info(
            f"Trade {stage}: {pair}",
            extra={'event': 'trade', 'pair': pair, 'stage': stage, **context},
        )

    def alert(self, kind: str, severity: str, message: str, **context):
        """Warning for low/medium severity, error for high/critical."""
        level = logging.ERROR if severity.lower() in ('high', 'critical') else logging.WARNING
        self.logger.log(
            level,
            f"Alert [{kind}]: {message}",
            extra={'event': 'alert', 'kind': kind, 'severity': severity, **context},
        )


def _handlers(log_file: Optional[str]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    return handlers


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = True,
) -> logging.Logger:
    """
    Configure the root logger, replacing any handlers already attached.

    Args:
        log_level: level name, unknown names fall back to INFO
        log_file: also write to this file, creating its directory
        json_format: JSON lines instead of plain text

    Returns:
        The root logger
    """
    level = getattr(logging, str(log_level).upper(), None)
    root = logging.getLogger()
    root.setLevel(level if isinstance(level, int) else logging.INFO)

    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()

    formatter = JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT)
    for handler in _handlers(log_file):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def get_agent_logger(name: str) -> AgentLogger:
    return AgentLogger(name)
