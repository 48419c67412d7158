"""
Logging utilities for redacting protocol secrets from logs.

Example:
    from myinfo_connect.utils.logging_utils import redact_sensitive_data
    safe = redact_sensitive_data({'access_token': 'abc', 'token_type': 'DPoP'})
    # safe == {'access_token': '***REDACTED***', 'token_type': 'DPoP'}
"""

import json
import logging
from datetime import datetime, timezone

SENSITIVE_KEYS = {
    'access_token', 'id_token', 'refresh_token', 'token', 'code', 'code_verifier',
    'client_assertion', 'dpop', 'authorization', 'secret', 'key', 'd',
}

REDACTED = '***REDACTED***'

# Attributes every LogRecord has; anything else came in through `extra=`.
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


def redact_sensitive_data(obj):
    """
    Recursively redacts sensitive fields in dicts/lists.
    Keys are matched case-insensitively against SENSITIVE_KEYS.
    """
    if isinstance(obj, dict):
        return {
            k: (REDACTED if str(k).lower() in SENSITIVE_KEYS else redact_sensitive_data(v))
            for k, v in obj.items()
        }
    elif isinstance(obj, list):
        return [redact_sensitive_data(i) for i in obj]
    else:
        return obj


class JSONFormatter(logging.Formatter):
    """
    Formats log records as JSON with standard fields plus any `extra` context.
    """
    def format(self, record):
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        extra = {k: v for k, v in vars(record).items() if k not in _RESERVED_ATTRS}
        log_record.update(redact_sensitive_data(extra))
        return json.dumps(log_record, default=str)


def setup_json_logging(level=logging.INFO, output='stdout', file_path=None):
    """
    Set up structured JSON logging for the app.
    Args:
        level: Logging level (default: INFO)
        output: 'stdout' or 'file'
        file_path: Path to log file if output is 'file'
    """
    logger = logging.getLogger()
    logger.setLevel(level)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    if output == 'file' and file_path:
        handler = logging.FileHandler(file_path)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    return logger
