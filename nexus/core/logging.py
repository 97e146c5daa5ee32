"""Structured logging with secret redaction.

Provides JSON-formatted logs with:
- Request correlation IDs
- Automatic redaction of Coinbase secrets, signatures, private keys and tokens
"""
import logging
import sys
import json
import re
from datetime import datetime, timezone

# === SECRET REDACTION PATTERNS ===
# Order matters: multi-line PEM blocks first, then token shapes, then key=value pairs.

SECRET_PATTERNS = [
    (
        r'-----BEGIN[A-Z ]+PRIVATE KEY-----[\s\S]*?-----END[A-Z ]+PRIVATE KEY-----',
        '***PRIVATE_KEY_REDACTED***'
    ),
    # Anthropic API keys (sk-ant-...)
    (
        r'\bsk-ant-[a-zA-Z0-9_-]{16,}',
        '***ANTHROPIC_KEY_REDACTED***'
    ),
    # JWT tokens (eyJ...)
    (
        r'\beyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+',
        '***JWT_REDACTED***'
    ),
    (
        r'(?i)(bearer\s+)([a-zA-Z0-9_\-\.\/+=]{20,})',
        r'\1***TOKEN_REDACTED***'
    ),
    # Coinbase HMAC headers
    (
        r'(?i)(CB-ACCESS-(?:SIGN|KEY))["\']?\s*[:=]\s*["\']?([a-zA-Z0-9_\-\.\/+=]{8,})["\']?',
        r'\1=***REDACTED***'
    ),
    # Coinbase API key names (organizations/xxx/apiKeys/xxx)
    (
        r'organizations/[a-zA-Z0-9-]+/apiKeys/[a-zA-Z0-9-]+',
        '***COINBASE_KEY_NAME_REDACTED***'
    ),
    # Environment variable format (COINBASE_API_SECRET=value, ANTHROPIC_API_KEY=value, etc.)
    (
        r'(?i)(COINBASE_[A-Z_]*(?:KEY|SECRET)|ANTHROPIC_API_KEY|[A-Z_]*SECRET)\s*=\s*([a-zA-Z0-9_\-\.\/+=]{8,})',
        r'\1=***REDACTED***'
    ),
    (
        r'(?i)(api[_-]?key|api[_-]?secret|secret[_-]?key|x-api-key)["\']?\s*[:=]\s*["\']?([a-zA-Z0-9_\-\.\/+=]{16,})["\']?',
        r'\1=***REDACTED***'
    ),
]

_COMPILED_PATTERNS = [(re.compile(pattern), replacement) for pattern, replacement in SECRET_PATTERNS]


def redact_secrets(text: str) -> str:
    """Redact secrets from text using pattern matching.

    Args:
        text: Input text that may contain secrets

    Returns:
        Text with secrets replaced by redaction markers
    """
    if not text:
        return text

    result = str(text)
    for pattern, replacement in _COMPILED_PATTERNS:
        result = pattern.sub(replacement, result)

    return result


class SecretRedactionFilter(logging.Filter):
    """Logging filter that redacts secrets from log messages before formatting."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_secrets(str(record.msg))

        # Only strings are rewritten so %d/%f args keep their types
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: redact_secrets(v) if isinstance(v, str) else v
                               for k, v in record.args.items()}
            elif isinstance(record.args, (tuple, list)):
                record.args = tuple(
                    redact_secrets(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter with correlation IDs and elapsed time tracking."""

    def format(self, record):
        message = redact_secrets(record.getMessage())

        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
            "module": record.module,
            "function": record.funcName,
        }

        for attr in ("request_id", "trade_id", "product_id", "http_status", "elapsed_ms", "error_class"):
            value = getattr(record, attr, None)
            if value not in (None, ""):
                log_data[attr] = value

        if record.exc_info:
            log_data["exception"] = redact_secrets(self.formatException(record.exc_info))

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO"):
    """Setup structured JSON logging on stdout with secret redaction."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    handler.addFilter(SecretRedactionFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()
    root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger (redaction is applied by the root handler)."""
    return logging.getLogger(name)
