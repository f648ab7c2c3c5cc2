"""
Security utilities for Jira and AI backend interactions.

Provides input validation for values interpolated into Jira URLs and
sensitive data redaction for logging.
"""

import re
import logging
from typing import Union

ISSUE_KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*-\d+$')


def validate_issue_key(value: str) -> str:
    """Validate a Jira issue key before it is used in a request path.

    Args:
        value: Raw issue key (e.g., PROJ-123)

    Returns:
        The stripped issue key

    Raises:
        ValueError: If value is empty or doesn't match the issue key format

    Examples:
        >>> validate_issue_key("PROJ-123")
        'PROJ-123'
        >>> validate_issue_key("PROJ-123/../../admin")
        Traceback (most recent call last):
        ValueError: Invalid issue key format...
    """
    if not value or not isinstance(value, str):
        raise ValueError(f"Issue key must be a non-empty string, got: {type(value)}")

    value = value.strip()

    if not ISSUE_KEY_PATTERN.match(value):
        raise ValueError(
            f"Invalid issue key format: '{value}'. "
            f"Expected format: UPPERCASE-NUMBER (e.g., PROJ-123)"
        )
    return value


def validate_numeric_id(value: Union[int, str], label: str = "sprint id") -> int:
    """Validate a Jira sprint or board id (positive integer) and return it as int.

    Raises:
        ValueError: If value is not a positive integer

    Examples:
        >>> validate_numeric_id("42")
        42
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid {label}: {value!r}")
    text = str(value).strip()
    if not text.isdigit() or int(text) <= 0:
        raise ValueError(f"Invalid {label}: {value!r}. Expected a positive integer")
    return int(text)


class SensitiveDataFilter(logging.Filter):
    """Logging filter to redact sensitive data from log messages.

    Automatically redacts:
    - Atlassian API tokens (pattern: ATATT followed by alphanumeric/special chars)
    - Google API keys (pattern: AIza followed by 35 key characters)
    - Bearer tokens and API keys passed as query parameters
    - Email addresses
    - Long alphanumeric strings that might be credentials

    Usage:
        >>> logger = logging.getLogger('myapp')
        >>> logger.addFilter(SensitiveDataFilter())
    """

    API_TOKEN_PATTERN = re.compile(r'ATATT[a-zA-Z0-9_\-=]+')
    GOOGLE_KEY_PATTERN = re.compile(r'AIza[0-9A-Za-z_\-]{35}')
    BEARER_PATTERN = re.compile(r'(Bearer\s+)[A-Za-z0-9._\-~+/=]+', re.IGNORECASE)
    KEY_PARAM_PATTERN = re.compile(r'([?&]key=)[^&\s]+')
    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
    LONG_ALPHANUM_PATTERN = re.compile(r'\b[a-zA-Z0-9]{24,}\b')

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact sensitive data from the log record.

        Args:
            record: Log record to filter

        Returns:
            True (always - we modify but don't suppress)
        """
        if isinstance(record.msg, str):
            record.msg = self._redact(record.msg)

        # Numbers stay numbers so %d / %.1f placeholders keep working
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._redact_arg(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._redact_arg(arg) for arg in record.args)

        return True

    def _redact_arg(self, arg):
        if isinstance(arg, (int, float)):
            return arg
        return self._redact(str(arg))

    def _redact(self, text: str) -> str:
        """Redact sensitive patterns from text.

        Args:
            text: Text to redact

        Returns:
            Text with sensitive data replaced
        """
        if not isinstance(text, str):
            return text

        text = self.API_TOKEN_PATTERN.sub('[REDACTED-TOKEN]', text)
        text = self.GOOGLE_KEY_PATTERN.sub('[REDACTED-KEY]', text)
        text = self.BEARER_PATTERN.sub(r'\1[REDACTED-TOKEN]', text)
        text = self.KEY_PARAM_PATTERN.sub(r'\1[REDACTED-KEY]', text)
        text = self.EMAIL_PATTERN.sub('[REDACTED-EMAIL]', text)

        # Long opaque strings may be credentials; issue keys never match (they contain '-')
        text = self.LONG_ALPHANUM_PATTERN.sub('[REDACTED]', text)

        return text


def get_safe_logger(name: str) -> logging.Logger:
    """Return a logger with sensitive data filtering enabled.

    The logger will automatically redact API tokens, keys, emails, and other
    sensitive data from all log messages.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance with SensitiveDataFilter attached

    Example:
        >>> logger = get_safe_logger(__name__)
        >>> logger.info("API token: ATATT123abc")  # Logs: "API token: [REDACTED-TOKEN]"
    """
    logger = logging.getLogger(name)

    has_filter = any(isinstance(f, SensitiveDataFilter) for f in logger.filters)
    if not has_filter:
        logger.addFilter(SensitiveDataFilter())

    return logger
