"""
Secure logging utilities with API key and e-mail redaction.
Caller keys and customer e-mails travel with every lookup; none of them may
reach the logs verbatim.
"""
import hashlib
import json
import logging
import re
import time
import uuid
from typing import Any, Dict, List, Optional, Set, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import Request

logger = logging.getLogger(__name__)


class SecureLogger:
    """
    Request/response log formatting with automatic redaction

    Features:
    - Redacts sensitive headers (API keys, customer e-mail, auth tokens)
    - Masks caller keys down to a short recognizable prefix
    - Detects and removes PII patterns
    - Generates request IDs for tracing
    """

    # Headers that should ALWAYS be redacted
    SENSITIVE_HEADERS: Set[str] = {
        'authorization',
        'cookie',
        'set-cookie',
        'x-api-key',
        'api-key',
        'x-customer-email',
        'x-forwarded-for',
        'x-real-ip',
        'proxy-authorization',
    }

    PII_PATTERNS: List[Tuple[re.Pattern, str]] = [
        # Email addresses
        (re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b'), '[EMAIL_REDACTED]'),
        # API keys (sk_live_..., sk_test_..., pk_...)
        (re.compile(r'(sk|pk|api)_[A-Za-z0-9_-]{20,}'), '[API_KEY_REDACTED]'),
    ]

    @classmethod
    def generate_request_id(cls) -> str:
        """
        Generate unique request ID for tracing
        Format: req_[timestamp]_[random]
        """
        timestamp = int(time.time() * 1000)
        random_part = uuid.uuid4().hex[:8]
        return f"req_{timestamp}_{random_part}"

    @staticmethod
    def mask_secret(value: Optional[str], visible: int = 6) -> str:
        """
        Mask a secret, keeping a short prefix and a stable fingerprint

        Example:
            >>> SecureLogger.mask_secret("sk_live_abcdef0123456789")
            'sk_liv…#1f4c'  # fingerprint varies with the key
        """
        if not value:
            return "<none>"
        fingerprint = hashlib.sha256(value.encode()).hexdigest()[:4]
        return f"{value[:visible]}…#{fingerprint}"

    @classmethod
    def sanitize_headers(cls, headers: Dict[str, Any]) -> Dict[str, Any]:
        """
        Remove or redact sensitive headers

        Args:
            headers: Original headers dictionary

        Returns:
            Sanitized headers safe for logging
        """
        if not headers:
            return {}

        sanitized = {}
        for key, value in headers.items():
            key_lower = key.lower().strip()
            if key_lower == 'x-api-key':
                sanitized[key] = cls.mask_secret(str(value))
            elif key_lower in cls.SENSITIVE_HEADERS:
                sanitized[key] = '[REDACTED]'
            else:
                sanitized[key] = cls.redact_pii(str(value))

        return sanitized

    @classmethod
    def redact_pii(cls, text: str, max_length: int = 1000) -> str:
        """
        Redact PII patterns from text

        Args:
            text: Text to redact
            max_length: Truncate if longer than this

        Returns:
            Redacted text
        """
        if not text:
            return text

        if len(text) > max_length:
            text = text[:max_length] + '...[TRUNCATED]'

        for pattern, replacement in cls.PII_PATTERNS:
            text = pattern.sub(replacement, text)

        return text

    @classmethod
    def format_request_log(
        cls,
        request: 'Request',
        request_id: str,
        include_headers: bool = False
    ) -> Dict[str, Any]:
        """
        Format request for secure logging

        Args:
            request: FastAPI request object
            request_id: Unique request identifier
            include_headers: Whether to include sanitized headers

        Returns:
            Log-safe request summary
        """
        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }

        if request.client:
            # Hash IP for privacy while maintaining uniqueness for debugging
            ip_hash = hashlib.sha256(request.client.host.encode()).hexdigest()[:8]
            log_data["client_hash"] = ip_hash

        if include_headers:
            log_data["headers"] = cls.sanitize_headers(dict(request.headers))

        log_data["user_agent"] = request.headers.get("user-agent", "unknown")[:200]

        return log_data

    @classmethod
    def format_response_log(
        cls,
        request_id: str,
        status_code: int,
        duration_ms: float,
    ) -> Dict[str, Any]:
        """
        Format response for secure logging

        Args:
            request_id: Request identifier for correlation
            status_code: HTTP status code
            duration_ms: Request processing time

        Returns:
            Log-safe response summary
        """
        log_data = {
            "request_id": request_id,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
        }

        if 200 <= status_code < 300:
            log_data["status_category"] = "success"
        elif 400 <= status_code < 500:
            log_data["status_category"] = "client_error"
        elif 500 <= status_code < 600:
            log_data["status_category"] = "server_error"
        else:
            log_data["status_category"] = "other"

        return log_data


def log_secure(level: str, message: str, data: Dict[str, Any], request_id: Optional[str] = None):
    """
    Helper for consistent structured logging

    Args:
        level: Log level (info, warning, error)
        message: Log message
        data: Structured data to log
        request_id: Optional request ID for correlation
    """
    if request_id:
        data["request_id"] = request_id

    log_json = json.dumps({"message": message, "data": data}, default=str)

    if level == "info":
        logger.info(log_json)
    elif level == "warning":
        logger.warning(log_json)
    elif level == "error":
        logger.error(log_json)
    else:
        logger.debug(log_json)
