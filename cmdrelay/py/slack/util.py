import hashlib
import hmac
import logging
import re
import time
import urllib.parse

from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger("uvicorn")

# Slack recommends rejecting anything older than five minutes.
SLACK_TIMESTAMP_TOLERANCE = 300
SIGNATURE_VERSION = "v0"

_TIMESTAMP = re.compile(r"[+-]?[0-9]+")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class VerificationStatus(Enum):
    VERIFIED = 1
    BAD_SIGNATURE = 2
    OUTDATED_REQUEST = 3
    MISSING_HEADERS = 4
    BAD_TIMESTAMP = 5
    DISABLED = 6


ACCEPTED = (VerificationStatus.VERIFIED, VerificationStatus.DISABLED)


class FormParseError(ValueError):
    """Exception for request bodies that aren't valid url-encoded forms"""


def sign_request(secret: bytes, timestamp: str, body: bytes) -> str:
    """Compute the `v0=<hex>` signature Slack sends for a request."""
    base = b"%s:%s:%s" % (
        SIGNATURE_VERSION.encode(), timestamp.encode("utf-8"), body
    )
    hsh = hmac.new(secret, msg=base, digestmod=hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={hsh}"


def check_signature(
    body: bytes,
    timestamp: str,
    signature: str,
    secret: bytes,
    now: Optional[float] = None
) -> VerificationStatus:
    """Perform request signature verification.

    Requires the signing secret from your Slack application. An empty secret
    turns verification off entirely and every request is accepted. The other
    parameters are the raw request body, and the values of the
    X-Slack-Request-Timestamp and X-Slack-Signature headers.

    See https://api.slack.com/authentication/verifying-requests-from-slack"""
    if not secret:
        return VerificationStatus.DISABLED

    if not timestamp or not signature:
        return VerificationStatus.MISSING_HEADERS

    if not _TIMESTAMP.fullmatch(timestamp):
        return VerificationStatus.BAD_TIMESTAMP
    req_ts = int(timestamp)

    if now is None:
        now = time.time()
    if abs(int(now) - req_ts) > SLACK_TIMESTAMP_TOLERANCE:
        # too old or too far in the future, either could be a replay
        logger.warning("Request timestamp too old or too far in the future")
        return VerificationStatus.OUTDATED_REQUEST

    prefix = f"{SIGNATURE_VERSION}="
    if not signature.startswith(prefix):
        return VerificationStatus.BAD_SIGNATURE

    expected = sign_request(secret, timestamp, body)
    if hmac.compare_digest(
        signature[len(prefix):].encode("utf-8"),
        expected[len(prefix):].encode("utf-8")
    ):
        return VerificationStatus.VERIFIED
    return VerificationStatus.BAD_SIGNATURE


def verify_signature(
    body: bytes,
    timestamp: str,
    signature: str,
    secret: bytes,
    now: Optional[float] = None
) -> bool:
    return check_signature(body, timestamp, signature, secret, now) in ACCEPTED


def parse_form(body: bytes) -> Dict[str, str]:
    """Decode an application/x-www-form-urlencoded body.

    When a key repeats, the last occurrence wins. Bytes that aren't valid
    UTF-8 come through as U+FFFD rather than failing the request."""
    text = body.decode("utf-8", "replace")

    if ";" in text:
        raise FormParseError("invalid semicolon separator")
    if _BAD_ESCAPE.search(text):
        raise FormParseError("invalid percent escape")

    pairs = urllib.parse.parse_qsl(
        text, keep_blank_values=True, errors="replace"
    )
    return dict(pairs)
