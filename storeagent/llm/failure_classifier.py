"""Classifies provider failures into the action the generation loop should take."""

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum

from storeagent.llm.errors import ProviderError

_RETRY_IN = re.compile(r"retry in (\d+(?:\.\d+)?)s")
_SECONDS = re.compile(r"^(\d+(?:\.\d+)?)s?$")


class FailureAction(str, Enum):
    """What to do after a failed attempt."""

    ROTATE = "rotate"  # Cool the key down, try the next one
    INVALIDATE_KEY = "invalidate_key"  # Key is revoked or leaked, never use again
    DISABLE_MODEL = "disable_model"  # Model does not exist on this key
    RETRY = "retry"  # Transient provider error
    FATAL = "fatal"  # Request itself is bad, stop


@dataclass(frozen=True)
class FailureDecision:
    """Classification of a failed attempt."""

    action: FailureAction
    reason: str
    cooldown_ms: int | None = None
    permanent: bool = False


def parse_retry_after(hint: str | None, message: str = "", now: datetime | None = None) -> int | None:
    """Parse a retry delay in milliseconds.

    Accepts a Retry-After value in seconds ("30", "34s"), an HTTP date, or
    "retry in Ns" inside the error message.
    """
    if hint:
        hint = hint.strip()
        match = _SECONDS.match(hint)
        if match:
            return int(float(match.group(1)) * 1000)
        try:
            retry_at = parsedate_to_datetime(hint)
        except (TypeError, ValueError):
            retry_at = None
        if retry_at is not None:
            if retry_at.tzinfo is None:
                retry_at = retry_at.replace(tzinfo=timezone.utc)
            now = now or datetime.now(timezone.utc)
            return max(0, int((retry_at - now).total_seconds() * 1000))

    match = _RETRY_IN.search((message or "").lower())
    if match:
        return int(float(match.group(1)) * 1000)
    return None


def _key_problem(message: str) -> tuple[bool, bool]:
    is_leaked = "leaked" in message
    is_invalid_key = "key not valid" in message or "invalid api key" in message or "api key was reported" in message
    return is_leaked, is_leaked or is_invalid_key


def _invalidate(is_leaked: bool) -> FailureDecision:
    return FailureDecision(
        FailureAction.INVALIDATE_KEY,
        reason="LEAKED" if is_leaked else "403_INVALID",
        permanent=True,
    )


def _rotate(reason: str, retry_hint: str | None, message: str, now: datetime | None) -> FailureDecision:
    return FailureDecision(
        FailureAction.ROTATE,
        reason=reason,
        cooldown_ms=parse_retry_after(retry_hint, message, now),
    )


def _classify_status(status: int, message: str, retry_hint: str | None, now: datetime | None) -> FailureDecision:
    is_leaked, is_key_problem = _key_problem(message)
    # Providers report a revoked key as 400 or 401 as well as 403
    if status in (401, 403) or (status == 400 and is_key_problem):
        return _invalidate(is_leaked)

    if status == 404:
        return FailureDecision(FailureAction.DISABLE_MODEL, reason="404_NOT_FOUND", permanent=True)

    if status in (429, 503):
        return _rotate(str(status), retry_hint, message, now)

    if status >= 500:
        return FailureDecision(FailureAction.RETRY, reason=f"{status}_SERVER_ERROR")

    if "safety" in message or "blocked" in message:
        return FailureDecision(FailureAction.FATAL, reason="SAFETY")

    # Bad request: another key will not fix the prompt
    return FailureDecision(FailureAction.FATAL, reason=f"{status}_BAD_REQUEST")


def _classify_message(message: str, retry_hint: str | None, now: datetime | None) -> FailureDecision:
    is_leaked, is_key_problem = _key_problem(message)
    if is_key_problem or "403" in message or "forbidden" in message:
        return _invalidate(is_leaked)

    if "not found" in message or "404" in message:
        return FailureDecision(FailureAction.DISABLE_MODEL, reason="404_NOT_FOUND", permanent=True)

    if "429" in message or "quota" in message:
        return _rotate("429", retry_hint, message, now)
    if "503" in message:
        return _rotate("503", retry_hint, message, now)

    if "safety" in message or "blocked" in message:
        return FailureDecision(FailureAction.FATAL, reason="SAFETY")

    return FailureDecision(FailureAction.FATAL, reason="UNKNOWN_ERROR")


def classify_failure(error: BaseException, now: datetime | None = None) -> FailureDecision:
    """Decide how the generation loop reacts to an error.

    The HTTP status decides when the provider sent one. The error text is
    only inspected for a status-less error, or to spot a revoked key behind
    a 400.

    Args:
        error: Exception raised by the provider call
        now: Current time, for HTTP-date retry hints

    Returns:
        FailureDecision
    """
    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return FailureDecision(FailureAction.RETRY, reason="NETWORK")

    status = getattr(error, "status_code", None)
    message = (getattr(error, "message", None) or str(error) or "").lower()
    retry_hint = getattr(error, "retry_after", None) if isinstance(error, ProviderError) else None

    if status is not None:
        return _classify_status(status, message, retry_hint, now)
    return _classify_message(message, retry_hint, now)
