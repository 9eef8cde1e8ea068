# tracker/app/utils.py
import secrets
import string
from typing import Callable, TypeVar

from .errors import ConflictError
from .logging_utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TRACKING_PREFIX = "TRK"


def format_tracking(prefix: str, seq: int) -> str:
    return f"{prefix}-{seq:06d}"


class IdentifierGenerator:
    """Random package ids, tracking numbers and session keys.

    Uniqueness is enforced by the store; callers regenerate on ConflictError.
    """

    def package_id(self) -> str:
        return secrets.token_hex(4)

    def tracking_number(self) -> str:
        return format_tracking(TRACKING_PREFIX, secrets.randbelow(1_000_000))

    def session_key(self) -> str:
        # short enough to type on a phone: one letter + four digits
        return secrets.choice(string.ascii_uppercase) + f"{secrets.randbelow(10_000):04d}"


def retry_on_conflict(fn: Callable[[], T], attempts: int, operation: str) -> T:
    """Run ``fn``, retrying up to ``attempts`` times while it raises ConflictError."""
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except ConflictError as e:
            if attempt == attempts:
                logger.warning("%s: giving up after %d attempts (%s)", operation, attempts, e)
                raise
            logger.warning("%s: conflict on attempt %d, retrying (%s)", operation, attempt, e)
    raise AssertionError("unreachable")
