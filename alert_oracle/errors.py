from __future__ import annotations

from typing import Any, List, Optional, Sequence


class OracleError(RuntimeError):
    """Base class for everything the oracle raises."""


class DefinitionError(OracleError, ValueError):
    """A test definition (rule, group or sample notation) is malformed."""


class ResponseError(OracleError):
    """An engine API payload does not have the expected shape."""


class ExpectationError(OracleError):
    def __init__(self, what: str, actual: Any, candidates: Sequence[Any], reason: Optional[str] = None) -> None:
        message_parts: List[str] = [f"{what} did not match any of {len(candidates)} expected candidates"]
        if reason:
            message_parts.append(reason)
        message_parts.append(f"actual: {actual!r}")
        for index, candidate in enumerate(candidates):
            message_parts.append(f"candidate {index}: {candidate!r}")
        super().__init__("; ".join(message_parts))
        self.what = what
        self.actual = actual
        self.candidates = list(candidates)
        self.reason = reason


class NotificationError(OracleError):
    def __init__(self, message: str, notification: Any = None, expected: Any = None) -> None:
        details: List[str] = [message]
        if notification is not None:
            details.append(f"received: {notification!r}")
        if expected is not None:
            details.append(f"expected: {expected!r}")
        super().__init__("; ".join(details))
        self.notification = notification
        self.expected = expected
