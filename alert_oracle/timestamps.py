from __future__ import annotations

import datetime as _dt
import re
from typing import Optional, Union

from alert_oracle.errors import ResponseError

# Go emits up to nine fractional digits; datetime keeps six.
_FRACTION = re.compile(r"\.(\d+)")
_GO_ZERO_TIME = "0001-01-01T00:00:00Z"


def parse_rfc3339(raw: Optional[str]) -> Optional[int]:
    """Parse an RFC 3339 timestamp to epoch milliseconds; Go's zero time is ``None``."""

    if raw is None or raw == "" or raw == _GO_ZERO_TIME:
        return None
    if not isinstance(raw, str):
        raise ResponseError(f"invalid timestamp {raw!r}")
    text = raw.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = _dt.datetime.fromisoformat(text)
    except ValueError as exc:
        raise ResponseError(f"invalid timestamp {raw!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=_dt.timezone.utc)
    return int(round(parsed.timestamp() * 1000))


def seconds_to_ms(value: Union[int, float, str]) -> int:
    """Unix seconds (as the query API reports them) to milliseconds."""

    try:
        return int(round(float(value) * 1000))
    except (TypeError, ValueError) as exc:
        raise ResponseError(f"invalid unix timestamp {value!r}") from exc
