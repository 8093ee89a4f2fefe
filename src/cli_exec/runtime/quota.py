"""Quota-exhaustion detection in diagnostic output.

Downstream CLIs (Gemini in particular) report quota rejections on stderr
with a RESOURCE_EXHAUSTED marker followed by loosely structured details.
Extraction is best-effort: each field has its own fallback.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict

__all__ = [
    "QUOTA_MARKER",
    "QuotaScanner",
    "QuotaViolation",
    "parse_quota_violation",
]

QUOTA_MARKER = "RESOURCE_EXHAUSTED"

DEFAULT_METRIC = "Unknown Model"
DEFAULT_STATUS = "429"
DEFAULT_REASON = "rateLimitExceeded"

_METRIC_RE = re.compile(r"Quota exceeded for quota metric '([^']+)'")
_STATUS_RE = re.compile(r"status[\"\s]*[:=]\s*(\d+)")
_REASON_RE = re.compile(r"\"reason\":\s*\"([^\"]+)\"")

_FIELD_PATTERNS = (
    ("metric", _METRIC_RE),
    ("status", _STATUS_RE),
    ("reason", _REASON_RE),
)
# Matches that may still grow when the next piece arrives
_OPEN_ENDED = frozenset({"status"})

# Characters of previous text re-scanned with each new piece
DEFAULT_OVERLAP = 1024


class QuotaViolation(BaseModel):
    """Structured quota violation.

    Attributes:
        metric: Quota metric name (usually identifies the model)
        status: HTTP-style status code, as text
        reason: Machine reason code
    """

    model_config = ConfigDict(frozen=True)

    metric: str = DEFAULT_METRIC
    status: str = DEFAULT_STATUS
    reason: str = DEFAULT_REASON

    @property
    def status_code(self) -> int:
        try:
            return int(self.status)
        except ValueError:
            return int(DEFAULT_STATUS)

    def to_error_payload(self) -> dict[str, Any]:
        """Build the diagnostic error document."""
        return {
            "error": {
                "code": self.status_code,
                "message": f"Quota exceeded for {self.metric}",
                "details": {
                    "model": self.metric,
                    "reason": self.reason,
                    "statusText": "Too Many Requests",
                },
            }
        }

    def to_json(self) -> str:
        return json.dumps(self.to_error_payload(), indent=2, ensure_ascii=False)


def _first_group(pattern: re.Pattern[str], text: str, default: str) -> str:
    match = pattern.search(text)
    return match.group(1) if match else default


def parse_quota_violation(text: object) -> QuotaViolation | None:
    """Parse accumulated stderr text for a quota violation.

    Args:
        text: Accumulated stderr text (non-str input yields None)

    Returns:
        QuotaViolation if the marker is present, otherwise None
    """
    if not isinstance(text, str) or QUOTA_MARKER not in text:
        return None

    return QuotaViolation(
        metric=_first_group(_METRIC_RE, text, DEFAULT_METRIC),
        status=_first_group(_STATUS_RE, text, DEFAULT_STATUS),
        reason=_first_group(_REASON_RE, text, DEFAULT_REASON),
    )


class QuotaScanner:
    """Incremental quota detection over a stream of stderr text.

    Each feed() only searches the new text plus a bounded overlap from the
    previous text, so scanning stays linear in the total stream size. Fields
    keep their first match, as parse_quota_violation() does; a field whose
    match is longer than the overlap and split across feeds falls back to
    its default.
    """

    def __init__(self, overlap: int = DEFAULT_OVERLAP) -> None:
        if overlap < len(QUOTA_MARKER):
            raise ValueError("overlap must cover the quota marker")
        self.overlap = overlap
        self.marker_seen = False
        self._tail = ""
        self._fields: dict[str, str] = {}
        self._last: QuotaViolation | None = None

    @property
    def tail(self) -> str:
        return self._tail

    def feed(self, text: str) -> QuotaViolation | None:
        """Scan the next piece of text.

        Returns:
            QuotaViolation when the marker has been seen and the record
            differs from the last one returned, otherwise None
        """
        if not isinstance(text, str) or not text:
            return None

        window = self._tail + text
        if not self.marker_seen and QUOTA_MARKER in window:
            self.marker_seen = True
        for name, pattern in _FIELD_PATTERNS:
            if name not in self._fields:
                match = pattern.search(window)
                if match is None:
                    continue
                if name in _OPEN_ENDED and match.end() == len(window):
                    continue
                self._fields[name] = match.group(1)
        self._tail = window[-self.overlap:]

        if not self.marker_seen:
            return None
        violation = QuotaViolation(**self._fields)
        if violation == self._last:
            return None
        self._last = violation
        return violation
