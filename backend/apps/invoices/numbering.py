"""Sequential, pattern-based document numbering.

Numbers come from a per-business counter that is incremented atomically in
the store. There is no "read the highest number and add one" path.
"""
import logging
import re
import threading
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol

from asgiref.sync import sync_to_async
from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from apps.invoices.models import DocumentCounter

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "{NNNNNN}"

COUNTER_PLACEHOLDERS = ["{NNNNNN}", "{NNNNN}", "{NNNN}", "{NNN}"]
VALID_PLACEHOLDERS = {"{YYYY}", "{YY}", "{MM}", *COUNTER_PLACEHOLDERS}

# Counter key used when the pattern carries no year, so the sequence never restarts.
CONTINUOUS_YEAR = 0

# Marks fallback numbers; counters only ever render digits.
FALLBACK_MARKER = "T"


class SequenceNumberError(Exception):
    """A document number could not be assigned."""


class CounterStore(Protocol):
    def increment(self, business_id: Any, prefix: str, year: int) -> int:
        """Atomically increment and return the counter for the key."""

    def peek(self, business_id: Any, prefix: str, year: int) -> int:
        """Return the last assigned value without incrementing."""


class DatabaseCounterStore:
    """Counters in the ``DocumentCounter`` table."""

    def increment(self, business_id, prefix: str, year: int) -> int:
        try:
            with transaction.atomic():
                # The unique constraint on (business, prefix, year) makes a
                # concurrent first use fall back to fetching the existing row.
                counter, _ = DocumentCounter.objects.get_or_create(
                    business_id=business_id,
                    prefix=prefix,
                    year=year,
                )
                counter = DocumentCounter.objects.select_for_update().get(pk=counter.pk)
                DocumentCounter.objects.filter(pk=counter.pk).update(
                    last_seq=F("last_seq") + 1,
                    updated_at=timezone.now(),
                )
                counter.refresh_from_db(fields=["last_seq"])
                return counter.last_seq
        except DatabaseError as exc:
            logger.exception(
                "Counter increment failed for business %s prefix %s year %s",
                business_id, prefix, year,
            )
            raise SequenceNumberError("Could not reserve a document number") from exc

    def peek(self, business_id, prefix: str, year: int) -> int:
        last = (
            DocumentCounter.objects
            .filter(business_id=business_id, prefix=prefix, year=year)
            .values_list("last_seq", flat=True)
            .first()
        )
        return last or 0


class InMemoryCounterStore:
    """Process-local counters guarded by a lock. Used for tests and previews."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: dict[tuple, int] = {}

    def increment(self, business_id, prefix: str, year: int) -> int:
        key = (business_id, prefix, year)
        with self._lock:
            value = self._counters.get(key, 0) + 1
            self._counters[key] = value
            return value

    def peek(self, business_id, prefix: str, year: int) -> int:
        with self._lock:
            return self._counters.get((business_id, prefix, year), 0)


@dataclass(frozen=True)
class SequenceNumber:
    value: str
    is_fallback: bool = False


def format_number(pattern: str, prefix: str, on_date: date, counter: int) -> str:
    """
    Replace placeholders in the pattern and prepend the prefix.

    Supported placeholders:
    - {YYYY}: 4-digit year
    - {YY}: 2-digit year
    - {MM}: 2-digit month
    - {NNN} to {NNNNNN}: zero-padded counter, 3 to 6 digits
    """
    result = pattern
    result = result.replace("{YYYY}", f"{on_date.year:04d}")
    result = result.replace("{YY}", f"{on_date.year % 100:02d}")
    result = result.replace("{MM}", f"{on_date.month:02d}")

    # Longest first to avoid partial replacement
    for placeholder in COUNTER_PLACEHOLDERS:
        width = len(placeholder) - 2
        result = result.replace(placeholder, f"{counter:0{width}d}")

    return f"{prefix}{result}"


def validate_pattern(pattern: str) -> list[str]:
    """Validate a number pattern and return a list of errors (empty = valid)."""
    errors = []
    if not pattern:
        errors.append("Pattern cannot be empty.")
        return errors

    if not any(p in pattern for p in COUNTER_PLACEHOLDERS):
        errors.append(
            "Pattern must contain at least one counter placeholder "
            "({NNN}, {NNNN}, {NNNNN} or {NNNNNN})."
        )

    found = re.findall(r"\{[^}]+\}", pattern)
    for placeholder in found:
        if placeholder not in VALID_PLACEHOLDERS:
            errors.append(f"Unknown placeholder: {placeholder}")

    return errors


def fallback_number(prefix: str, on_date: date, now_ms: int | None = None) -> str:
    """Timestamp-derived number, e.g. ``CN-2026-T4821``. Not guaranteed sequential.

    The ``T`` marker keeps fallback numbers apart from counter output, so a
    later sequential number does not land on a fallback one.
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    return f"{prefix}{on_date.year}-{FALLBACK_MARKER}{now_ms % 10000:04d}"


class SequenceNumberGenerator:
    """Generates unique sequential document numbers for one business."""

    def __init__(self, business_id, store: CounterStore | None = None,
                 pattern: str = DEFAULT_PATTERN):
        errors = validate_pattern(pattern)
        if errors:
            raise SequenceNumberError(" ".join(errors))
        self.business_id = business_id
        self.store = store or DatabaseCounterStore()
        self.pattern = pattern

    def _counter_year(self, on_date: date) -> int:
        # Yearly restart only when the number shows the year; otherwise
        # numbers from different years would collide.
        if "{YYYY}" in self.pattern or "{YY}" in self.pattern:
            return on_date.year
        return CONTINUOUS_YEAR

    def next_number(self, prefix: str, on_date: date | None = None) -> str:
        """Reserve and return the next number, e.g. ``INV-000045``."""
        on_date = on_date or timezone.localdate()
        try:
            counter = self.store.increment(
                self.business_id, prefix, self._counter_year(on_date)
            )
        except SequenceNumberError:
            raise
        except Exception as exc:
            logger.exception(
                "Counter store failed for business %s prefix %s",
                self.business_id, prefix,
            )
            raise SequenceNumberError("Could not reserve a document number") from exc

        number = format_number(self.pattern, prefix, on_date, counter)
        logger.info("Assigned number %s for business %s", number, self.business_id)
        return number

    async def anext_number(self, prefix: str, on_date: date | None = None) -> str:
        return await sync_to_async(self.next_number)(prefix, on_date)

    def next_number_or_fallback(
        self, prefix: str, on_date: date | None = None, allow_fallback: bool = False
    ) -> SequenceNumber:
        """Next number, or a timestamp number if the counter fails and fallback is allowed."""
        on_date = on_date or timezone.localdate()
        try:
            return SequenceNumber(self.next_number(prefix, on_date))
        except SequenceNumberError:
            if not allow_fallback:
                raise
        value = fallback_number(prefix, on_date)
        logger.warning(
            "Degraded numbering: assigned fallback number %s for business %s",
            value, self.business_id,
        )
        return SequenceNumber(value, is_fallback=True)

    def preview_next_number(self, prefix: str, on_date: date | None = None) -> str:
        """Preview what the next number would look like without incrementing."""
        on_date = on_date or timezone.localdate()
        last = self.store.peek(self.business_id, prefix, self._counter_year(on_date))
        return format_number(self.pattern, prefix, on_date, last + 1)
