# services/sequence.py
"""
Sequence Allocator - human-readable invoice and receipt numbers.

Formats:
     INV-{CODE}-{YYYY}-{MM}-{NNNN}   invoice, property code optional
     RCT-{YYYY}-{NNNNN}              receipt, company/year scope

The next sequence follows the highest sequence already issued in the same
scope and period, so deleting invoices never frees a number. Read-then-insert
races under concurrent writers, so every candidate is handed to an insert
callback; when the store reports a unique violation the candidate is nudged
forward by the attempt number and retried after a short linear backoff.
Running out of attempts raises CollisionExhaustedError.
"""
import logging
import re
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Optional, TypeVar

from errors import CollisionExhaustedError, IdentifierCollision

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_MS = 50

_INVOICE_NUMBER_RE = re.compile(
     r"^(?P<prefix>[A-Z]+)-(?:(?P<code>[A-Z0-9]{2,4})-)?(?P<year>\d{4})-(?P<month>\d{2})-(?P<seq>\d+)$"
)


@dataclass(frozen=True)
class IdentifierFamily:
     prefix: str
     monthly: bool
     width: int


INVOICE_NUMBERS = IdentifierFamily(prefix="INV", monthly=True, width=4)
RECEIPT_NUMBERS = IdentifierFamily(prefix="RCT", monthly=False, width=5)


@dataclass(frozen=True)
class SequenceScope:
     company_id: int
     property_code: Optional[str] = None


@dataclass(frozen=True)
class Period:
     year: int
     month: Optional[int] = None

     @classmethod
     def of(cls, day: date, monthly: bool = True) -> "Period":
          return cls(year=day.year, month=day.month if monthly else None)

     def label(self) -> str:
          if self.month is None:
               return f"{self.year:04d}"
          return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class ParsedNumber:
     prefix: str
     property_code: Optional[str]
     year: int
     month: int
     sequence: int


def generate_property_code(property_name: str) -> str:
     """
     Short uppercase code for a property name.

     "Skyline" -> "SKY", "Green Valley" -> "GVA", "Green Valley Estates" -> "GVE"
     """
     words = re.findall(r"[A-Z0-9]+", (property_name or "").upper())
     if not words:
          return ""
     if len(words) == 1:
          code = words[0][:3]
     elif len(words) == 2:
          code = words[0][0] + words[1][0] + words[1][1:2]
     else:
          code = "".join(word[0] for word in words[:3])
     return code[:4]


def highest_sequence(numbers: Iterable[str], prefix: str) -> int:
     """
     Largest numeric suffix among `numbers` that start with `prefix`.

     Suffixes are compared as integers so widths past the padding still order
     correctly. Anything that is not prefix plus digits is ignored.
     """
     highest = 0
     for number in numbers:
          if not number or not number.startswith(prefix):
               continue
          suffix = number[len(prefix):]
          if suffix.isdigit():
               highest = max(highest, int(suffix))
     return highest


def parse_invoice_number(invoice_number: str) -> Optional[ParsedNumber]:
     match = _INVOICE_NUMBER_RE.match(invoice_number or "")
     if not match:
          return None
     return ParsedNumber(
          prefix=match.group("prefix"),
          property_code=match.group("code"),
          year=int(match.group("year")),
          month=int(match.group("month")),
          sequence=int(match.group("seq")),
     )


class SequenceAllocator:
     """
     Allocates identifiers of one family.

     `last_issued(scope, prefix)` is supplied by the store adapter and must
     return the highest sequence ever issued under `prefix` for the scope
     (0 when none). See `highest_sequence`.
     """

     def __init__(
          self,
          last_issued: Callable[[SequenceScope, str], int],
          family: IdentifierFamily = INVOICE_NUMBERS,
          max_attempts: int = DEFAULT_MAX_ATTEMPTS,
          backoff_ms: int = DEFAULT_BACKOFF_MS,
          sleep: Callable[[float], None] = time.sleep,
     ):
          if max_attempts < 1:
               raise ValueError("max_attempts must be at least 1")
          self.last_issued = last_issued
          self.family = family
          self.max_attempts = max_attempts
          self.backoff_ms = backoff_ms
          self.sleep = sleep

     def prefix(self, scope: SequenceScope, period: Period) -> str:
          parts = [self.family.prefix]
          if scope.property_code:
               parts.append(scope.property_code.upper()[:4])
          parts.append(f"{period.year:04d}")
          if self.family.monthly:
               if period.month is None:
                    raise ValueError(f"{self.family.prefix} numbers need a monthly period")
               parts.append(f"{period.month:02d}")
          return "-".join(parts) + "-"

     def allocate(self, scope: SequenceScope, period: Period, attempt: int = 0) -> str:
          """Candidate identifier; `attempt` pushes the sequence past a known collision."""
          prefix = self.prefix(scope, period)
          sequence = self.last_issued(scope, prefix) + 1 + attempt
          return f"{prefix}{sequence:0{self.family.width}d}"

     def allocate_and_insert(
          self,
          scope: SequenceScope,
          period: Period,
          insert: Callable[[str], T],
     ) -> T:
          """
          Allocate a candidate and pass it to `insert` until one sticks.

          `insert` must raise IdentifierCollision (and leave no partial write)
          when the candidate is already taken. Any other exception propagates.
          """
          for attempt in range(self.max_attempts):
               candidate = self.allocate(scope, period, attempt)
               try:
                    return insert(candidate)
               except IdentifierCollision:
                    logger.info(
                         "Identifier collision on %s (attempt %d/%d)",
                         candidate, attempt + 1, self.max_attempts,
                    )
                    if attempt + 1 < self.max_attempts:
                         self.sleep(self.backoff_ms * (attempt + 1) / 1000.0)

          raise CollisionExhaustedError(
               f"Failed to generate a unique {self.family.prefix} number after "
               f"{self.max_attempts} attempts. Please try again."
          )
