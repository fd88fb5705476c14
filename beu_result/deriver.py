"""
Guesses the BEUP result page for a registration number and a semester.

The results site publishes one page per course/semester/exam-year/batch, named
like ``ResultsBTech4thSem2024_B2022Pub.aspx``. The name is derived from the
batch year (first two digits of the registration number) and the semester.
This is a best-effort heuristic: some cohorts use a different page name, which
the application cannot detect since it never reads the page itself.
"""
from __future__ import annotations
import re
import logging
from enum import Enum
from dataclasses import dataclass, replace
from typing import Optional
from urllib.parse import urlsplit, parse_qs

from .config import DEFAULT_ORIGIN

logger = logging.getLogger(__name__)

ROMAN_VALUES = {"I": 1, "V": 5, "X": 10, "L": 50, "C": 100, "D": 500, "M": 1000}

SEMESTERS = ["I", "II", "III", "IV", "V", "VI", "VII", "VIII"]

ORDINALS = {1: "1st", 2: "2nd", 3: "3rd", 4: "4th", 5: "5th", 6: "6th", 7: "7th", 8: "8th"}

_BATCH_PREFIX = re.compile(r"^[0-9]{2}$")


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    # Wrong filename guess. Never produced: the frame content is cross-origin.
    DERIVATION_HEURISTIC_MISMATCH = "derivation_heuristic_mismatch"
    FRAME_LOAD_FAILURE = "frame_load_failure"
    MISSING_NAVIGATION_PARAMETERS = "missing_navigation_parameters"


@dataclass(frozen=True)
class DerivationError:
    kind: ErrorKind
    message: str
    field: Optional[str] = None

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message, "field": self.field}


@dataclass(frozen=True)
class ResultLocator:
    base_path: str
    semester_code: str
    registration_number: str

    @property
    def effective_url(self) -> str:
        return f"{self.base_path}?Sem={self.semester_code}&RegNo={self.registration_number}"

    def with_registration_number(self, registration_number: str) -> "ResultLocator":
        return replace(self, registration_number=registration_number)

    def to_dict(self) -> dict:
        return {
            "basePath": self.base_path,
            "semester": self.semester_code,
            "regNo": self.registration_number,
        }


@dataclass(frozen=True)
class DerivationResult:
    """Either ``locator`` (ok) or ``error`` (not ok), never both."""
    ok: bool
    locator: Optional[ResultLocator] = None
    error: Optional[DerivationError] = None

    @classmethod
    def success(cls, locator: ResultLocator) -> "DerivationResult":
        return cls(ok=True, locator=locator)

    @classmethod
    def failure(cls, message: str, field: Optional[str] = None) -> "DerivationResult":
        return cls(ok=False, error=DerivationError(ErrorKind.INVALID_INPUT, message, field))


def roman_to_int(roman: str) -> Optional[int]:
    """Subtractive Roman numeral decoding. None on an unknown character."""
    digits = (roman or "").upper()
    total = 0
    for i, ch in enumerate(digits):
        current = ROMAN_VALUES.get(ch)
        if current is None:
            return None
        following = ROMAN_VALUES.get(digits[i + 1]) if i + 1 < len(digits) else None
        if following and current < following:
            total -= current
        else:
            total += current
    return total


def semester_number(semester: str) -> Optional[int]:
    """1..8 for the eight canonical semester tokens, None for anything else."""
    token = (semester or "").strip().upper()
    value = roman_to_int(token)
    if value is None or not 1 <= value <= 8:
        return None
    # "IIII" or "VX" decode inside the range but are not semester tokens
    if SEMESTERS[value - 1] != token:
        return None
    return value


def exam_year(batch_start_year: int, semester_no: int) -> int:
    academic_year_index = (semester_no - 1) // 2
    if semester_no % 2:
        return batch_start_year + academic_year_index
    return batch_start_year + academic_year_index + 1


def result_page_name(batch_start_year: int, semester_no: int) -> str:
    ordinal = ORDINALS[semester_no]
    year = exam_year(batch_start_year, semester_no)
    return f"ResultsBTech{ordinal}Sem{year}_B{batch_start_year}Pub.aspx"


def derive_locator(registration_number: str, semester: str,
                   origin: str = DEFAULT_ORIGIN) -> DerivationResult:
    reg_no = (registration_number or "").strip()
    sem = (semester or "").strip()

    if not reg_no or not sem:
        field = "registrationNumber" if not reg_no else "semester"
        return DerivationResult.failure("Registration number and semester are required.", field)

    if len(reg_no) < 2:
        return DerivationResult.failure(
            "Registration number is too short to determine batch year.", "registrationNumber")

    prefix = reg_no[:2]
    if not _BATCH_PREFIX.match(prefix):
        return DerivationResult.failure(
            "Invalid registration number format for batch year.", "registrationNumber")
    batch_start_year = int(f"20{prefix}")

    semester_no = semester_number(sem)
    if semester_no is None:
        return DerivationResult.failure(
            "Invalid semester provided. Please use I, II, ..., VIII.", "semester")

    base_path = f"{(origin or DEFAULT_ORIGIN).rstrip('/')}/{result_page_name(batch_start_year, semester_no)}"
    locator = ResultLocator(base_path=base_path, semester_code=sem.upper(), registration_number=reg_no)
    logger.debug("Derived %s for %s / %s", base_path, reg_no, locator.semester_code)
    return DerivationResult.success(locator)


def locator_from_parts(base_path: Optional[str], semester: Optional[str],
                       registration_number: Optional[str]) -> Optional[ResultLocator]:
    base_path = (base_path or "").strip()
    semester = (semester or "").strip()
    registration_number = (registration_number or "").strip()
    if not (base_path and semester and registration_number):
        return None
    if urlsplit(base_path).scheme not in ("http", "https"):
        return None
    return ResultLocator(base_path=base_path.split("?", 1)[0],
                         semester_code=semester.upper(),
                         registration_number=registration_number)


def locator_from_url(url: Optional[str]) -> Optional[ResultLocator]:
    """Split a pre-composed result URL back into its three locator fields."""
    if not url:
        return None
    parts = urlsplit(url.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    qs = parse_qs(parts.query)
    sem = (qs.get("Sem") or [""])[0]
    reg_no = (qs.get("RegNo") or [""])[0]
    base_path = f"{parts.scheme}://{parts.netloc}{parts.path}"
    return locator_from_parts(base_path, sem, reg_no)
