# Overview: Service-layer operations for barcodes; pure validation and generation, no database work.

"""
DeviceTrack Barcode Service

================================================================================
PURPOSE: Classify, validate and generate barcode strings
================================================================================

FORMATS (table order, see rules.DEFAULT_BARCODE_FORMATS):
    CODE_128, QR_CODE, CODE_39, EAN_13, EAN_8, UPC_A, UPC_E

AUTO mode tries every format in table order and returns the first match.
Because CODE_128 accepts digits, AUTO classifies a plain EAN-13 string as
CODE_128; callers that care about the checksum must name the format.

CHECK DIGITS (weighted modulo-10, positions are 0-based):
    EAN-13: even positions weight 1, odd positions weight 3
    EAN-8:  even positions weight 3, odd positions weight 1
    UPC-A:  even positions weight 3, odd positions weight 1
    check = (10 - (weighted_sum % 10)) % 10

UPC-E is validated as digits only (no expansion to UPC-A).

Uniqueness of an item's barcode is a database concern and lives in
item_service.py.
================================================================================
"""

from __future__ import annotations

import re
from typing import Mapping, Optional

from ..errors import RuleViolation, ViolationKind
from ..rules import BarcodeFormat, current_rules


AUTO = "AUTO"

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def _formats(formats: Optional[Mapping[str, BarcodeFormat]]) -> Mapping[str, BarcodeFormat]:
    return formats if formats is not None else current_rules().barcode_formats


def _weighted_check_digit(digits: str, even_weight: int, odd_weight: int) -> int:
    total = 0
    for i, ch in enumerate(digits):
        total += int(ch) * (even_weight if i % 2 == 0 else odd_weight)
    return (10 - (total % 10)) % 10


def ean13_check_digit(first_twelve: str) -> int:
    return _weighted_check_digit(first_twelve[:12], 1, 3)


def ean8_check_digit(first_seven: str) -> int:
    return _weighted_check_digit(first_seven[:7], 3, 1)


def upca_check_digit(first_eleven: str) -> int:
    return _weighted_check_digit(first_eleven[:11], 3, 1)


def _check_digit_ok(key: str, barcode: str) -> bool:
    if key == "EAN_13":
        return ean13_check_digit(barcode[:12]) == int(barcode[12])
    if key == "EAN_8":
        return ean8_check_digit(barcode[:7]) == int(barcode[7])
    if key == "UPC_A":
        return upca_check_digit(barcode[:11]) == int(barcode[11])
    if key == "UPC_E":
        return barcode.isdigit()
    return True


def matches_format(barcode: str, fmt: BarcodeFormat) -> bool:
    """Length, pattern and (where required) check digit."""
    if not (fmt.min_length <= len(barcode) <= fmt.max_length):
        return False
    if fmt.pattern is not None and not fmt.pattern.match(barcode):
        return False
    if fmt.check_digit_required and not _check_digit_ok(fmt.key, barcode):
        return False
    return True


def validate_format(
    barcode: Optional[str],
    fmt: str = AUTO,
    *,
    formats: Optional[Mapping[str, BarcodeFormat]] = None,
) -> str:
    """
    Validate a barcode and return the key of the format it satisfies.

    Args:
        barcode: Raw barcode string
        fmt: Format key (case-insensitive) or "AUTO"
        formats: Format table override (defaults to the app's rules)

    Returns:
        Matched format key, e.g. "EAN_13"

    Raises:
        RuleViolation(InvalidBarcodeFormat): empty barcode, no format matched,
            or the barcode does not satisfy the named format
        RuleViolation(UnsupportedFormat): unknown format name
    """
    table = _formats(formats)

    if barcode is None or not barcode.strip():
        raise RuleViolation(ViolationKind.INVALID_BARCODE_FORMAT, "Barcode cannot be empty")

    key = (fmt or AUTO).strip().upper()

    if key == AUTO:
        for candidate in table.values():
            if matches_format(barcode, candidate):
                return candidate.key
        raise RuleViolation(ViolationKind.INVALID_BARCODE_FORMAT, "Barcode format not recognized")

    fmt_spec = table.get(key)
    if fmt_spec is None:
        raise RuleViolation(ViolationKind.UNSUPPORTED_FORMAT, f"Unsupported barcode format: {key}")

    if not matches_format(barcode, fmt_spec):
        raise RuleViolation(
            ViolationKind.INVALID_BARCODE_FORMAT,
            f"Barcode '{barcode}' is not a valid {fmt_spec.name} barcode",
        )
    return fmt_spec.key


def is_valid(barcode: Optional[str], fmt: str = AUTO) -> bool:
    try:
        validate_format(barcode, fmt)
    except RuleViolation:
        return False
    return True


def detect_format(
    barcode: Optional[str],
    *,
    formats: Optional[Mapping[str, BarcodeFormat]] = None,
) -> str:
    """First matching format key in table order, or FormatNotRecognized."""
    if barcode:
        for candidate in _formats(formats).values():
            if matches_format(barcode, candidate):
                return candidate.key
    raise RuleViolation(ViolationKind.FORMAT_NOT_RECOGNIZED, "Barcode format not recognized")


def _digits_only(cleaned: str) -> str:
    # Letters map onto 0-9 so a part number like "ABC-123" still yields a numeric base.
    return "".join(ch if ch.isdigit() else str((ord(ch) - ord("A")) % 10) for ch in cleaned)


def generate_suggested(part_number: Optional[str], fmt: str = "CODE_128") -> str:
    """
    Suggest a barcode for a part number.

    CODE_128 (and any format without a generator) returns the upper-cased
    part number with every non-alphanumeric character removed. EAN_13 pads
    (right, with "0") or truncates that value to 12 digits and appends the
    EAN-13 check digit.
    """
    if part_number is None or not part_number.strip():
        raise RuleViolation(ViolationKind.INVALID_PART_NUMBER, "Part number cannot be empty")

    cleaned = _NON_ALNUM.sub("", part_number.upper())
    if not cleaned:
        raise RuleViolation(
            ViolationKind.INVALID_PART_NUMBER,
            f"Part number '{part_number}' has no alphanumeric characters",
        )

    key = (fmt or "CODE_128").strip().upper()
    if key == "EAN_13":
        base = _digits_only(cleaned).ljust(12, "0")[:12]
        return base + str(ean13_check_digit(base))

    return cleaned


def validate_scanning_quality(confidence: int, length: int) -> None:
    """
    Reject scans that are likely misreads.

    Raises:
        RuleViolation(LowConfidence | TooShort | TooLong)
    """
    rules = current_rules()
    if confidence < rules.low_confidence_threshold:
        raise RuleViolation(ViolationKind.LOW_CONFIDENCE, "Low confidence scan - please try again")
    if length < rules.min_scan_length:
        raise RuleViolation(ViolationKind.TOO_SHORT, "Barcode too short - may be a scanning error")
    if length > rules.max_scan_length:
        raise RuleViolation(ViolationKind.TOO_LONG, "Barcode too long - may be a scanning error")


def supported_formats() -> list[dict]:
    return [fmt.to_dict() for fmt in current_rules().barcode_formats.values()]
