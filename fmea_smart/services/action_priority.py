"""
Action Priority (AP) lookup — AIAG-VDA FMEA (2019) S/O/D table.

AP classifies a failure chain as H (high), M (medium) or L (low) priority for
corrective action from its Severity, Occurrence and Detection ratings (1-10).
This module is the single implementation of the table; the worksheet risk
cells, the optimization step and the ``/api/fmea/ap`` endpoint all call
``ap_for``.

Rating 0 means "not yet entered" and yields no classification ("").
"""

from functools import lru_cache

from fmea_smart.core.exceptions import ValidationError

# Column labels of the detection axis; the index into each row vector.
DETECTION_BANDS = ("7-10", "5-6", "2-4", "1")

# (severity band, occurrence band) → AP per detection column.
AP_TABLE: dict[tuple[str, str], tuple[str, str, str, str]] = {
    ("9-10", "8-10"): ("H", "H", "H", "H"),
    ("9-10", "6-7"): ("H", "H", "H", "H"),
    ("9-10", "4-5"): ("H", "H", "L", "L"),
    ("9-10", "2-3"): ("H", "M", "L", "L"),
    ("9-10", "1"): ("H", "L", "L", "L"),
    ("7-8", "8-10"): ("H", "H", "H", "H"),
    ("7-8", "6-7"): ("H", "H", "M", "H"),
    ("7-8", "4-5"): ("H", "M", "L", "L"),
    ("7-8", "2-3"): ("M", "L", "L", "L"),
    ("7-8", "1"): ("L", "L", "L", "L"),
    ("4-6", "8-10"): ("H", "H", "M", "L"),
    ("4-6", "6-7"): ("H", "M", "L", "L"),
    ("4-6", "4-5"): ("H", "M", "L", "L"),
    ("4-6", "2-3"): ("M", "L", "L", "L"),
    ("4-6", "1"): ("L", "L", "L", "L"),
    ("2-3", "8-10"): ("M", "L", "L", "L"),
    ("2-3", "6-7"): ("L", "L", "L", "L"),
    ("2-3", "4-5"): ("L", "L", "L", "L"),
    ("2-3", "2-3"): ("L", "L", "L", "L"),
    ("2-3", "1"): ("L", "L", "L", "L"),
}

AP_CLASSES = ("H", "M", "L")


def _rating(name: str, value) -> int:
    """Coerce a rating to int and check the 0..10 range."""
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{name} must be an integer 0-10", details={name: value})
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer 0-10", details={name: value})
    if not 0 <= rating <= 10:
        raise ValidationError(f"{name} must be between 0 and 10", details={name: rating})
    return rating


def severity_band(severity: int) -> str | None:
    if severity >= 9:
        return "9-10"
    if severity >= 7:
        return "7-8"
    if severity >= 4:
        return "4-6"
    if severity >= 2:
        return "2-3"
    return None


def occurrence_band(occurrence: int) -> str:
    if occurrence >= 8:
        return "8-10"
    if occurrence >= 6:
        return "6-7"
    if occurrence >= 4:
        return "4-5"
    if occurrence >= 2:
        return "2-3"
    return "1"


def detection_column(detection: int) -> int:
    """Index into an AP_TABLE vector; boundaries follow DETECTION_BANDS."""
    if detection >= 7:
        return 0
    if detection >= 5:
        return 1
    if detection >= 2:
        return 2
    return 3


@lru_cache(maxsize=1024)
def _lookup(severity: int, occurrence: int, detection: int) -> str:
    if severity == 0 or occurrence == 0 or detection == 0:
        return ""
    # Severity 1 has no table row.
    if severity == 1:
        return "L"
    row = AP_TABLE.get((severity_band(severity), occurrence_band(occurrence)))
    if row is None:
        return "L"
    return row[detection_column(detection)]


def ap_for(severity, occurrence, detection) -> str:
    """
    Return the Action Priority for a S/O/D triple.

    Args:
        severity: 0-10 (0 = not rated yet)
        occurrence: 0-10
        detection: 0-10

    Returns:
        "H", "M" or "L"; "" when any rating is 0.

    Raises:
        ValidationError: a rating is not an integer in 0..10.
    """
    return _lookup(
        _rating("severity", severity),
        _rating("occurrence", occurrence),
        _rating("detection", detection),
    )


def ap_table_summary() -> dict[str, int]:
    """Count of H / M / L cells in the table (shown in the AP legend)."""
    counts = {cls: 0 for cls in AP_CLASSES}
    for row in AP_TABLE.values():
        for cell in row:
            counts[cell] += 1
    return counts
