# meeple/services/parsing.py
# ============================================================================
# Conversion tolérante des valeurs BGG (tout arrive en texte)
# Jamais d'exception : valeur invalide => None
# ============================================================================

from __future__ import annotations

import math
import re
from typing import Any, Optional

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_int(value: Any) -> Optional[int]:
    """
    Parse a loosely typed value into an int.

    "4" -> 4, "12 players" -> 12, 3.0 -> 3, "Not Ranked" -> None, True -> None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        m = _LEADING_INT.match(value)
        return int(m.group(1)) if m else None
    return None


def parse_float(value: Any) -> Optional[float]:
    """Parse a loosely typed value into a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        f = float(value)
        return f if math.isfinite(f) else None
    if isinstance(value, str):
        m = _LEADING_FLOAT.match(value)
        if not m:
            return None
        f = float(m.group(1))
        return f if math.isfinite(f) else None
    return None


def clean_str(value: Any) -> Optional[str]:
    """Strip a string, mapping blanks to None."""
    if value is None:
        return None
    s = str(value).strip()
    return s or None
