from __future__ import annotations

import math
import re
from typing import Union


_DMS_RE = re.compile(
    r"""^\s*
    (?P<hem>[NSEW])\s*
    (?P<deg>\d{1,3})\s*°\s*
    (?:(?P<min>\d{1,2}(?:\.\d+)?)\s*'\s*)?
    (?:(?P<sec>\d+(?:\.\d+)?)\s*"\s*)?
    $""",
    re.VERBOSE,
)


def parse_degrees(value: Union[str, float]) -> float:
    """
    Accept decimal degrees or hemisphere-prefixed DMS:
      "34.19"             -> 34.19
      N34°11'24.0"        -> 34.19
      W118°17'06"         -> -118.285
    """
    if isinstance(value, (int, float)):
        return float(value)
    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass

    m = _DMS_RE.match(text.upper())
    if not m:
        raise ValueError(f"Bad angle format: {value!r}")

    dec = float(m.group("deg")) + float(m.group("min") or 0) / 60.0 + float(m.group("sec") or 0) / 3600.0
    if m.group("hem") in ("S", "W"):
        dec = -dec
    return dec


def format_deg(rad: float, digits: int = 2) -> str:
    return f"{math.degrees(rad):.{digits}f}°"
