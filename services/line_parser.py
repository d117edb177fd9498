"""Extract sensor readings from the dispenser's text output."""

from __future__ import annotations

import re
from typing import Optional

from models.records import SensorReading

# "Raw:" then exactly three unsigned integers, nothing but whitespace after.
_TELEMETRY_PATTERN = re.compile(r"Raw:\s*(\d+)\s+(\d+)\s+(\d+)\s*$")


def parse_line(line: str) -> Optional[SensorReading]:
    """Return the reading carried by ``line`` or ``None`` for any other output.

    Boot messages and diagnostics are interleaved with telemetry on the same
    wire, so a non-matching line is expected and never an error.
    """
    match = _TELEMETRY_PATTERN.search(line)
    if match is None:
        return None
    c1, c2, c3 = (int(group) for group in match.groups())
    return SensorReading(c1=c1, c2=c2, c3=c3)
