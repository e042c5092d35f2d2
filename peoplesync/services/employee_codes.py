"""Human-readable employee code generation."""

from __future__ import annotations

import re
import secrets
import time

EMPLOYEE_CODE_PREFIX = "EMP"
EMPLOYEE_CODE_PATTERN = re.compile(rf"^{EMPLOYEE_CODE_PREFIX}\d{{9}}$")


def generate_employee_code(now_ms: int | None = None, random_part: int | None = None) -> str:
    """Return ``EMP`` + last 6 digits of the epoch-ms clock + 3 random digits."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    if random_part is None:
        random_part = secrets.randbelow(1000)
    return f"{EMPLOYEE_CODE_PREFIX}{now_ms % 1_000_000:06d}{random_part % 1000:03d}"
