"""
Temporal Layer

RESPONSIBILITY: The only source of time for the hierarchy
OUTPUTS: LogicalClock

BOUNDARY ENFORCEMENT:
=====================
- No phase reads system time directly
- Callers pass a clock in; replay and frozen modes keep runs reproducible
"""

from .clock import LogicalClock, ClockExhausted

__all__ = ["LogicalClock", "ClockExhausted"]
