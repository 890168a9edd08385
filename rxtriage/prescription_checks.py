"""
Prescription checks that feed the verification workflow.

* Prescription age: a prescription is valid for a fixed number of days
  after it was written (30 by default).
* Controlled-substance schedules: Schedule I and II substances are not
  handled by the service at all; III-V need special handling and an
  interaction check.

Message keys are returned instead of text; presentation layers localize them.
"""

from __future__ import annotations

import enum
import math
from datetime import date, datetime, time, timezone
from typing import Optional, Union

from rxtriage.sla import require_aware


class DrugSchedule(str, enum.Enum):
    I = "I"
    II = "II"
    III = "III"
    IV = "IV"
    V = "V"
    NONE = "none"


_BLOCKED_SCHEDULES = frozenset({DrugSchedule.I, DrugSchedule.II})
_CONTROLLED_SCHEDULES = frozenset({DrugSchedule.III, DrugSchedule.IV, DrugSchedule.V})

_SCHEDULE_MESSAGE_KEYS: dict[DrugSchedule, Optional[str]] = {
    DrugSchedule.I: "controlled.schedule_i.not_available",
    DrugSchedule.II: "controlled.schedule_ii.not_available",
    DrugSchedule.III: "controlled.schedule_iii.verification_required",
    DrugSchedule.IV: "controlled.schedule_iv.verification_required",
    DrugSchedule.V: "controlled.schedule_v",
    DrugSchedule.NONE: None,
}


def is_blocked_controlled_substance(schedule: DrugSchedule) -> bool:
    """Schedule I and II substances cannot be ordered through the service."""
    return schedule in _BLOCKED_SCHEDULES


def requires_controlled_handling(schedule: DrugSchedule) -> bool:
    """Schedules III-V are accepted but flagged as controlled substances."""
    return schedule in _CONTROLLED_SCHEDULES


def controlled_substance_message_key(schedule: DrugSchedule) -> Optional[str]:
    return _SCHEDULE_MESSAGE_KEYS[schedule]


def _as_aware_datetime(value: Union[str, date, datetime]) -> datetime:
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    elif not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    # Date-only and naive values are read as UTC.
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def is_prescription_date_valid(
    prescription_date: Union[str, date, datetime, None],
    now: datetime,
    max_days: int = 30,
) -> bool:
    """Whether a prescription written at ``prescription_date`` is still valid.

    Accepts ISO-8601 strings as extracted by the AI service, including a
    trailing ``Z``.  Age is counted in whole elapsed days, so a timestamp
    later than ``now`` on the same day is already in the future.  Missing
    or unparseable dates, and dates in the future, are invalid.
    A naive ``now`` raises ``ValueError``.
    """
    require_aware(now, "now")
    if prescription_date is None or prescription_date == "":
        return False

    try:
        written = _as_aware_datetime(prescription_date)
    except ValueError:
        return False

    age_days = math.floor((now - written).total_seconds() / 86400)
    return 0 <= age_days <= max_days
