"""
Doctor availability check for appointment booking.

A candidate booking occupies the half-open interval
``[start, start + duration)``.  It is rejected when it overlaps any
non-cancelled appointment of the same doctor; touching intervals
(one ends exactly when the other starts) do not overlap.

Times are compared as absolute minutes (day ordinal * 1440 + minute of
day) so an appointment that runs past midnight still blocks the first
slots of the following day.  Only the neighbouring days are queried,
which is sufficient because a booking is never longer than a day.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional

from clinic.models import Appointment

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class SlotCheck:
    is_valid: bool
    error: Optional[str] = None


def absolute_minutes(date: dt.date, time: dt.time) -> int:
    return date.toordinal() * MINUTES_PER_DAY + time.hour * 60 + time.minute


def _clock(minutes: int) -> str:
    m = minutes % MINUTES_PER_DAY
    return f"{m // 60:02d}:{m % 60:02d}"


def overlaps(start1: int, end1: int, start2: int, end2: int) -> bool:
    return start1 < end2 and start2 < end1


def check_doctor_availability(
    doctor_id: int,
    date: dt.date,
    time: dt.time,
    duration_minutes: int,
    exclude_appointment_id: Optional[int] = None,
) -> SlotCheck:
    """Return whether ``doctor_id`` is free for the requested slot."""
    if duration_minutes <= 0:
        return SlotCheck(False, 'Appointment duration must be positive')
    start = absolute_minutes(date, time)
    end = start + duration_minutes

    one_day = dt.timedelta(days=1)
    qs = (
        Appointment.objects
        .filter(doctor_id=doctor_id, date__range=(date - one_day, date + one_day))
        .exclude(status=Appointment.STATUS_CANCELLED)
        .order_by('date', 'time', 'id')
    )
    if exclude_appointment_id is not None:
        qs = qs.exclude(id=exclude_appointment_id)

    for appt in qs.only('id', 'date', 'time', 'duration_minutes'):
        other_start = absolute_minutes(appt.date, appt.time)
        other_end = other_start + appt.duration_minutes
        if overlaps(start, end, other_start, other_end):
            return SlotCheck(
                False,
                f"Doctor has a conflicting appointment from {_clock(other_start)} to {_clock(other_end)} "
                f"on {appt.date.isoformat()}. Your appointment would be from {_clock(start)} to {_clock(end)} "
                f"on {date.isoformat()}.",
            )
    return SlotCheck(True)
