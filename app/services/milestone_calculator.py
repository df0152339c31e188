"""
Milestone date arithmetic and read-time classification.

Pure functions only: no DB access, no Flask context.

Date arithmetic is plain calendar days. Business days, holidays and time
zones are deliberately ignored: a milestone ``day_offset`` of -5 from a
Friday TX date lands on the Sunday before.

Usage:
    from app.services.milestone_calculator import compute_milestones

    entries = compute_milestones(date(2024, 3, 15), template.milestone_offsets)
"""

import re
from datetime import date, datetime, time, timedelta

from app.core.exceptions import ValidationError
from app.models.production import MILESTONE_TYPES, OPEN_MILESTONE_STATUSES

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

TX_MILESTONE_TYPE = "tx"

URGENT_HOURS = 24
UPCOMING_HOURS = 72


# ── Default templates ────────────────────────────────────────────────────────

DEFAULT_NORMAL_OFFSETS = [
    {"milestone_type": "topic_confirmation", "day_offset": -7, "time_of_day": "11:00",
     "label": "Topic Confirmation", "is_client_facing": True, "requires_client_approval": True},
    {"milestone_type": "script_deadline", "day_offset": -5, "time_of_day": "18:00",
     "label": "Script Development", "is_client_facing": False, "requires_client_approval": False},
    {"milestone_type": "script_approval", "day_offset": -4, "time_of_day": "12:00",
     "label": "Script Approval", "is_client_facing": True, "requires_client_approval": True},
    {"milestone_type": "production_day", "day_offset": -3, "time_of_day": "09:00",
     "label": "Production Day", "is_client_facing": False, "requires_client_approval": False},
    {"milestone_type": "post_production", "day_offset": -3, "time_of_day": "14:00",
     "label": "Post-Production", "is_client_facing": False, "requires_client_approval": False},
    {"milestone_type": "draft_1_review", "day_offset": -2, "time_of_day": "14:00",
     "label": "Draft 1 Review", "is_client_facing": True, "requires_client_approval": True},
    {"milestone_type": "draft_2_review", "day_offset": -1, "time_of_day": "14:00",
     "label": "Draft 2 Review", "is_client_facing": True, "requires_client_approval": True},
    {"milestone_type": "final_delivery", "day_offset": -1, "time_of_day": "18:00",
     "label": "Final Delivery", "is_client_facing": True, "requires_client_approval": False},
]

DEFAULT_BREAKING_NEWS_OFFSETS = [
    {"milestone_type": "topic_approval", "day_offset": -3, "time_of_day": "12:00",
     "label": "Topic Approval", "is_client_facing": True, "requires_client_approval": True},
    {"milestone_type": "script_approval", "day_offset": -2, "time_of_day": "18:00",
     "label": "Script Approval", "is_client_facing": True, "requires_client_approval": True},
    {"milestone_type": "production_day", "day_offset": -2, "time_of_day": "09:00",
     "label": "Remote Production", "is_client_facing": False, "requires_client_approval": False},
    {"milestone_type": "final_delivery", "day_offset": 0, "time_of_day": "12:00",
     "label": "Final Delivery", "is_client_facing": True, "requires_client_approval": False},
]

DEFAULT_EMERGENCY_OFFSETS = [
    {"milestone_type": "topic_approval", "day_offset": 0, "time_of_day": "09:00",
     "label": "Topic Approval", "is_client_facing": True, "requires_client_approval": True},
    {"milestone_type": "script_approval", "day_offset": 0, "time_of_day": "12:00",
     "label": "Script Approval", "is_client_facing": True, "requires_client_approval": True},
    {"milestone_type": "final_delivery", "day_offset": 0, "time_of_day": "18:00",
     "label": "Final Delivery", "is_client_facing": True, "requires_client_approval": False},
]

DEFAULT_TEMPLATES = {
    "normal": ("Standard 7-Day Workflow",
               "Normal weekly production cycle working back from TX",
               DEFAULT_NORMAL_OFFSETS),
    "breaking_news": ("Breaking News 3-Day",
                      "Fast-track workflow for breaking stories",
                      DEFAULT_BREAKING_NEWS_OFFSETS),
    "emergency": ("Emergency Same-Day",
                  "Same-day turnaround for urgent content",
                  DEFAULT_EMERGENCY_OFFSETS),
}


# ── Date arithmetic ──────────────────────────────────────────────────────────


def add_days(tx_date: date, day_offset: int) -> date:
    """Return ``tx_date`` shifted by ``day_offset`` calendar days."""
    return tx_date + timedelta(days=int(day_offset))


def format_milestone_label(milestone_type: str) -> str:
    """'draft_1_review' → 'Draft 1 Review'."""
    return " ".join(part.capitalize() for part in milestone_type.split("_"))


def compute_milestones(tx_date: date, offsets: list[dict]) -> list[dict]:
    """
    Turn a template's offsets into dated milestone entries.

    Returns exactly one entry per offset, in template order, each carrying
    ``calculated_date = tx_date + day_offset``. The TX date itself is not
    part of the list; see :func:`tx_milestone`.
    """
    entries = []
    for idx, off in enumerate(offsets):
        mtype = off["milestone_type"]
        day_offset = int(off.get("day_offset", 0))
        entries.append({
            "milestone_type": mtype,
            "label": off.get("label") or format_milestone_label(mtype),
            "day_offset": day_offset,
            "calculated_date": add_days(tx_date, day_offset),
            "time_of_day": off.get("time_of_day"),
            "is_client_facing": bool(off.get("is_client_facing", False)),
            "requires_client_approval": bool(off.get("requires_client_approval", False)),
            "sort_order": idx,
        })
    return entries


def tx_milestone(tx_date: date, tx_time: str | None = None) -> dict:
    """The implicit final checkpoint: transmission itself, at offset 0."""
    return {
        "milestone_type": TX_MILESTONE_TYPE,
        "label": "TX",
        "day_offset": 0,
        "calculated_date": tx_date,
        "time_of_day": tx_time,
        "is_client_facing": False,
        "requires_client_approval": False,
    }


def compute_timeline(tx_date: date, offsets: list[dict], tx_time: str | None = None) -> list[dict]:
    """Offsets plus the implicit TX entry, sorted by date then template order."""
    entries = compute_milestones(tx_date, offsets)
    tx = tx_milestone(tx_date, tx_time)
    tx["sort_order"] = len(entries)
    entries.append(tx)
    return sorted(entries, key=lambda e: (e["calculated_date"], e["sort_order"]))


# ── Validation ───────────────────────────────────────────────────────────────


def is_valid_time(value) -> bool:
    return isinstance(value, str) and bool(_TIME_RE.match(value))


def validate_milestone_offsets(offsets) -> None:
    """
    Raise ValidationError listing every problem with a template's offsets.

    Rules: non-empty list, known milestone types, integer day offsets,
    HH:MM times, no duplicate types except ``custom``, and a
    ``final_delivery`` entry.
    """
    if not isinstance(offsets, list) or not offsets:
        raise ValidationError(
            "milestone_offsets must be a non-empty list",
            details={"milestone_offsets": "At least one milestone is required"},
        )

    errors = {}
    seen = set()
    for idx, off in enumerate(offsets):
        key = f"milestone_offsets[{idx}]"
        if not isinstance(off, dict):
            errors[key] = "Must be an object"
            continue
        mtype = off.get("milestone_type")
        if mtype not in MILESTONE_TYPES:
            errors[f"{key}.milestone_type"] = f"Unknown milestone type: {mtype!r}"
        elif mtype != "custom":
            if mtype in seen:
                errors[f"{key}.milestone_type"] = f"Duplicate milestone type: {mtype}"
            seen.add(mtype)
        day_offset = off.get("day_offset")
        if isinstance(day_offset, bool) or not isinstance(day_offset, int):
            errors[f"{key}.day_offset"] = "Must be an integer"
        tod = off.get("time_of_day")
        if tod is not None and not is_valid_time(tod):
            errors[f"{key}.time_of_day"] = "Must be HH:MM"

    if "final_delivery" not in seen:
        errors["milestone_offsets"] = "A final_delivery milestone is required"

    if errors:
        raise ValidationError("Invalid milestone offsets", details=errors)


# ── Read-time classification ─────────────────────────────────────────────────


def is_overdue(status: str, deadline_date: date | None, today: date | None = None) -> bool:
    """Open milestone whose deadline day has passed. Never stored."""
    if status not in OPEN_MILESTONE_STATUSES or deadline_date is None:
        return False
    return deadline_date < (today or date.today())


def deadline_datetime(deadline_date: date, deadline_time: str | None) -> datetime:
    """Naive local deadline; a milestone without a time is due at end of day."""
    if deadline_time and is_valid_time(deadline_time):
        hh, mm = deadline_time.split(":")
        return datetime.combine(deadline_date, time(int(hh), int(mm)))
    return datetime.combine(deadline_date, time(23, 59, 59))


def urgency(
    status: str,
    deadline_date: date | None,
    deadline_time: str | None = None,
    now: datetime | None = None,
) -> str | None:
    """
    Classify an open milestone: overdue | urgent (≤24h) | upcoming (≤72h) | normal.

    Closed milestones have no urgency (None).
    """
    if status not in OPEN_MILESTONE_STATUSES or deadline_date is None:
        return None
    now = now or datetime.now()
    if deadline_date < now.date():
        return "overdue"
    # Past its time but still on the deadline day: urgent, not yet overdue.
    hours_left = (deadline_datetime(deadline_date, deadline_time) - now).total_seconds() / 3600
    if hours_left <= URGENT_HOURS:
        return "urgent"
    if hours_left <= UPCOMING_HOURS:
        return "upcoming"
    return "normal"
