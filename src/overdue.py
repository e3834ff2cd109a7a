"""
Overdue classification for expenses.

One function, ``classify``, decides both whether an expense is overdue and by
how many days, so the boolean used for filtering and the number shown to users
can never disagree.
"""

import math
import re
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from models import Expense, OverdueStatus


DEFAULT_GRACE_DAYS = 30
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_offset_days(value: Optional[str]) -> Optional[int]:
    """Parse the stored ``overdueDays`` string.

    None or blank means no offset. Anything else is read like a leading
    integer; text without one counts as 0.
    """
    if value is None or not str(value).strip():
        return None
    m = _LEADING_INT.match(str(value))
    return int(m.group(1)) if m else 0


def _as_datetime(value) -> datetime:
    if value is None:
        return datetime.now()
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    raise TypeError(f"now must be a date or datetime, got {type(value).__name__}")


def _base_datetime(expense: Expense) -> Optional[datetime]:
    if expense.date is not None:
        return datetime.combine(expense.date, datetime.min.time())
    return expense.submitted_at


def _days_past(now: datetime, due: Optional[datetime]) -> int:
    if due is None:
        return 0
    seconds = (now - due).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def classify(expense: Expense, now=None, grace_days: int = DEFAULT_GRACE_DAYS) -> OverdueStatus:
    now = _as_datetime(now)
    base = _base_datetime(expense)

    if expense.overdue:
        offset = parse_offset_days(expense.overdue_days)
        if offset is None:
            # manual flag without a term always wins
            return OverdueStatus(True, _days_past(now, base), base)
        if base is None:
            return OverdueStatus(False, 0, None)
        due = base + timedelta(days=offset)
        if due < now:
            return OverdueStatus(True, _days_past(now, due), due)
        return OverdueStatus(False, 0, due)

    if expense.partial_payment and not expense.partial_received and base is not None:
        due = base + timedelta(days=grace_days)
        if due < now:
            return OverdueStatus(True, _days_past(now, due), due)
        return OverdueStatus(False, 0, due)

    return OverdueStatus(False, 0, None)


def is_overdue(expense: Expense, now=None, grace_days: int = DEFAULT_GRACE_DAYS) -> bool:
    return classify(expense, now, grace_days).is_overdue


def days_overdue(expense: Expense, now=None, grace_days: int = DEFAULT_GRACE_DAYS) -> int:
    return classify(expense, now, grace_days).days_overdue


def overdue_expenses(
    expenses: Iterable[Expense],
    now=None,
    grace_days: int = DEFAULT_GRACE_DAYS,
    user_id: Optional[str] = None,
) -> List[tuple]:
    """(expense, status) pairs that are overdue, most overdue first.

    With ``user_id`` only that user's expenses are considered.
    """
    now = _as_datetime(now)
    out = []
    for e in expenses:
        if user_id is not None and e.user_id != user_id:
            continue
        status = classify(e, now, grace_days)
        if status.is_overdue:
            out.append((e, status))
    out.sort(key=lambda pair: pair[1].days_overdue, reverse=True)
    return out
