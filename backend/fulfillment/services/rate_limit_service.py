# Overview: Per-purchaser fixed-window submission rate limiting.

"""
Submission Rate Limiting

WHY: Stop a single purchaser (or a runaway retry loop) from pushing a burst of
vendor purchases against the shared funding pool.

DESIGN:
- Fixed windows of SUBMISSION_RATE_WINDOW_MINUTES per user
- Check-and-increment is one conditional UPDATE (count < limit), so two
  concurrent submissions cannot both slip past the last slot
- Exceeding the limit blocks the transition only; the order keeps its status
  and can be retried later
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import SubmissionRateWindow
from ..time_utils import utcnow
from .concurrency import guarded_update


@dataclass
class RateLimitResult:
    allowed: bool
    count: int
    limit: int
    retry_after_seconds: int | None = None


def _window_minutes() -> int:
    return int(current_app.config.get("SUBMISSION_RATE_WINDOW_MINUTES", 60))


def _limit() -> int:
    return int(current_app.config.get("SUBMISSION_RATE_LIMIT", 10))


def window_start_for(now: datetime, minutes: int) -> datetime:
    """Floor a timestamp to the start of its fixed window."""
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = int((now - day_start).total_seconds() // 60)
    return day_start + timedelta(minutes=(elapsed // minutes) * minutes)


def _increment(user_id: str, window_start: datetime, limit: int) -> int:
    return guarded_update(
        SubmissionRateWindow,
        SubmissionRateWindow.user_id == user_id,
        SubmissionRateWindow.window_start == window_start,
        SubmissionRateWindow.count < limit,
        values={SubmissionRateWindow.count: SubmissionRateWindow.count + 1},
    )


def check_and_increment(user_id: str) -> RateLimitResult:
    """
    Consume one submission slot for user_id if any remain in this window.

    Returns:
        RateLimitResult(allowed=False, ...) when the window is exhausted
    """
    limit = _limit()
    minutes = _window_minutes()
    now = utcnow()
    window_start = window_start_for(now, minutes)

    if _increment(user_id, window_start, limit) == 1:
        db.session.commit()
        return RateLimitResult(allowed=True, count=_current_count(user_id, window_start), limit=limit)

    existing = db.session.query(SubmissionRateWindow).filter_by(
        user_id=user_id, window_start=window_start
    ).first()

    if existing is None and limit > 0:
        try:
            db.session.add(SubmissionRateWindow(user_id=user_id, window_start=window_start, count=1))
            db.session.commit()
            return RateLimitResult(allowed=True, count=1, limit=limit)
        except IntegrityError:
            # Concurrent first submission created the window; fall back to the UPDATE
            db.session.rollback()
            if _increment(user_id, window_start, limit) == 1:
                db.session.commit()
                return RateLimitResult(allowed=True, count=_current_count(user_id, window_start), limit=limit)

    db.session.rollback()
    window_end = window_start + timedelta(minutes=minutes)
    return RateLimitResult(
        allowed=False,
        count=_current_count(user_id, window_start),
        limit=limit,
        retry_after_seconds=max(int((window_end - now).total_seconds()), 0),
    )


def _current_count(user_id: str, window_start: datetime) -> int:
    row = db.session.query(SubmissionRateWindow).filter_by(
        user_id=user_id, window_start=window_start
    ).first()
    return row.count if row else 0
