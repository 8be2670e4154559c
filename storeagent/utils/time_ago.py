"""Relative time formatting in Arabic."""

from datetime import datetime, timezone


def time_ago(moment: datetime | None, now: datetime | None = None) -> str:
    """Format how long ago ``moment`` was, e.g. "5 دقيقة" or "2 يوم".

    Naive datetimes are treated as UTC. A missing timestamp reads as "now".
    """
    if moment is None:
        return "الآن"
    now = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    minutes = int((now - moment).total_seconds() // 60)
    if minutes < 1:
        return "الآن"
    if minutes < 60:
        return f"{minutes} دقيقة"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} ساعة"
    days = hours // 24
    if days < 7:
        return f"{days} يوم"
    return f"{days // 7} أسبوع"
