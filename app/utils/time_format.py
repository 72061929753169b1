from datetime import datetime, timezone
from typing import Optional


def age_label(created_at: datetime, now: Optional[datetime] = None) -> str:
    """
    Relative age in the largest whole unit: "3d ago", "5h ago", "12m ago".

    Anything under a minute, or in the future because of clock skew, is "Just now".
    """
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)

    seconds = int((now - created_at).total_seconds())
    if seconds >= 86400:
        return f"{seconds // 86400}d ago"
    if seconds >= 3600:
        return f"{seconds // 3600}h ago"
    if seconds >= 60:
        return f"{seconds // 60}m ago"
    return "Just now"
