from datetime import date, timedelta

MILESTONES = (
    (30, "Unstoppable!"),
    (14, "Legendary!"),
    (7, "On fire!"),
    (3, "Nice!"),
)

TIERS = ((30, 3), (7, 2), (3, 1))


def current_streak(active_dates, today):
    """Consecutive days with a finished focus session, ending today.

    A day without sessions yet does not break the streak until it is over,
    so counting starts from yesterday when today is still empty.
    """
    days = {d if isinstance(d, date) else date.fromisoformat(d) for d in active_dates}
    day = today if today in days else today - timedelta(days=1)
    streak = 0
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def milestone(streak):
    for threshold, label in MILESTONES:
        if streak >= threshold:
            return label
    return None


def tier(streak):
    for threshold, level in TIERS:
        if streak >= threshold:
            return level
    return 0


def badge(streak):
    return {'streak': streak, 'milestone': milestone(streak), 'tier': tier(streak)}
