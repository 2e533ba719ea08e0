"""Month grid and calendar navigation.

The grid is a pure function of (year, month): six Sunday-first weeks, padded
with the tail of the previous month and the head of the next one.
"""

import calendar
from datetime import date, timedelta

from interval import Interval

GRID_CELLS = 42
WEEKDAYS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
AUTO_ADVANCE_SECONDS = 0.8


def _as_date(value):
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


def grid_start(year, month):
    first = date(year, month, 1)
    # weekday(): Monday == 0, so shift to a Sunday-first week
    return first - timedelta(days=(first.weekday() + 1) % 7)


def grid_range(year, month):
    start = grid_start(year, month)
    return start.isoformat(), (start + timedelta(days=GRID_CELLS - 1)).isoformat()


def month_grid(year, month, today=None, selected=None, counts=None):
    today = _as_date(today) or date.today()
    selected = _as_date(selected)
    counts = counts or {}
    start = grid_start(year, month)
    cells = []
    for offset in range(GRID_CELLS):
        day = start + timedelta(days=offset)
        current = day.month == month and day.year == year
        key = day.isoformat()
        tally = counts.get(key)
        cells.append({
            'date': key,
            'day': day.day,
            'current_month': current,
            'is_today': current and day == today,
            'is_selected': day == selected,
            'total': getattr(tally, 'total', 0) if tally else 0,
            'completed': getattr(tally, 'completed', 0) if tally else 0,
        })
    return cells


def shift_month(year, month, step):
    index = year * 12 + (month - 1) + step
    return index // 12, index % 12 + 1


class CalendarView:
    def __init__(self, selected_date=None, clock=date.today, on_select_date=None,
                 on_month_change=None, on_drop_task=None, interval_factory=Interval):
        self.clock = clock
        self.selected_date = _as_date(selected_date) or clock()
        self.year = self.selected_date.year
        self.month = self.selected_date.month
        self.on_select_date = on_select_date
        self.on_month_change = on_month_change
        self.on_drop_task = on_drop_task
        self.interval_factory = interval_factory
        self._advance = None
        self._advance_direction = 0

    @property
    def month_label(self):
        return f"{calendar.month_name[self.month]} {self.year}"

    @property
    def is_current_month(self):
        today = self.clock()
        return self.year == today.year and self.month == today.month

    def _set_view(self, year, month):
        if (year, month) == (self.year, self.month):
            return
        self.year, self.month = year, month
        if self.on_month_change:
            self.on_month_change(year, month)

    def prev_month(self):
        self._set_view(*shift_month(self.year, self.month, -1))

    def next_month(self):
        self._set_view(*shift_month(self.year, self.month, 1))

    def go_today(self):
        today = self.clock()
        self._set_view(today.year, today.month)

    def handle_key(self, key):
        if key == "ArrowLeft":
            self.prev_month()
        elif key == "ArrowRight":
            self.next_month()
        else:
            return False
        return True

    def select_date(self, value):
        selected = _as_date(value)
        self.selected_date = selected
        self._set_view(selected.year, selected.month)
        if self.on_select_date:
            self.on_select_date(selected.isoformat())

    def jump_to(self, year=None, month=None, day=None):
        year = year or self.year
        month = month or self.month
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month: {month}")
        self._set_view(year, month)
        if day is not None:
            day = max(1, min(day, calendar.monthrange(year, month)[1]))
            self.select_date(date(year, month, day))

    # -- drag and drop -------------------------------------------------

    def drag_enter_nav(self, direction):
        direction = 1 if direction > 0 else -1
        if self._advance is not None and self._advance_direction == direction:
            return
        self.drag_leave_nav()
        self._advance_direction = direction
        self._advance = self.interval_factory(AUTO_ADVANCE_SECONDS, self._auto_advance).start()

    def drag_leave_nav(self):
        if self._advance is not None:
            self._advance.cancel()
            self._advance = None
        self._advance_direction = 0

    def _auto_advance(self):
        if self._advance_direction > 0:
            self.next_month()
        elif self._advance_direction < 0:
            self.prev_month()

    def drop_task(self, task_id, value):
        self.drag_leave_nav()
        target = _as_date(value)
        if self.on_drop_task:
            self.on_drop_task(task_id, target.isoformat())

    def close(self):
        self.drag_leave_nav()

    def state(self, counts=None):
        return {
            'year': self.year,
            'month': self.month,
            'month_label': self.month_label,
            'is_current_month': self.is_current_month,
            'selected_date': self.selected_date.isoformat(),
            'weekdays': WEEKDAYS,
            'cells': month_grid(self.year, self.month, today=self.clock(),
                                selected=self.selected_date, counts=counts),
            'auto_advancing': self._advance is not None,
        }
