"""Dashboard controller.

Owns the signed-in user's tasks, sections, daily stats and the per-date task
tallies behind the calendar dots. View intents arrive as method calls; each
one updates local state straight away and mirrors the change to the store.
A failed write is not rolled back: the entity is tagged ``failed`` and the
error banner is set.
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta

from auth import AuthError, display_name
from calendar_view import grid_range
from storage import LEGACY_STATS_KEY, LEGACY_TASKS_KEY, PLANNED_TODAY_KEY
from streak import badge, current_streak
from timer import DURATIONS, FOCUS

logger = logging.getLogger(__name__)

COMMITTED = "committed"
FAILED = "failed"

STREAK_LOOKBACK_DAYS = 400


@dataclass
class Task:
    id: int
    text: str
    completed: bool = False
    pomodoros_spent: int = 0
    scheduled_date: str = ""
    completed_at: str | None = None
    sort_order: int = 0
    description: str = ""
    section_id: int | None = None
    sync: str = COMMITTED

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            text=row['text'],
            completed=bool(row.get('completed')),
            pomodoros_spent=row.get('pomodoros_spent') or 0,
            scheduled_date=row['scheduled_date'],
            completed_at=row.get('completed_at'),
            sort_order=row.get('sort_order') or 0,
            description=row.get('description') or "",
            section_id=row.get('section_id'),
        )


@dataclass
class Section:
    id: int
    name: str
    color: str = "#bb9af7"
    sort_order: int = 0
    sync: str = COMMITTED

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            name=row['name'],
            color=row.get('color') or "#bb9af7",
            sort_order=row.get('sort_order') or 0,
        )


@dataclass
class Stats:
    total_focus_minutes: int = 0
    sessions_completed: int = 0


@dataclass
class DayCounts:
    total: int = 0
    completed: int = 0


def _iso(value):
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(value).isoformat()


def move_item(items, from_index, to_index):
    """Return a copy of ``items`` with one element moved, or None if out of range."""
    if not (0 <= from_index < len(items) and 0 <= to_index < len(items)):
        return None
    moved = list(items)
    item = moved.pop(from_index)
    moved.insert(to_index, item)
    return moved


class DashboardController:
    def __init__(self, store, session, local_storage, session_storage,
                 clock=date.today, focus_minutes=None):
        self.store = store
        self.session = session
        self.local_storage = local_storage
        self.session_storage = session_storage
        self.clock = clock
        self.focus_minutes = focus_minutes or DURATIONS[FOCUS] // 60
        self.selected_date = self.today()
        self._migration_done = False
        self._generations = {}
        self._reset_state()
        session.subscribe(self._on_session_change)

    def _reset_state(self):
        self.tasks = []
        self.sections = []
        self.stats = Stats()
        self.task_counts = {}
        self.streak = 0
        self.loading = True
        self.error = ""
        self.plan_tasks = []
        self.reschedule_prompt = None
        self.needs_name = False
        self.supports_task_order = True
        self.supports_section_order = True

    # -- helpers -------------------------------------------------------

    @property
    def user_id(self):
        return self.session.user_id

    @property
    def display_name(self):
        return display_name(self.session.user)

    def today(self):
        return self.clock().isoformat()

    def yesterday(self):
        return (self.clock() - timedelta(days=1)).isoformat()

    def _fail(self, action, message):
        logger.error("Failed to %s: %s", action, message)
        self.error = f"Failed to {action}: {message}"

    def _record(self, entity, result, action):
        if result.ok:
            entity.sync = COMMITTED
        else:
            entity.sync = FAILED
            self._fail(action, result.error)
        return result.ok

    def _begin(self, kind):
        generation = self._generations.get(kind, 0) + 1
        self._generations[kind] = generation
        return generation

    def _stale(self, kind, generation):
        if self._generations.get(kind) != generation:
            logger.debug("Discarding stale %s response (generation %s)", kind, generation)
            return True
        return False

    def find_task(self, task_id):
        return next((t for t in self.tasks if t.id == task_id), None)

    def find_section(self, section_id):
        return next((s for s in self.sections if s.id == section_id), None)

    def _adjust_counts(self, day, total=0, completed=0):
        counts = self.task_counts.get(day) or DayCounts()
        self.task_counts[day] = DayCounts(
            total=max(0, counts.total + total),
            completed=max(0, counts.completed + completed),
        )

    def _transfer_counts(self, source, target, total, completed=0):
        self._adjust_counts(source, total=-total, completed=-completed)
        self._adjust_counts(target, total=total, completed=completed)

    def dismiss_error(self):
        self.error = ""

    # -- loading -------------------------------------------------------

    def load(self):
        user = self.session.resolve()
        if not user:
            self.loading = False
            return
        self.supports_task_order = self.store.has_column('tasks', 'sort_order')
        self.supports_section_order = self.store.has_column('sections', 'sort_order')
        if not self.supports_task_order:
            logger.warning("tasks.sort_order is missing; task ordering disabled")

        self.migrate_local_storage()
        self.fetch_tasks()
        self.fetch_stats()
        self.fetch_sections()
        selected = date.fromisoformat(self.selected_date)
        self.fetch_task_counts(selected.year, selected.month)
        self.fetch_streak()
        self.loading = False

        if not user.get('full_name'):
            self.needs_name = True
        self.check_plan_my_day()

    def reload(self):
        self.session.refresh()
        self._reset_state()
        self.selected_date = self.today()
        self.load()

    def _on_session_change(self, event, previous, user):
        if user is None:
            self._reset_state()
            self.loading = False
            return
        if previous is None or previous.get('id') != user.get('id'):
            self._migration_done = False
            self.reload()

    def fetch_tasks(self):
        if not self.user_id:
            return
        generation = self._begin('tasks')
        result = self.store.select('tasks', self.user_id, eq={'scheduled_date': self.selected_date},
                                   order_by=['created_at', 'id'])
        if self._stale('tasks', generation):
            return
        if not result.ok:
            self._fail("load tasks", result.error)
            return
        tasks = [Task.from_row(row) for row in result.data]
        if self.supports_task_order:
            tasks.sort(key=lambda t: (t.sort_order, t.id))
        self.tasks = tasks

    def fetch_stats(self):
        if not self.user_id:
            return
        generation = self._begin('stats')
        result = self.store.select('daily_stats', self.user_id, eq={'date': self.selected_date})
        if self._stale('stats', generation):
            return
        if not result.ok:
            logger.warning("Could not load stats for %s: %s", self.selected_date, result.error)
        if result.ok and result.data:
            row = result.data[0]
            self.stats = Stats(row['total_focus_minutes'], row['sessions_completed'])
        else:
            self.stats = Stats()

    def fetch_task_counts(self, year, month):
        if not self.user_id:
            return
        generation = self._begin('counts')
        start, end = grid_range(year, month)
        result = self.store.select('tasks', self.user_id, gte={'scheduled_date': start},
                                   lte={'scheduled_date': end}, columns=['scheduled_date', 'completed'])
        if self._stale('counts', generation):
            return
        if not result.ok:
            logger.warning("Could not load task counts for %s-%02d: %s", year, month, result.error)
            return
        counts = {}
        for row in result.data:
            day = counts.setdefault(row['scheduled_date'], DayCounts())
            day.total += 1
            if row['completed']:
                day.completed += 1
        self.task_counts = counts

    def fetch_sections(self):
        if not self.user_id:
            return
        generation = self._begin('sections')
        result = self.store.select('sections', self.user_id, order_by=['sort_order', 'id'])
        if self._stale('sections', generation):
            return
        if result.ok:
            self.sections = [Section.from_row(row) for row in result.data]
        else:
            logger.warning("Could not load sections: %s", result.error)

    def fetch_streak(self):
        if not self.user_id:
            return
        today = self.clock()
        result = self.store.select('daily_stats', self.user_id,
                                   gte={'date': (today - timedelta(days=STREAK_LOOKBACK_DAYS)).isoformat()},
                                   lte={'date': today.isoformat()},
                                   columns=['date', 'sessions_completed'])
        if not result.ok:
            logger.warning("Could not load streak: %s", result.error)
            return
        self.streak = current_streak(
            [row['date'] for row in result.data if row['sessions_completed'] > 0], today)

    def select_date(self, value):
        value = _iso(value)
        previous = self.selected_date
        if value == previous:
            return
        if previous < self.today():
            incomplete = [t for t in self.tasks if not t.completed]
            if incomplete:
                self.reschedule_prompt = {'date': previous, 'tasks': incomplete}
        self.selected_date = value
        self.fetch_tasks()
        self.fetch_stats()

    # -- legacy snapshot -----------------------------------------------

    def migrate_local_storage(self):
        """Import the pre-account browser snapshot once, then drop it."""
        if self._migration_done or not self.user_id:
            return
        self._migration_done = True

        raw_tasks = self.local_storage.get_item(LEGACY_TASKS_KEY)
        raw_stats = self.local_storage.get_item(LEGACY_STATS_KEY)
        if not raw_tasks and not raw_stats:
            return

        today = self.today()
        try:
            existing = self.store.count('tasks', self.user_id)
            if not existing.ok:
                logger.warning("Skipping local data import: %s", existing.error)
                return
            if existing.count:
                logger.info("User %s already has tasks; discarding local snapshot", self.user_id)
                return

            legacy = json.loads(raw_tasks) if raw_tasks else []
            if legacy:
                rows = [{
                    'text': t['text'],
                    'completed': bool(t.get('completed')),
                    'pomodoros_spent': t.get('pomodorosSpent') or 0,
                    'scheduled_date': today,
                    'completed_at': datetime.now().isoformat(timespec='seconds') if t.get('completed') else None,
                } for t in legacy]
                result = self.store.insert('tasks', self.user_id, rows)
                if result.ok:
                    logger.info("Imported %d local tasks for user %s", len(rows), self.user_id)
                else:
                    logger.error("Local task import failed: %s", result.error)

            stats = json.loads(raw_stats) if raw_stats else None
            if stats and stats.get('date') == today:
                result = self.store.upsert('daily_stats', self.user_id, {
                    'date': today,
                    'total_focus_minutes': stats.get('totalFocusMinutes') or 0,
                    'sessions_completed': stats.get('sessionsToday') or 0,
                })
                if not result.ok:
                    logger.error("Local stats import failed: %s", result.error)
        except (ValueError, TypeError, KeyError) as exc:
            logger.error("Migration error: %s", exc)
        finally:
            self.local_storage.remove_item(LEGACY_TASKS_KEY)
            self.local_storage.remove_item(LEGACY_STATS_KEY)

    # -- tasks ---------------------------------------------------------

    def add_task(self, text, section_id=None):
        text = (text or "").strip()
        if not text or not self.user_id:
            return None
        values = {'text': text, 'scheduled_date': self.selected_date}
        if section_id is not None:
            values['section_id'] = section_id
        if self.supports_task_order:
            values['sort_order'] = max((t.sort_order for t in self.tasks), default=-1) + 1

        result = self.store.insert('tasks', self.user_id, values)
        if not result.ok and 'sort_order' in values and 'sort_order' in result.error:
            logger.warning("Insert rejected sort_order; disabling task ordering for this session")
            self.supports_task_order = False
            del values['sort_order']
            result = self.store.insert('tasks', self.user_id, values)
        if not result.ok:
            self._fail("add task", result.error)
            return None

        task = Task.from_row(result.data[0])
        self.tasks.append(task)
        self._adjust_counts(self.selected_date, total=1)
        return task

    def toggle_task(self, task_id):
        task = self.find_task(task_id)
        if not task or not self.user_id:
            return None
        now_completed = not task.completed
        completed_at = datetime.now().isoformat(timespec='seconds') if now_completed else None
        result = self.store.update('tasks', self.user_id,
                                   {'completed': now_completed, 'completed_at': completed_at},
                                   eq={'id': task_id})
        self._record(task, result, "update task")
        task.completed = now_completed
        task.completed_at = completed_at
        self._adjust_counts(task.scheduled_date, completed=1 if now_completed else -1)
        return task

    def delete_task(self, task_id):
        if not self.user_id:
            return
        task = self.find_task(task_id)
        result = self.store.delete('tasks', self.user_id, eq={'id': task_id})
        if not result.ok:
            self._fail("delete task", result.error)
        self.tasks = [t for t in self.tasks if t.id != task_id]
        if task:
            self._adjust_counts(task.scheduled_date, total=-1, completed=-1 if task.completed else 0)

    def reorder_tasks(self, from_index, to_index):
        if not self.user_id or not self.supports_task_order:
            return False
        reordered = move_item(self.tasks, from_index, to_index)
        if reordered is None:
            return False
        for position, task in enumerate(reordered):
            task.sort_order = position
        self.tasks = reordered
        for task in reordered:
            result = self.store.update('tasks', self.user_id, {'sort_order': task.sort_order},
                                       eq={'id': task.id})
            self._record(task, result, "reorder tasks")
        return True

    def rename_task(self, task_id, text):
        text = (text or "").strip()
        task = self.find_task(task_id)
        if not text or not task or not self.user_id:
            return None
        result = self.store.update('tasks', self.user_id, {'text': text}, eq={'id': task_id})
        self._record(task, result, "rename task")
        task.text = text
        return task

    def update_task_description(self, task_id, description):
        task = self.find_task(task_id)
        if not task or not self.user_id:
            return None
        result = self.store.update('tasks', self.user_id, {'description': description},
                                   eq={'id': task_id})
        self._record(task, result, "save notes")
        task.description = description
        return task

    def update_task_section(self, task_id, section_id):
        task = self.find_task(task_id)
        if not task or not self.user_id:
            return None
        result = self.store.update('tasks', self.user_id, {'section_id': section_id},
                                   eq={'id': task_id})
        self._record(task, result, "move task")
        task.section_id = section_id
        return task

    def reschedule_task(self, task_id, new_date):
        new_date = _iso(new_date)
        task = self.find_task(task_id)
        if not task or not self.user_id or new_date == task.scheduled_date:
            return None
        result = self.store.update('tasks', self.user_id, {'scheduled_date': new_date},
                                   eq={'id': task_id})
        self._record(task, result, "reschedule task")
        source = task.scheduled_date
        task.scheduled_date = new_date
        self.tasks = [t for t in self.tasks if t.id != task_id]
        self._transfer_counts(source, new_date, 1, 1 if task.completed else 0)
        return task

    # -- sections ------------------------------------------------------

    def add_section(self, name):
        name = (name or "").strip()
        if not name or not self.user_id:
            return None
        values = {'name': name}
        if self.supports_section_order:
            values['sort_order'] = max((s.sort_order for s in self.sections), default=-1) + 1
        result = self.store.insert('sections', self.user_id, values)
        if not result.ok:
            self._fail("add section", result.error)
            return None
        section = Section.from_row(result.data[0])
        self.sections.append(section)
        return section.id

    def rename_section(self, section_id, name):
        name = (name or "").strip()
        section = self.find_section(section_id)
        if not name or not section or not self.user_id:
            return None
        result = self.store.update('sections', self.user_id, {'name': name}, eq={'id': section_id})
        self._record(section, result, "rename section")
        section.name = name
        return section

    def update_section_color(self, section_id, color):
        section = self.find_section(section_id)
        if not section or not self.user_id:
            return None
        result = self.store.update('sections', self.user_id, {'color': color}, eq={'id': section_id})
        self._record(section, result, "update section color")
        section.color = color
        return section

    def delete_section(self, section_id):
        if not self.user_id:
            return
        result = self.store.delete('sections', self.user_id, eq={'id': section_id})
        if not result.ok:
            self._fail("delete section", result.error)
        self.sections = [s for s in self.sections if s.id != section_id]
        # the database detaches these rows itself (ON DELETE SET NULL)
        for task in self.tasks:
            if task.section_id == section_id:
                task.section_id = None

    def reorder_sections(self, from_index, to_index):
        if not self.user_id or not self.supports_section_order:
            return False
        reordered = move_item(self.sections, from_index, to_index)
        if reordered is None:
            return False
        for position, section in enumerate(reordered):
            section.sort_order = position
        self.sections = reordered
        for section in reordered:
            result = self.store.update('sections', self.user_id, {'sort_order': section.sort_order},
                                       eq={'id': section.id})
            self._record(section, result, "reorder sections")
        return True

    # -- carry forward / reschedule prompts ----------------------------

    def check_plan_my_day(self):
        today = self.today()
        if not self.user_id or self.selected_date != today:
            return
        if self.session_storage.get_item(PLANNED_TODAY_KEY) == today:
            return
        result = self.store.select('tasks', self.user_id,
                                   eq={'scheduled_date': self.yesterday(), 'completed': False},
                                   order_by=['sort_order', 'id'])
        if not result.ok:
            logger.warning("Could not load yesterday's tasks: %s", result.error)
            return
        self.plan_tasks = [Task.from_row(row) for row in result.data]
        if self.plan_tasks:
            logger.info("%d incomplete task(s) from yesterday to plan", len(self.plan_tasks))

    def _move_to(self, tasks, source, target, action):
        """Move still-incomplete ``tasks`` from ``source`` to ``target``.

        Only rows the store actually moved are transferred in the tallies.
        """
        ids = list(dict.fromkeys(t.id for t in tasks))
        if not ids:
            return 0
        result = self.store.update('tasks', self.user_id, {'scheduled_date': target},
                                   eq={'scheduled_date': source, 'completed': False}, in_={'id': ids})
        if not result.ok:
            self._fail(action, result.error)
            return 0
        self._transfer_counts(source, target, result.count)
        return result.count

    def carry_forward(self, ids):
        wanted = set(ids or [])
        tasks = [t for t in self.plan_tasks if t.id in wanted]
        if not self.user_id or not tasks:
            return
        today = self.today()
        self._move_to(tasks, self.yesterday(), today, "carry tasks forward")
        self.session_storage.set_item(PLANNED_TODAY_KEY, today)
        self.plan_tasks = []
        if self.selected_date == today:
            self.fetch_tasks()

    def dismiss_plan(self):
        self.session_storage.set_item(PLANNED_TODAY_KEY, self.today())
        self.plan_tasks = []

    def move_to_today(self):
        prompt = self.reschedule_prompt
        if not self.user_id or not prompt:
            return
        today = self.today()
        self._move_to(prompt['tasks'], prompt['date'], today, "move tasks to today")
        self.reschedule_prompt = None
        if self.selected_date == today:
            self.fetch_tasks()

    def dismiss_reschedule(self):
        self.reschedule_prompt = None

    # -- focus sessions ------------------------------------------------

    def on_focus_complete(self):
        if not self.user_id:
            return
        self.stats = Stats(
            total_focus_minutes=self.stats.total_focus_minutes + self.focus_minutes,
            sessions_completed=self.stats.sessions_completed + 1,
        )
        result = self.store.upsert('daily_stats', self.user_id, {
            'date': self.selected_date,
            'total_focus_minutes': self.stats.total_focus_minutes,
            'sessions_completed': self.stats.sessions_completed,
        })
        if not result.ok:
            self._fail("save focus stats", result.error)

        task = next((t for t in self.tasks if not t.completed), None)
        if task:
            spent = task.pomodoros_spent + 1
            result = self.store.update('tasks', self.user_id, {'pomodoros_spent': spent},
                                       eq={'id': task.id})
            self._record(task, result, "credit focus session")
            task.pomodoros_spent = spent
        self.fetch_streak()

    # -- profile -------------------------------------------------------

    def save_name(self, first_name, last_name):
        first = (first_name or "").strip()
        last = (last_name or "").strip()
        if not first or not last:
            return False
        return self._update_profile({'full_name': f"{first} {last}", 'display_name': first})

    def rename_user(self, full_name):
        full_name = (full_name or "").strip()
        if not full_name:
            return False
        return self._update_profile({'full_name': full_name, 'display_name': full_name.split(' ')[0]})

    def _update_profile(self, data):
        if not self.user_id:
            return False
        try:
            self.session.provider.update_user(self.user_id, data)
        except AuthError as exc:
            self._fail("save name", str(exc))
            return False
        self.needs_name = False
        self.reload()
        return True

    # -- view model ----------------------------------------------------

    def snapshot(self):
        prompt = self.reschedule_prompt
        return {
            'user': self.session.user,
            'display_name': self.display_name,
            'loading': self.loading or self.session.loading,
            'error': self.error,
            'selected_date': self.selected_date,
            'is_today': self.selected_date == self.today(),
            'tasks': [asdict(t) for t in self.tasks],
            'sections': [asdict(s) for s in self.sections],
            'stats': asdict(self.stats),
            'task_counts': {day: asdict(c) for day, c in self.task_counts.items()},
            'streak': badge(self.streak),
            'plan_tasks': [asdict(t) for t in self.plan_tasks],
            'reschedule_prompt': {
                'date': prompt['date'],
                'task_count': len(prompt['tasks']),
                'tasks': [asdict(t) for t in prompt['tasks']],
            } if prompt else None,
            'needs_name': self.needs_name,
            'supports_task_order': self.supports_task_order,
        }
