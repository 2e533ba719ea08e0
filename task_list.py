"""Local state of the task/section list.

Nothing here talks to the store directly; intents are handed to the
dashboard controller. Indexes used for drag and drop are positions in the
controller's task (or section) list.
"""

from dataclasses import asdict
from datetime import date

from storage import DEFAULT_UNCATEGORIZED_NAME, UNCATEGORIZED_NAME_KEY

NEW_SECTION = "__new__"
UNCATEGORIZED = "uncategorized"

PRESET_COLORS = [
    "#bb9af7",  # purple
    "#7aa2f7",  # blue
    "#9ece6a",  # green
    "#f7768e",  # red
    "#ff9e64",  # orange
    "#e0af68",  # yellow
    "#f5c2e7",  # pink
    "#73daca",  # teal
]


def date_heading(selected, today):
    if selected == today:
        return "Today"
    day = date.fromisoformat(selected)
    return f"{day:%A, %B} {day.day}"


def section_key(section_id):
    return UNCATEGORIZED if section_id is None else str(section_id)


class TaskListView:
    def __init__(self, controller, local_storage):
        self.controller = controller
        self.local_storage = local_storage
        self.uncategorized_name = (local_storage.get_item(UNCATEGORIZED_NAME_KEY)
                                   or DEFAULT_UNCATEGORIZED_NAME)
        self.new_task_section = ""
        self.editing_task_id = None
        self.editing_text = ""
        self.expanded_task_id = None
        self.renaming_section_id = None
        self.renaming_section_text = ""
        self.color_picker_section_id = None
        self.collapsed = set()
        self.completed_open = True
        self.drag_index = None
        self.drag_over_index = None
        self.drag_section_index = None
        self.drag_over_section_index = None

    # -- adding --------------------------------------------------------

    def submit_task(self, text, section_choice="", new_section_name=None):
        text = (text or "").strip()
        if not text:
            return None
        if section_choice == NEW_SECTION:
            name = (new_section_name or "").strip()
            if not name:
                return None
            section_id = self.controller.add_section(name)
            if section_id is None:
                return None
            self.new_task_section = str(section_id)
            return self.controller.add_task(text, section_id)
        self.new_task_section = section_choice or ""
        section_id = int(section_choice) if section_choice else None
        return self.controller.add_task(text, section_id)

    # -- task editing --------------------------------------------------

    def start_edit(self, task_id):
        task = self.controller.find_task(task_id)
        if task:
            self.editing_task_id = task_id
            self.editing_text = task.text

    def commit_edit(self, text=None):
        if self.editing_task_id is None:
            return None
        text = self.editing_text if text is None else text
        task = self.controller.rename_task(self.editing_task_id, text)
        self.cancel_edit()
        return task

    def cancel_edit(self):
        self.editing_task_id = None
        self.editing_text = ""

    def toggle_notes(self, task_id):
        self.expanded_task_id = None if self.expanded_task_id == task_id else task_id

    def save_notes(self, task_id, html):
        return self.controller.update_task_description(task_id, html)

    # -- sections ------------------------------------------------------

    def start_section_rename(self, section_id):
        section = self.controller.find_section(section_id)
        if section:
            self.renaming_section_id = section_id
            self.renaming_section_text = section.name

    def commit_section_rename(self, name=None):
        if self.renaming_section_id is None:
            return None
        name = self.renaming_section_text if name is None else name
        section = self.controller.rename_section(self.renaming_section_id, name)
        self.cancel_section_rename()
        return section

    def cancel_section_rename(self):
        self.renaming_section_id = None
        self.renaming_section_text = ""

    def open_color_picker(self, section_id):
        self.color_picker_section_id = section_id

    def close_color_picker(self):
        self.color_picker_section_id = None

    def pick_color(self, color):
        section_id = self.color_picker_section_id
        self.close_color_picker()
        if section_id is None:
            return None
        return self.controller.update_section_color(section_id, color)

    def set_uncategorized_name(self, name):
        name = (name or "").strip() or DEFAULT_UNCATEGORIZED_NAME
        self.uncategorized_name = name
        self.local_storage.set_item(UNCATEGORIZED_NAME_KEY, name)
        return name

    def toggle_collapse(self, key):
        key = str(key)
        if key in self.collapsed:
            self.collapsed.discard(key)
        else:
            self.collapsed.add(key)

    def toggle_completed(self):
        self.completed_open = not self.completed_open

    # -- drag and drop -------------------------------------------------

    def drag_start(self, index):
        self.drag_index = index

    def drag_over(self, index):
        self.drag_over_index = index

    def drop(self, index=None):
        target = self.drag_over_index if index is None else index
        source = self.drag_index
        self.drag_end()
        if source is None or target is None or source == target:
            return False
        return self.controller.reorder_tasks(source, target)

    def drag_end(self):
        self.drag_index = None
        self.drag_over_index = None

    def section_drag_start(self, index):
        self.drag_section_index = index

    def section_drag_over(self, index):
        self.drag_over_section_index = index

    def section_drop(self, index=None):
        target = self.drag_over_section_index if index is None else index
        source = self.drag_section_index
        self.drag_section_index = None
        self.drag_over_section_index = None
        if source is None or target is None or source == target:
            return False
        return self.controller.reorder_sections(source, target)

    def drop_on_section(self, task_id, section_id):
        task = self.controller.find_task(task_id)
        if not task or task.section_id == section_id:
            return None
        return self.controller.update_task_section(task_id, section_id)

    # -- derived view --------------------------------------------------

    def progress(self):
        tasks = self.controller.tasks
        done = sum(1 for t in tasks if t.completed)
        total = len(tasks)
        return {
            'done': done,
            'total': total,
            'percent': round(done / total * 100) if total else 0,
        }

    def _task_view(self, index, task):
        view = asdict(task)
        view['index'] = index
        view['editing'] = task.id == self.editing_task_id
        view['expanded'] = task.id == self.expanded_task_id
        return view

    def groups(self):
        indexed = list(enumerate(self.controller.tasks))
        incomplete = [(i, t) for i, t in indexed if not t.completed]
        groups = [{
            'key': UNCATEGORIZED,
            'section_id': None,
            'name': self.uncategorized_name,
            'color': None,
            'collapsed': UNCATEGORIZED in self.collapsed,
            'tasks': [self._task_view(i, t) for i, t in incomplete if t.section_id is None],
        }]
        # only sections with at least one task on this date
        active = {t.section_id for _, t in indexed if t.section_id is not None}
        for section in self.controller.sections:
            if section.id not in active:
                continue
            key = section_key(section.id)
            groups.append({
                'key': key,
                'section_id': section.id,
                'name': section.name,
                'color': section.color,
                'collapsed': key in self.collapsed,
                'renaming': section.id == self.renaming_section_id,
                'tasks': [self._task_view(i, t) for i, t in incomplete if t.section_id == section.id],
            })
        return groups

    def state(self):
        controller = self.controller
        return {
            'heading': date_heading(controller.selected_date, controller.today()),
            'progress': self.progress(),
            'groups': self.groups(),
            'completed': [self._task_view(i, t) for i, t in enumerate(controller.tasks) if t.completed],
            'completed_open': self.completed_open,
            'section_choices': [{'value': "", 'label': self.uncategorized_name}]
            + [{'value': str(s.id), 'label': s.name} for s in controller.sections]
            + [{'value': NEW_SECTION, 'label': "+ New Section"}],
            'new_task_section': self.new_task_section,
            'color_picker_section_id': self.color_picker_section_id,
            'preset_colors': PRESET_COLORS,
            'uncategorized_name': self.uncategorized_name,
        }
