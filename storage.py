import json

LEGACY_TASKS_KEY = "pomo-tasks"
LEGACY_STATS_KEY = "pomo-stats"
PLANNED_TODAY_KEY = "pomo-planned-today"
UNCATEGORIZED_NAME_KEY = "pomo-uncategorized-name"

DEFAULT_UNCATEGORIZED_NAME = "Uncategorized"


class BrowserStorage:
    """String key/value storage mirroring what the browser keeps for us."""

    def __init__(self, items=None):
        self._items = {}
        for key, value in (items or {}).items():
            self.set_item(key, value)

    def get_item(self, key):
        return self._items.get(key)

    def set_item(self, key, value):
        if not isinstance(value, str):
            value = json.dumps(value)
        self._items[key] = value

    def remove_item(self, key):
        self._items.pop(key, None)

    def clear(self):
        self._items.clear()

    def to_dict(self):
        return dict(self._items)

    def __contains__(self, key):
        return key in self._items

    def __len__(self):
        return len(self._items)
