"""Focus / break countdown."""

import logging

from interval import Interval

logger = logging.getLogger(__name__)

FOCUS = "focus"
SHORT_BREAK = "short_break"
LONG_BREAK = "long_break"
MODES = (FOCUS, SHORT_BREAK, LONG_BREAK)

DURATIONS = {
    FOCUS: 25 * 60,
    SHORT_BREAK: 5 * 60,
    LONG_BREAK: 15 * 60,
}

MODE_LABELS = {
    FOCUS: "Focus",
    SHORT_BREAK: "Short Break",
    LONG_BREAK: "Long Break",
}

ACCENT = {
    FOCUS: "#bb9af7",
    SHORT_BREAK: "#9ece6a",
    LONG_BREAK: "#7aa2f7",
}

# (frequency Hz, start offset s, length s)
CHIME = ((800, 0.0, 0.8), (1000, 0.3, 0.8))

EDITABLE_TAGS = ("INPUT", "TEXTAREA")


def log_chime(tones):
    logger.info("Timer finished, chime %s", ", ".join(f"{hz}Hz" for hz, _, _ in tones))


class FocusTimer:
    def __init__(self, on_focus_complete=None, chime=log_chime, interval_factory=Interval):
        self.on_focus_complete = on_focus_complete
        self.chime = chime
        self.interval_factory = interval_factory
        self.mode = FOCUS
        self.remaining = DURATIONS[FOCUS]
        self.running = False
        self._interval = None

    @property
    def duration(self):
        return DURATIONS[self.mode]

    def switch_mode(self, mode):
        if mode not in MODES:
            raise ValueError(f"Unknown timer mode: {mode}")
        self._halt()
        self.mode = mode
        self.remaining = DURATIONS[mode]

    def toggle(self):
        if self.running:
            self._halt()
            return
        if self.remaining == 0:
            self.remaining = self.duration
        self.running = True
        self._interval = self.interval_factory(1, self.tick).start()

    def reset(self):
        self._halt()
        self.remaining = self.duration

    def tick(self):
        if not self.running:
            return
        if self.remaining <= 1:
            self.remaining = 0
            self._halt()
            self._finish()
            return
        self.remaining -= 1

    def handle_key(self, code, target_tag=None):
        if (target_tag or '').upper() in EDITABLE_TAGS:
            return False
        if code == "Space":
            self.toggle()
            return True
        if code == "KeyR":
            self.reset()
            return True
        return False

    def close(self):
        self._halt()

    def _halt(self):
        self.running = False
        if self._interval is not None:
            self._interval.cancel()
            self._interval = None

    def _finish(self):
        if self.chime:
            self.chime(CHIME)
        if self.mode == FOCUS and self.on_focus_complete:
            self.on_focus_complete()

    def state(self):
        minutes, seconds = divmod(self.remaining, 60)
        if self.running:
            button = "Pause"
        elif self.remaining == 0:
            button = "Restart"
        else:
            button = "Start"
        return {
            'mode': self.mode,
            'label': MODE_LABELS[self.mode],
            'accent': ACCENT[self.mode],
            'remaining': self.remaining,
            'display': f"{minutes:02d}:{seconds:02d}",
            'progress': round(1 - self.remaining / self.duration, 4),
            'running': self.running,
            'button': button,
        }
