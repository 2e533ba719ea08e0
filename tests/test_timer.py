import pytest

from timer import CHIME, DURATIONS, FOCUS, LONG_BREAK, SHORT_BREAK, FocusTimer


@pytest.fixture
def events():
    return {'chimes': [], 'focus_done': 0}


@pytest.fixture
def timer(intervals, events):
    def on_focus_complete():
        events['focus_done'] += 1

    return FocusTimer(on_focus_complete=on_focus_complete, chime=events['chimes'].append,
                      interval_factory=intervals)


def test_initial_state(timer):
    state = timer.state()
    assert state['mode'] == FOCUS
    assert state['display'] == "25:00"
    assert state['button'] == "Start"
    assert state['progress'] == 0
    assert state['running'] is False


def test_toggle_counts_down_once_per_second(timer, intervals):
    timer.toggle()
    interval = intervals.created[-1]
    assert interval.seconds == 1
    assert timer.state()['button'] == "Pause"

    interval.fire(3)
    assert timer.remaining == DURATIONS[FOCUS] - 3
    assert timer.state()['display'] == "24:57"

    timer.toggle()
    assert not interval.active
    assert timer.running is False


def test_focus_completion_chimes_and_reports(timer, intervals, events):
    timer.toggle()
    timer.remaining = 2
    intervals.created[-1].fire(5)

    assert timer.remaining == 0
    assert timer.running is False
    assert events['chimes'] == [CHIME]
    assert events['focus_done'] == 1
    assert timer.state()['button'] == "Restart"
    assert timer.state()['progress'] == 1

    timer.toggle()
    assert timer.remaining == DURATIONS[FOCUS]
    assert timer.running is True


def test_break_completion_does_not_count_as_focus(timer, intervals, events):
    timer.switch_mode(SHORT_BREAK)
    timer.toggle()
    timer.remaining = 1
    intervals.created[-1].fire()

    assert events['chimes'] == [CHIME]
    assert events['focus_done'] == 0


def test_switch_mode_stops_and_resets(timer, intervals):
    timer.toggle()
    intervals.created[-1].fire(10)
    timer.switch_mode(LONG_BREAK)

    assert timer.running is False
    assert timer.remaining == DURATIONS[LONG_BREAK]
    assert timer.state()['label'] == "Long Break"
    with pytest.raises(ValueError):
        timer.switch_mode("nap")


def test_reset_keeps_mode(timer, intervals):
    timer.switch_mode(SHORT_BREAK)
    timer.toggle()
    intervals.created[-1].fire(30)
    timer.reset()
    assert timer.mode == SHORT_BREAK
    assert timer.remaining == DURATIONS[SHORT_BREAK]
    assert timer.running is False


def test_keyboard_shortcuts(timer):
    assert timer.handle_key("Space") is True
    assert timer.running is True
    assert timer.handle_key("KeyR") is True
    assert timer.running is False
    assert timer.handle_key("Space", "INPUT") is False
    assert timer.handle_key("Space", "textarea") is False
    assert timer.running is False
    assert timer.handle_key("KeyX") is False


def test_tick_without_running_is_ignored(timer):
    timer.tick()
    assert timer.remaining == DURATIONS[FOCUS]
