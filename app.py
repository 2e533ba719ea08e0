import io
import logging
import secrets
import threading
from datetime import datetime
from functools import wraps

from flask import Blueprint, Flask, current_app, has_app_context, jsonify, make_response, request, send_file, session

from auth import AuthError, AuthProvider, SessionHolder
from calendar_view import CalendarView
from dashboard import DashboardController
from interval import Interval
from models import db
from reports import build_focus_report, collect_report_rows
from storage import BrowserStorage
from store import Store
from task_list import TaskListView
from timer import DURATIONS, FOCUS, FocusTimer

logger = logging.getLogger(__name__)

bp = Blueprint('dashboard', __name__)

# browser session id -> Browser
BROWSERS = {}


def in_app_context(app, lock, func):
    """Wrap ``func`` so timer threads can reach the database.

    ``lock`` is the owning browser's lock; requests hold the same one.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        with lock:
            if has_app_context():
                return func(*args, **kwargs)
            with app.app_context():
                return func(*args, **kwargs)
    return wrapper


class Browser:
    """Everything one signed-in browser owns: identity, storage and views."""

    def __init__(self, app, local_items=None, session_items=None):
        self.app = app
        self.lock = threading.RLock()
        self.local_storage = BrowserStorage(local_items)
        self.session_storage = BrowserStorage(session_items)
        self.provider = AuthProvider()
        self.session = SessionHolder(self.provider)
        self.controller = DashboardController(Store(), self.session, self.local_storage,
                                              self.session_storage,
                                              focus_minutes=app.config['FOCUS_MINUTES'])
        self.list_view = TaskListView(self.controller, self.local_storage)
        self.calendar = CalendarView(
            selected_date=self.controller.selected_date,
            on_select_date=self.controller.select_date,
            on_month_change=self.controller.fetch_task_counts,
            on_drop_task=self.controller.reschedule_task,
            interval_factory=self.make_interval,
        )
        self.timer = FocusTimer(on_focus_complete=self.controller.on_focus_complete,
                                interval_factory=self.make_interval)

    def make_interval(self, seconds, callback):
        return Interval(seconds, in_app_context(self.app, self.lock, callback))

    def sync_calendar(self):
        # a reload puts the controller back on today
        selected = self.controller.selected_date
        if self.calendar.selected_date.isoformat() != selected:
            self.calendar.selected_date = datetime.strptime(selected, '%Y-%m-%d').date()
            self.calendar.year = self.calendar.selected_date.year
            self.calendar.month = self.calendar.selected_date.month

    def view(self):
        self.sync_calendar()
        data = self.controller.snapshot()
        data['calendar'] = self.calendar.state(self.controller.task_counts)
        data['list'] = self.list_view.state()
        data['timer'] = self.timer.state()
        data['local_storage'] = self.local_storage.to_dict()
        data['session_storage'] = self.session_storage.to_dict()
        return data

    def close(self):
        with self.lock:
            self.timer.close()
            self.calendar.close()
            self.session.close()


def current_browser():
    browser = BROWSERS.get(session.get('sid'))
    if browser is None or browser.session.user is None:
        return None
    return browser


def signed_in(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        browser = current_browser()
        if browser is None:
            return jsonify({'error': 'Not signed in'}), 401
        with browser.lock:
            return view(browser, *args, **kwargs)
    return wrapper


def payload():
    return request.get_json(silent=True) or {}


def dashboard_response(browser):
    response = make_response(jsonify(browser.view()))
    response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'
    return response


# -- auth ----------------------------------------------------------------

@bp.route('/auth/signin', methods=['POST'])
def sign_in():
    data = payload()
    email = data.get('email')
    if not email:
        return jsonify({'error': 'Missing email'}), 400

    previous = BROWSERS.pop(session.get('sid'), None)
    if previous:
        previous.close()

    browser = Browser(current_app._get_current_object(), data.get('local_storage'), data.get('session_storage'))
    try:
        browser.provider.sign_in(email)
    except AuthError as exc:
        browser.close()
        return jsonify({'error': str(exc)}), 400

    sid = secrets.token_hex(16)
    session['sid'] = sid
    BROWSERS[sid] = browser
    current_app.logger.info("Signed in user %s", browser.session.user_id)
    return dashboard_response(browser)


@bp.route('/auth/signout', methods=['POST'])
def sign_out():
    browser = BROWSERS.pop(session.pop('sid', None), None)
    if browser:
        browser.provider.sign_out()
        browser.close()
    return jsonify({'status': 'success'})


@bp.route('/')
@bp.route('/api/dashboard')
@signed_in
def dashboard(browser):
    return dashboard_response(browser)


# -- date & calendar -----------------------------------------------------

@bp.route('/api/date/select', methods=['POST'])
@signed_in
def select_date(browser):
    value = payload().get('date')
    if not value:
        return jsonify({'error': 'Missing date'}), 400
    try:
        browser.calendar.select_date(value)
    except (TypeError, ValueError):
        return jsonify({'error': 'Invalid date'}), 400
    return dashboard_response(browser)


@bp.route('/api/calendar/month', methods=['POST'])
@signed_in
def calendar_month(browser):
    action = payload().get('action')
    actions = {
        'prev': browser.calendar.prev_month,
        'next': browser.calendar.next_month,
        'today': browser.calendar.go_today,
    }
    if action not in actions:
        return jsonify({'error': 'Invalid action'}), 400
    actions[action]()
    return dashboard_response(browser)


@bp.route('/api/calendar/key', methods=['POST'])
@signed_in
def calendar_key(browser):
    browser.calendar.handle_key(payload().get('key'))
    return dashboard_response(browser)


@bp.route('/api/calendar/jump', methods=['POST'])
@signed_in
def calendar_jump(browser):
    data = payload()
    try:
        browser.calendar.jump_to(data.get('year'), data.get('month'), data.get('day'))
    except (TypeError, ValueError):
        return jsonify({'error': 'Invalid date'}), 400
    return dashboard_response(browser)


@bp.route('/api/calendar/drag', methods=['POST'])
@signed_in
def calendar_drag(browser):
    try:
        direction = int(payload().get('direction') or 0)
    except (TypeError, ValueError):
        return jsonify({'error': 'Invalid direction'}), 400
    if direction:
        browser.calendar.drag_enter_nav(direction)
    else:
        browser.calendar.drag_leave_nav()
    return dashboard_response(browser)


@bp.route('/api/calendar/drop', methods=['POST'])
@signed_in
def calendar_drop(browser):
    data = payload()
    task_id = data.get('task_id')
    if task_id is None or not data.get('date'):
        return jsonify({'error': 'Missing data'}), 400
    if browser.controller.find_task(task_id) is None:
        browser.calendar.drag_leave_nav()
        return jsonify({'error': 'Task not found'}), 404
    try:
        browser.calendar.drop_task(task_id, data['date'])
    except ValueError:
        return jsonify({'error': 'Invalid date'}), 400
    return dashboard_response(browser)


# -- tasks ---------------------------------------------------------------

@bp.route('/api/task/add', methods=['POST'])
@signed_in
def add_task(browser):
    data = payload()
    if not (data.get('text') or '').strip():
        return jsonify({'error': 'Missing data'}), 400
    section = data.get('section')
    section = '' if section is None else str(section)
    browser.list_view.submit_task(data['text'], section, data.get('new_section_name'))
    return dashboard_response(browser)


@bp.route('/api/task/toggle', methods=['POST'])
@signed_in
def toggle_task(browser):
    if browser.controller.toggle_task(payload().get('task_id')) is None:
        return jsonify({'error': 'Task not found'}), 404
    return dashboard_response(browser)


@bp.route('/api/task/delete', methods=['POST'])
@signed_in
def delete_task(browser):
    task_id = payload().get('task_id')
    if browser.controller.find_task(task_id) is None:
        return jsonify({'error': 'Task not found'}), 404
    browser.controller.delete_task(task_id)
    return dashboard_response(browser)


@bp.route('/api/task/reorder', methods=['POST'])
@signed_in
def reorder_tasks(browser):
    data = payload()
    browser.list_view.drag_start(data.get('from_index'))
    if not browser.list_view.drop(data.get('to_index')):
        return jsonify({'error': 'Cannot reorder'}), 400
    return dashboard_response(browser)


@bp.route('/api/task/rename', methods=['POST'])
@signed_in
def rename_task(browser):
    data = payload()
    browser.list_view.start_edit(data.get('task_id'))
    if browser.list_view.commit_edit(data.get('text')) is None:
        return jsonify({'error': 'Task not found'}), 404
    return dashboard_response(browser)


@bp.route('/api/task/description', methods=['POST'])
@signed_in
def update_description(browser):
    data = payload()
    if browser.list_view.save_notes(data.get('task_id'), data.get('description') or '') is None:
        return jsonify({'error': 'Task not found'}), 404
    return dashboard_response(browser)


@bp.route('/api/task/section', methods=['POST'])
@signed_in
def update_task_section(browser):
    data = payload()
    task_id = data.get('task_id')
    if browser.controller.find_task(task_id) is None:
        return jsonify({'error': 'Task not found'}), 404
    browser.list_view.drop_on_section(task_id, data.get('section_id'))
    return dashboard_response(browser)


@bp.route('/api/task/reschedule', methods=['POST'])
@signed_in
def reschedule_task(browser):
    data = payload()
    if browser.controller.find_task(data.get('task_id')) is None:
        return jsonify({'error': 'Task not found'}), 404
    try:
        browser.controller.reschedule_task(data['task_id'], data.get('date'))
    except (TypeError, ValueError):
        return jsonify({'error': 'Invalid date'}), 400
    return dashboard_response(browser)


# -- sections ------------------------------------------------------------

@bp.route('/api/section/add', methods=['POST'])
@signed_in
def add_section(browser):
    section_id = browser.controller.add_section(payload().get('name'))
    if section_id is None and not browser.controller.error:
        return jsonify({'error': 'Missing data'}), 400
    return dashboard_response(browser)


@bp.route('/api/section/rename', methods=['POST'])
@signed_in
def rename_section(browser):
    data = payload()
    browser.list_view.start_section_rename(data.get('section_id'))
    if browser.list_view.commit_section_rename(data.get('name')) is None:
        return jsonify({'error': 'Section not found'}), 404
    return dashboard_response(browser)


@bp.route('/api/section/color', methods=['POST'])
@signed_in
def section_color(browser):
    data = payload()
    browser.list_view.open_color_picker(data.get('section_id'))
    if browser.list_view.pick_color(data.get('color')) is None:
        return jsonify({'error': 'Section not found'}), 404
    return dashboard_response(browser)


@bp.route('/api/section/delete', methods=['POST'])
@signed_in
def delete_section(browser):
    section_id = payload().get('section_id')
    if browser.controller.find_section(section_id) is None:
        return jsonify({'error': 'Section not found'}), 404
    browser.controller.delete_section(section_id)
    return dashboard_response(browser)


@bp.route('/api/section/reorder', methods=['POST'])
@signed_in
def reorder_sections(browser):
    data = payload()
    browser.list_view.section_drag_start(data.get('from_index'))
    if not browser.list_view.section_drop(data.get('to_index')):
        return jsonify({'error': 'Cannot reorder'}), 400
    return dashboard_response(browser)


@bp.route('/api/section/collapse', methods=['POST'])
@signed_in
def collapse_section(browser):
    browser.list_view.toggle_collapse(payload().get('key'))
    return dashboard_response(browser)


@bp.route('/api/preferences/uncategorized', methods=['POST'])
@signed_in
def uncategorized_name(browser):
    browser.list_view.set_uncategorized_name(payload().get('name'))
    return dashboard_response(browser)


# -- prompts -------------------------------------------------------------

@bp.route('/api/plan/carry', methods=['POST'])
@signed_in
def carry_forward(browser):
    browser.controller.carry_forward(payload().get('task_ids') or [])
    return dashboard_response(browser)


@bp.route('/api/plan/dismiss', methods=['POST'])
@signed_in
def dismiss_plan(browser):
    browser.controller.dismiss_plan()
    return dashboard_response(browser)


@bp.route('/api/reschedule/move', methods=['POST'])
@signed_in
def move_to_today(browser):
    browser.controller.move_to_today()
    return dashboard_response(browser)


@bp.route('/api/reschedule/dismiss', methods=['POST'])
@signed_in
def dismiss_reschedule(browser):
    browser.controller.dismiss_reschedule()
    return dashboard_response(browser)


@bp.route('/api/error/dismiss', methods=['POST'])
@signed_in
def dismiss_error(browser):
    browser.controller.dismiss_error()
    return dashboard_response(browser)


# -- profile -------------------------------------------------------------

@bp.route('/api/profile/name', methods=['POST'])
@signed_in
def save_name(browser):
    data = payload()
    if not browser.controller.save_name(data.get('first_name'), data.get('last_name')):
        return jsonify({'error': 'First and last name are required'}), 400
    return dashboard_response(browser)


@bp.route('/api/profile/rename', methods=['POST'])
@signed_in
def rename_user(browser):
    browser.controller.rename_user(payload().get('full_name'))
    return dashboard_response(browser)


# -- timer ---------------------------------------------------------------

@bp.route('/api/timer')
@signed_in
def timer_state(browser):
    return jsonify(browser.timer.state())


@bp.route('/api/timer/mode', methods=['POST'])
@signed_in
def timer_mode(browser):
    try:
        browser.timer.switch_mode(payload().get('mode'))
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    return jsonify(browser.timer.state())


@bp.route('/api/timer/toggle', methods=['POST'])
@signed_in
def timer_toggle(browser):
    browser.timer.toggle()
    return jsonify(browser.timer.state())


@bp.route('/api/timer/reset', methods=['POST'])
@signed_in
def timer_reset(browser):
    browser.timer.reset()
    return jsonify(browser.timer.state())


@bp.route('/api/timer/key', methods=['POST'])
@signed_in
def timer_key(browser):
    data = payload()
    browser.timer.handle_key(data.get('code'), data.get('target'))
    return jsonify(browser.timer.state())


# -- reports -------------------------------------------------------------

@bp.route('/reports/pdf', methods=['POST'])
@signed_in
def reports_pdf(browser):
    start_str = request.form.get('date_start')
    end_str = request.form.get('date_end')
    reporter_name = request.form.get('reporter_name') or browser.controller.display_name

    if not start_str or not end_str:
        return jsonify({'error': 'Missing date range'}), 400

    try:
        start_date = datetime.strptime(start_str, '%Y-%m-%d').date()
        end_date = datetime.strptime(end_str, '%Y-%m-%d').date()
    except ValueError:
        return jsonify({'error': 'Invalid date range'}), 400

    if end_date < start_date:
        start_date, end_date = end_date, start_date

    try:
        rows = collect_report_rows(browser.controller.store, browser.session.user_id,
                                   start_date.isoformat(), end_date.isoformat())
    except ValueError as exc:
        current_app.logger.error("Report query failed: %s", exc)
        return jsonify({'error': str(exc)}), 500

    pdf_stream = io.BytesIO(build_focus_report(rows, start_date.isoformat(), end_date.isoformat(),
                                               reporter_name))
    pdf_stream.seek(0)
    filename = f"focus_{start_date.isoformat()}_{end_date.isoformat()}.pdf"
    return send_file(pdf_stream, mimetype='application/pdf', as_attachment=True, download_name=filename)


def create_app(config=None):
    app = Flask(__name__)
    app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///dashboard.db'
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = secrets.token_hex(32)
    app.config['FOCUS_MINUTES'] = DURATIONS[FOCUS] // 60
    app.config.from_prefixed_env('DASHBOARD')
    if config:
        app.config.update(config)

    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.register_blueprint(bp)
    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    create_app().run(debug=True)
