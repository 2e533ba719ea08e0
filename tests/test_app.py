import threading

import pytest
from flask import has_app_context

from app import BROWSERS, Browser


@pytest.fixture
def signed_in(client):
    response = client.post('/auth/signin', json={'email': 'ada@example.com'})
    assert response.status_code == 200
    return response.get_json()


def test_dashboard_requires_sign_in(client):
    assert client.get('/api/dashboard').status_code == 401
    assert client.post('/api/task/add', json={'text': 'x'}).status_code == 401


def test_sign_in_requires_email(client):
    response = client.post('/auth/signin', json={})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Missing email'


def test_sign_in_returns_dashboard(signed_in):
    assert signed_in['user']['email'] == 'ada@example.com'
    assert signed_in['needs_name'] is True
    assert signed_in['timer']['display'] == '25:00'
    assert len(signed_in['calendar']['cells']) == 42
    assert signed_in['list']['heading'] == 'Today'


def test_sign_in_imports_local_snapshot(client):
    response = client.post('/auth/signin', json={
        'email': 'ada@example.com',
        'local_storage': {'pomo-tasks': '[{"text": "from the browser"}]'},
    })
    data = response.get_json()
    assert [t['text'] for t in data['tasks']] == ['from the browser']
    assert 'pomo-tasks' not in data['local_storage']


def test_task_lifecycle(client, signed_in):
    data = client.post('/api/task/add', json={'text': 'Write report'}).get_json()
    task_id = data['tasks'][0]['id']
    assert data['task_counts'][data['selected_date']] == {'total': 1, 'completed': 0}

    data = client.post('/api/task/toggle', json={'task_id': task_id}).get_json()
    assert data['tasks'][0]['completed'] is True

    data = client.post('/api/task/rename', json={'task_id': task_id, 'text': 'Write final report'}).get_json()
    assert data['tasks'][0]['text'] == 'Write final report'

    data = client.post('/api/task/delete', json={'task_id': task_id}).get_json()
    assert data['tasks'] == []
    assert client.post('/api/task/toggle', json={'task_id': task_id}).status_code == 404


def test_add_task_rejects_blank_text(client, signed_in):
    assert client.post('/api/task/add', json={'text': '   '}).status_code == 400


def test_add_task_with_new_section(client, signed_in):
    data = client.post('/api/task/add', json={
        'text': 'Write report', 'section': '__new__', 'new_section_name': 'Work'}).get_json()
    assert data['sections'][0]['name'] == 'Work'
    assert data['tasks'][0]['section_id'] == data['sections'][0]['id']


def test_select_date(client, signed_in):
    assert client.post('/api/date/select', json={}).status_code == 400
    assert client.post('/api/date/select', json={'date': 'soon'}).status_code == 400
    data = client.post('/api/date/select', json={'date': '2020-02-03'}).get_json()
    assert data['selected_date'] == '2020-02-03'
    assert data['calendar']['month_label'] == 'February 2020'
    assert data['is_today'] is False


def test_calendar_navigation(client, signed_in):
    label = signed_in['calendar']['month_label']
    client.post('/api/calendar/month', json={'action': 'next'})
    data = client.post('/api/calendar/month', json={'action': 'today'}).get_json()
    assert data['calendar']['month_label'] == label
    assert client.post('/api/calendar/month', json={'action': 'sideways'}).status_code == 400


def test_drop_task_on_calendar_reschedules(client, signed_in):
    data = client.post('/api/task/add', json={'text': 'Write report'}).get_json()
    task_id = data['tasks'][0]['id']
    data = client.post('/api/calendar/drop', json={'task_id': task_id, 'date': '2030-01-02'}).get_json()
    assert data['tasks'] == []
    assert data['task_counts']['2030-01-02'] == {'total': 1, 'completed': 0}
    assert client.post('/api/calendar/drop', json={'task_id': 999, 'date': '2030-01-02'}).status_code == 404


def test_profile_name(client, signed_in):
    assert client.post('/api/profile/name', json={'first_name': 'Ada'}).status_code == 400
    data = client.post('/api/profile/name', json={'first_name': 'Ada', 'last_name': 'Lovelace'}).get_json()
    assert data['needs_name'] is False
    assert data['display_name'] == 'Ada'


def test_timer_routes(client, signed_in):
    state = client.post('/api/timer/mode', json={'mode': 'short_break'}).get_json()
    assert state['display'] == '05:00'
    assert client.post('/api/timer/mode', json={'mode': 'nap'}).status_code == 400

    state = client.post('/api/timer/toggle').get_json()
    assert state['running'] is True
    state = client.post('/api/timer/key', json={'code': 'KeyR'}).get_json()
    assert state['running'] is False
    assert state['display'] == '05:00'


def test_reports_pdf(client, signed_in):
    client.post('/api/task/add', json={'text': 'Write report'})
    response = client.post('/reports/pdf', data={'date_start': '2030-01-31', 'date_end': '2000-01-01'})
    assert response.status_code == 200
    assert response.mimetype == 'application/pdf'
    assert response.data.startswith(b'%PDF')
    assert 'focus_2000-01-01_2030-01-31.pdf' in response.headers['Content-Disposition']


def test_reports_pdf_requires_range(client, signed_in):
    assert client.post('/reports/pdf', data={'date_start': '2024-06-01'}).status_code == 400


def test_sign_out(client, signed_in):
    assert client.post('/auth/signout').get_json() == {'status': 'success'}
    assert BROWSERS == {}
    assert client.get('/api/dashboard').status_code == 401


def test_reschedule_to_same_date_keeps_task(client, signed_in):
    data = client.post('/api/task/add', json={'text': 'Write report'}).get_json()
    task_id = data['tasks'][0]['id']
    response = client.post('/api/task/reschedule', json={'task_id': task_id, 'date': data['selected_date']})
    assert response.status_code == 200
    assert [t['id'] for t in response.get_json()['tasks']] == [task_id]
    assert client.post('/api/task/reschedule', json={'task_id': 999, 'date': '2030-01-02'}).status_code == 404


def test_interval_callbacks_wait_for_browser_lock(app):
    browser = Browser(app)
    seen = []
    interval = browser.make_interval(60, lambda: seen.append(has_app_context()))
    worker = threading.Thread(target=interval.callback)
    try:
        with browser.lock:
            worker.start()
            worker.join(0.2)
            assert worker.is_alive()
            assert seen == []
        worker.join(5)
        assert seen == [True]
    finally:
        browser.close()
