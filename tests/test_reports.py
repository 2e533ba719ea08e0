from reports import build_focus_report, collect_report_rows, format_minutes, latin1


def test_format_minutes():
    assert format_minutes(125) == "2:05"
    assert format_minutes(0) == "0:00"
    assert format_minutes(None) == "--"


def test_latin1_replaces_unsupported_characters():
    assert latin1("Café") == "Café"
    assert latin1("focus ✅") == "focus ?"


def test_collect_report_rows(controller, user, store):
    uid = user['id']
    store.insert('tasks', uid, [
        {'text': 'report', 'scheduled_date': '2024-06-10', 'completed': True},
        {'text': 'review', 'scheduled_date': '2024-06-10'},
        {'text': 'outside', 'scheduled_date': '2024-07-01', 'completed': True},
    ])
    store.upsert('daily_stats', uid, {'date': '2024-06-12', 'total_focus_minutes': 75, 'sessions_completed': 3})

    rows = collect_report_rows(store, uid, '2024-06-01', '2024-06-30')
    assert [r['date_raw'] for r in rows] == ['2024-06-10', '2024-06-12']
    assert rows[0]['tasks'] == ['report']
    assert (rows[0]['tasks_done'], rows[0]['tasks_total']) == (1, 2)
    assert (rows[1]['focus_minutes'], rows[1]['sessions']) == (75, 3)


def test_build_focus_report():
    rows = [{
        'date_raw': '2024-06-10',
        'tasks': ['Write report'],
        'tasks_done': 1,
        'tasks_total': 2,
        'focus_minutes': 50,
        'sessions': 2,
    }]
    pdf = build_focus_report(rows, '2024-06-01', '2024-06-30', 'Ada Lovelace')
    assert pdf.startswith(b'%PDF')
    assert build_focus_report([], '2024-06-01', '2024-06-30').startswith(b'%PDF')
