from models import Task, User, db
from store import Store


def make_user(email):
    user = User(email=email)
    db.session.add(user)
    db.session.commit()
    return user.id


def test_insert_fills_defaults_and_returns_rows(store):
    uid = make_user('a@example.com')
    result = store.insert('tasks', uid, {'text': 'Write report', 'scheduled_date': '2024-06-15'})
    assert result.ok
    row = result.data[0]
    assert row['text'] == 'Write report'
    assert row['scheduled_date'] == '2024-06-15'
    assert row['completed'] is False
    assert row['pomodoros_spent'] == 0
    assert row['sort_order'] == 0
    assert row['user_id'] == uid


def test_select_is_scoped_to_user(store):
    alice = make_user('alice@example.com')
    bob = make_user('bob@example.com')
    store.insert('tasks', alice, {'text': 'mine', 'scheduled_date': '2024-06-15'})
    store.insert('tasks', bob, {'text': 'theirs', 'scheduled_date': '2024-06-15'})

    rows = store.select('tasks', alice, eq={'scheduled_date': '2024-06-15'}).data
    assert [r['text'] for r in rows] == ['mine']


def test_select_range_columns_and_order(store):
    uid = make_user('a@example.com')
    store.insert('tasks', uid, [
        {'text': 'a', 'scheduled_date': '2024-06-01'},
        {'text': 'b', 'scheduled_date': '2024-06-10'},
        {'text': 'c', 'scheduled_date': '2024-07-01'},
    ])
    result = store.select('tasks', uid, gte={'scheduled_date': '2024-06-01'},
                          lte={'scheduled_date': '2024-06-30'},
                          columns=['scheduled_date', 'text'], order_by=['-scheduled_date'])
    assert result.data == [
        {'scheduled_date': '2024-06-10', 'text': 'b'},
        {'scheduled_date': '2024-06-01', 'text': 'a'},
    ]


def test_update_by_ids_and_delete(store):
    uid = make_user('a@example.com')
    ids = [r['id'] for r in store.insert('tasks', uid, [
        {'text': 'a', 'scheduled_date': '2024-06-14'},
        {'text': 'b', 'scheduled_date': '2024-06-14'},
    ]).data]

    result = store.update('tasks', uid, {'scheduled_date': '2024-06-15'}, in_={'id': ids})
    assert result.count == 2
    assert {r['scheduled_date'] for r in result.data} == {'2024-06-15'}

    deleted = store.delete('tasks', uid, eq={'id': ids[0]})
    assert deleted.ok
    assert store.count('tasks', uid).count == 1


def test_update_of_another_users_row_touches_nothing(store):
    alice = make_user('alice@example.com')
    bob = make_user('bob@example.com')
    task_id = store.insert('tasks', alice, {'text': 'a', 'scheduled_date': '2024-06-15'}).data[0]['id']

    result = store.update('tasks', bob, {'text': 'hijacked'}, eq={'id': task_id})
    assert result.ok
    assert result.count == 0
    assert db.session.get(Task, task_id).text == 'a'


def test_completed_at_round_trips_as_iso_string(store):
    uid = make_user('a@example.com')
    task_id = store.insert('tasks', uid, {'text': 'a', 'scheduled_date': '2024-06-15'}).data[0]['id']
    row = store.update('tasks', uid, {'completed': True, 'completed_at': '2024-06-15T09:30:00'},
                       eq={'id': task_id}).data[0]
    assert row['completed'] is True
    assert row['completed_at'] == '2024-06-15T09:30:00'


def test_upsert_updates_existing_day(store):
    uid = make_user('a@example.com')
    store.upsert('daily_stats', uid, {'date': '2024-06-15', 'total_focus_minutes': 25, 'sessions_completed': 1})
    store.upsert('daily_stats', uid, {'date': '2024-06-15', 'total_focus_minutes': 50, 'sessions_completed': 2})

    rows = store.select('daily_stats', uid).data
    assert len(rows) == 1
    assert rows[0]['total_focus_minutes'] == 50
    assert rows[0]['sessions_completed'] == 2


def test_unknown_filter_column_is_an_error(store):
    uid = make_user('a@example.com')
    result = store.select('sections', uid, eq={'missing': 1})
    assert not result.ok
    assert result.error == 'column "missing" of relation "sections" does not exist'


def test_schema_probe_reports_missing_column(legacy_tasks_table):
    store = Store()
    assert not store.has_column('tasks', 'sort_order')
    assert store.has_column('tasks', 'text')
    assert store.has_column('sections', 'sort_order')


def test_writes_work_on_table_without_sort_order(legacy_tasks_table):
    store = Store()
    uid = make_user('a@example.com')

    inserted = store.insert('tasks', uid, {'text': 'legacy', 'scheduled_date': '2024-06-15'})
    assert inserted.ok
    assert 'sort_order' not in inserted.data[0]

    rejected = store.update('tasks', uid, {'sort_order': 3}, eq={'id': inserted.data[0]['id']})
    assert not rejected.ok
    assert 'sort_order' in rejected.error

    rows = store.select('tasks', uid, order_by=['sort_order', 'id']).data
    assert [r['text'] for r in rows] == ['legacy']
