"""Row-oriented persistence service used by the dashboard controller.

Every call is scoped to one user and answers with a :class:`Result` instead of
raising, so callers decide how to surface a failure. Rows are plain dicts;
dates and datetimes come back as ISO-8601 strings.
"""

import logging
from datetime import date, datetime

from sqlalchemy import Column, Date, DateTime, MetaData, Table, delete, func, inspect, insert, select, update
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from models import TABLES, db

logger = logging.getLogger(__name__)


class Result:
    def __init__(self, data=None, error=None, count=None):
        self.data = data
        self.error = error
        self.count = count

    @property
    def ok(self):
        return self.error is None

    def __repr__(self):
        if self.error:
            return f"<Result error={self.error!r}>"
        return f"<Result rows={len(self.data) if isinstance(self.data, list) else self.data!r}>"


def _serialize(row):
    out = {}
    for key, value in row.items():
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        out[key] = value
    return out


def _coerce(column, value):
    if not isinstance(value, str):
        return value
    if isinstance(column.type, DateTime):
        return datetime.fromisoformat(value.replace('Z', ''))
    if isinstance(column.type, Date):
        return date.fromisoformat(value[:10])
    return value


class Store:
    def __init__(self, session=None):
        self._session = session
        self._live_columns = {}
        self._write_tables = {}

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # -- schema probe --------------------------------------------------

    def live_columns(self, table_name):
        """Column names the database actually has for ``table_name``.

        Read once per table; the model may declare columns an older
        database never received.
        """
        if table_name not in self._live_columns:
            table = TABLES[table_name]
            try:
                columns = inspect(self.session.get_bind()).get_columns(table.name)
            except NoSuchTableError:
                columns = []
            self._live_columns[table_name] = {c['name'] for c in columns}
        return self._live_columns[table_name]

    def has_column(self, table_name, column):
        return column in self.live_columns(table_name)

    def forget_schema(self):
        self._live_columns.clear()
        self._write_tables.clear()

    # -- helpers -------------------------------------------------------

    def _missing(self, table_name, names):
        live = self.live_columns(table_name)
        for name in names:
            if name not in live:
                return f'column "{name}" of relation "{table_name}" does not exist'
        return None

    def _columns(self, table_name, names=None):
        table = TABLES[table_name]
        live = self.live_columns(table_name)
        wanted = names or [c.name for c in table.columns]
        return [table.c[name] for name in wanted if name in live]

    def _where(self, table, user_id, eq=None, gte=None, lte=None, in_=None):
        clauses = [table.c.user_id == user_id]
        for name, value in (eq or {}).items():
            column = table.c[name]
            if value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == _coerce(column, value))
        for name, value in (gte or {}).items():
            clauses.append(table.c[name] >= _coerce(table.c[name], value))
        for name, value in (lte or {}).items():
            clauses.append(table.c[name] <= _coerce(table.c[name], value))
        for name, values in (in_ or {}).items():
            column = table.c[name]
            clauses.append(column.in_([_coerce(column, v) for v in values]))
        return clauses

    def _filter_names(self, eq, gte, lte, in_):
        names = []
        for group in (eq, gte, lte, in_):
            names.extend((group or {}).keys())
        return names

    def _fail(self, action, table_name, exc):
        self.session.rollback()
        message = str(getattr(exc, 'orig', None) or exc)
        logger.warning("%s on %s failed: %s", action, table_name, message)
        return Result(error=message)

    def _write_table(self, table_name):
        """The model table cut down to the columns the database has.

        Writing through the full model table would also emit defaults for
        columns an older schema lacks.
        """
        if table_name not in self._write_tables:
            table = TABLES[table_name]
            live = self.live_columns(table_name)
            self._write_tables[table_name] = Table(
                table.name, MetaData(),
                *[Column(c.name, c.type, primary_key=c.primary_key) for c in table.columns if c.name in live])
        return self._write_tables[table_name]

    def _with_defaults(self, table_name, payload):
        live = self.live_columns(table_name)
        for column in TABLES[table_name].columns:
            default = column.default
            if column.name in payload or column.name not in live or default is None:
                continue
            if default.is_scalar:
                payload[column.name] = default.arg
            elif default.is_callable:
                payload[column.name] = default.arg(None)
        return payload

    def _fetch_ids(self, table_name, ids):
        table = TABLES[table_name]
        if not ids:
            return []
        stmt = select(*self._columns(table_name)).where(table.c.id.in_(ids)).order_by(table.c.id)
        return [_serialize(dict(r._mapping)) for r in self.session.execute(stmt)]

    # -- operations ----------------------------------------------------

    def select(self, table_name, user_id, eq=None, gte=None, lte=None, in_=None,
               columns=None, order_by=None):
        table = TABLES[table_name]
        error = self._missing(table_name, self._filter_names(eq, gte, lte, in_))
        if error:
            return Result(error=error)
        stmt = select(*self._columns(table_name, columns)).where(
            *self._where(table, user_id, eq, gte, lte, in_))
        live = self.live_columns(table_name)
        for name in order_by or ():
            descending = name.startswith('-')
            name = name.lstrip('-')
            if name not in live:
                continue
            stmt = stmt.order_by(table.c[name].desc() if descending else table.c[name])
        try:
            rows = [_serialize(dict(r._mapping)) for r in self.session.execute(stmt)]
        except SQLAlchemyError as exc:
            return self._fail('select', table_name, exc)
        return Result(data=rows, count=len(rows))

    def count(self, table_name, user_id, eq=None):
        table = TABLES[table_name]
        stmt = select(func.count()).select_from(table).where(*self._where(table, user_id, eq))
        try:
            total = self.session.execute(stmt).scalar_one()
        except SQLAlchemyError as exc:
            return self._fail('count', table_name, exc)
        return Result(data=[], count=total)

    def insert(self, table_name, user_id, values):
        table = self._write_table(table_name)
        rows = values if isinstance(values, list) else [values]
        for row in rows:
            error = self._missing(table_name, row.keys())
            if error:
                return Result(error=error)
        ids = []
        try:
            for row in rows:
                payload = self._with_defaults(table_name, {k: _coerce(table.c[k], v) for k, v in row.items()})
                payload['user_id'] = user_id
                result = self.session.execute(insert(table).values(**payload))
                ids.append(result.inserted_primary_key[0])
            self.session.commit()
            inserted = self._fetch_ids(table_name, ids)
        except SQLAlchemyError as exc:
            return self._fail('insert', table_name, exc)
        return Result(data=inserted, count=len(inserted))

    def update(self, table_name, user_id, values, eq=None, in_=None):
        table = self._write_table(table_name)
        error = self._missing(table_name, list(values.keys()) + self._filter_names(eq, None, None, in_))
        if error:
            return Result(error=error)
        where = self._where(table, user_id, eq=eq, in_=in_)
        payload = {k: _coerce(table.c[k], v) for k, v in values.items()}
        try:
            ids = list(self.session.execute(select(table.c.id).where(*where)).scalars())
            if ids:
                self.session.execute(update(table).where(table.c.id.in_(ids)).values(**payload))
            self.session.commit()
            updated = self._fetch_ids(table_name, ids)
        except SQLAlchemyError as exc:
            return self._fail('update', table_name, exc)
        return Result(data=updated, count=len(updated))

    def delete(self, table_name, user_id, eq=None, in_=None):
        table = self._write_table(table_name)
        error = self._missing(table_name, self._filter_names(eq, None, None, in_))
        if error:
            return Result(error=error)
        try:
            result = self.session.execute(delete(table).where(*self._where(table, user_id, eq=eq, in_=in_)))
            self.session.commit()
        except SQLAlchemyError as exc:
            return self._fail('delete', table_name, exc)
        return Result(data=[], count=result.rowcount)

    def upsert(self, table_name, user_id, values, on_conflict=('date',)):
        """Update the row matching ``on_conflict`` (plus the user) or insert one."""
        existing = self.select(table_name, user_id, eq={k: values[k] for k in on_conflict}, columns=['id'])
        if not existing.ok:
            return existing
        if existing.data:
            return self.update(table_name, user_id, values, eq={'id': existing.data[0]['id']})
        return self.insert(table_name, user_id, values)
