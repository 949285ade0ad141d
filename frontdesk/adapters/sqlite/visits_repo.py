from contextlib import contextmanager
from decimal import Decimal

from flask import g

from frontdesk.adapters.sqlite.core import get_db
from frontdesk.common.utils import clinic_now
from frontdesk.domain.visits import Visit, TokenSource, VisitStatus

# Columns callers may filter, order or write by; anything else is rejected
# before it reaches SQL text.
_COLUMNS = (
    'id', 'token_number', 'visit_date', 'name', 'age', 'gender', 'phone',
    'address', 'status', 'assigned_doctor', 'symptoms', 'prescription',
    'bill_amount', 'token_source', 'created_by', 'created_at', 'updated_at',
)
_IMMUTABLE = ('id', 'token_number', 'visit_date', 'created_at')

DEFAULT_ORDER = (('created_at', 'DESC'), ('id', 'DESC'))


def _check_column(column: str) -> str:
    if column not in _COLUMNS:
        raise ValueError(f"unknown visits column: {column}")
    return column


def _timestamp() -> str:
    return clinic_now().strftime('%Y-%m-%d %H:%M:%S.%f')


class VisitStore:
    """sqlite-backed persistent store for visits.

    Exposes the four store primitives the core relies on: query, insert,
    update and the atomic allocate_sequence. Errors are sqlite3 errors; the
    repository decides what they mean.
    """

    @contextmanager
    def transaction(self):
        """Run the block in one write transaction; nested calls join the open one."""
        db = get_db()
        if getattr(g, '_store_tx', False):
            yield db
            return
        db.execute('BEGIN IMMEDIATE')
        g._store_tx = True
        try:
            yield db
        except BaseException:
            db.rollback()
            raise
        else:
            db.commit()
        finally:
            g._store_tx = False

    def query(self, filters: dict = None, order=DEFAULT_ORDER) -> list:
        db = get_db()
        sql = 'SELECT * FROM visits WHERE 1=1'
        params = []
        for column, value in (filters or {}).items():
            sql += f' AND {_check_column(column)} = ?'
            params.append(value)
        if order:
            clauses = []
            for column, direction in order:
                direction = direction.upper()
                if direction not in ('ASC', 'DESC'):
                    raise ValueError(f"bad sort direction: {direction}")
                clauses.append(f'{_check_column(column)} {direction}')
            sql += ' ORDER BY ' + ', '.join(clauses)
        rows = db.execute(sql, params).fetchall()
        return [self._map_row(row) for row in rows]

    def insert(self, record: dict) -> Visit:
        record = dict(record)
        record.setdefault('status', VisitStatus.WAITING)
        record.setdefault('token_source', TokenSource.SEQUENCE)
        record['created_at'] = _timestamp()
        columns = [_check_column(c) for c in record if c != 'id']
        with self.transaction() as db:
            cursor = db.execute(
                f'''INSERT INTO visits ({', '.join(columns)})
                    VALUES ({', '.join('?' for _ in columns)})''',
                [self._to_db(record[c]) for c in columns],
            )
            row = db.execute('SELECT * FROM visits WHERE id = ?', (cursor.lastrowid,)).fetchone()
        return self._map_row(row)

    def update(self, visit_id: int, fields: dict) -> bool:
        """Write only the given fields. Returns False if no such visit."""
        if not fields:
            return True
        for column in fields:
            if _check_column(column) in _IMMUTABLE:
                raise ValueError(f"visits.{column} is immutable")
        assignments = ', '.join(f'{c} = ?' for c in fields)
        params = [self._to_db(v) for v in fields.values()]
        params.extend([_timestamp(), visit_id])
        with self.transaction() as db:
            cursor = db.execute(
                f'UPDATE visits SET {assignments}, updated_at = ? WHERE id = ?',
                params,
            )
        return cursor.rowcount > 0

    def allocate_sequence(self, scope_key: str) -> int:
        """Atomically increment and return the counter for scope_key.

        A single upsert statement: concurrent callers serialize on the
        database write lock and each sees a distinct value.
        """
        with self.transaction() as db:
            rows = db.execute(
                '''INSERT INTO token_sequences (scope_key, last_value) VALUES (?, 1)
                   ON CONFLICT(scope_key) DO UPDATE SET last_value = last_value + 1
                   RETURNING last_value''',
                (scope_key,),
            ).fetchall()
        return int(rows[0]['last_value'])

    @staticmethod
    def _to_db(value):
        if isinstance(value, Decimal):
            return str(value)
        return value

    def _map_row(self, row) -> Visit:
        keys = row.keys()
        bill_amount = row['bill_amount']
        return Visit(
            id=row['id'],
            token_number=row['token_number'],
            visit_date=row['visit_date'],
            name=row['name'],
            age=row['age'],
            gender=row['gender'],
            phone=row['phone'],
            address=row['address'],
            status=row['status'],
            assigned_doctor=row['assigned_doctor'],
            symptoms=row['symptoms'],
            prescription=row['prescription'],
            bill_amount=Decimal(bill_amount) if bill_amount is not None else None,
            token_source=row['token_source'] if 'token_source' in keys else TokenSource.SEQUENCE,
            created_by=row['created_by'],
            created_at=row['created_at'],
        )
