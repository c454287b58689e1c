"""
PostgreSQL driver: one JSONB table per storage name.

Each storage becomes a table (id TEXT PRIMARY KEY, data JSONB NOT NULL),
created on first use. Rows are stored whole in `data`, keyed by external
(alias) column names:

- equality filters use JSONB containment: data @> '{"status": "open"}'
- updates merge the patch: data = data || '{"status": "closed"}'
- aggregations are joined after the fetch with one lookup per virtual column

datetime, date, Decimal, UUID and bytes survive the round trip through
tagged JSON values.
"""

import base64
import json
import logging
import os
import uuid
from datetime import date, datetime
from decimal import Decimal

import psycopg2
import psycopg2.extras

from entities.driver import Driver, DriverError, attach_aggregations, to_document
from entities.filters import Order

logger = logging.getLogger(__name__)

DATABASE_URL_ENV = "ENTITIES_DATABASE_URL"


class _JSONEncoder(json.JSONEncoder):
    """Handles datetime, date, Decimal, UUID and bytes serialization."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return {"__type__": "datetime", "value": obj.isoformat()}
        if isinstance(obj, date):
            return {"__type__": "date", "value": obj.isoformat()}
        if isinstance(obj, Decimal):
            return {"__type__": "Decimal", "value": str(obj)}
        if isinstance(obj, uuid.UUID):
            return {"__type__": "UUID", "value": str(obj)}
        if isinstance(obj, (bytes, bytearray)):
            return {"__type__": "bytes", "value": base64.b64encode(bytes(obj)).decode("ascii")}
        return super().default(obj)


def _json_decoder_hook(d):
    """Reconstruct special types from JSONB."""
    if "__type__" in d:
        t = d["__type__"]
        v = d["value"]
        if t == "datetime":
            return datetime.fromisoformat(v)
        if t == "date":
            return date.fromisoformat(v)
        if t == "Decimal":
            return Decimal(v)
        if t == "UUID":
            return uuid.UUID(v)
        if t == "bytes":
            return base64.b64decode(v)
    return d


def _dumps(value) -> str:
    return json.dumps(value, cls=_JSONEncoder)


def _loads(text):
    return json.loads(text, object_hook=_json_decoder_hook)


def _validate_identifier(name):
    """Prevent SQL injection in storage (table) names."""
    if not name or not all(c.isalnum() or c == '_' for c in name):
        raise DriverError(f"Invalid storage name: {name!r}")
    if len(name) > 63:
        raise DriverError(f"Storage name too long: {name!r}")


class PostgresDriver(Driver):
    """
    Driver storing entities as JSONB rows through psycopg2.

    Usage:
        driver = PostgresDriver.connect("postgresql://app@localhost/app")
        users = Mapper(driver, User)
        users.insert(User(name="A"))
        driver.close()
    """

    def __init__(self, conn, registry=None):
        super().__init__(registry)
        self.conn = conn
        self.conn.autocommit = True
        psycopg2.extras.register_uuid()
        self._ready: set[str] = set()

    @classmethod
    def connect(cls, dsn=None, registry=None):
        """Open a connection; dsn defaults to $ENTITIES_DATABASE_URL."""
        dsn = dsn or os.environ.get(DATABASE_URL_ENV)
        if not dsn:
            raise DriverError(
                f"No DSN given and {DATABASE_URL_ENV} is not set"
            )
        return cls(psycopg2.connect(dsn), registry)

    # ── Tables ────────────────────────────────────────────────────

    def _ensure(self, name: str) -> str:
        _validate_identifier(name)
        if name not in self._ready:
            with self.conn.cursor() as cur:
                cur.execute(f"""
                    CREATE TABLE IF NOT EXISTS "{name}" (
                        id    TEXT PRIMARY KEY,
                        data  JSONB NOT NULL
                    );
                """)
                cur.execute(f"""
                    CREATE INDEX IF NOT EXISTS "idx_{name}_data"
                        ON "{name}" USING GIN (data);
                """)
            self._ready.add(name)
            logger.debug("Ensured table '%s'", name)
        return name

    def _table(self, model) -> str:
        return self._ensure(self.storage_name(model))

    @staticmethod
    def _where(filters):
        """Build a WHERE clause ANDing every filter's OR-ed match dicts."""
        clauses, params = [], []
        for f in filters:
            alternatives = f.alternatives()
            if not alternatives:
                continue
            clauses.append(
                "(" + " OR ".join("data @> %s::jsonb" for _ in alternatives) + ")"
            )
            params.extend(_dumps(match) for match in alternatives)
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def _lookup(self, storage, column, values):
        table = self._ensure(storage)
        with self.conn.cursor() as cur:
            cur.execute(
                f'SELECT data::text FROM "{table}" WHERE data->>%s = ANY(%s)',
                (column, [str(v) for v in values]),
            )
            rows = [_loads(r[0]) for r in cur.fetchall()]
        # ->> compares text, so re-check with the original values
        return [row for row in rows if row.get(column) in values]

    # ── Contract ──────────────────────────────────────────────────

    def insert(self, model, rows) -> list:
        table = self._table(model)
        primary = self.primary_name(model)
        ids = []
        old_autocommit = self.conn.autocommit
        self.conn.autocommit = False
        try:
            with self.conn.cursor() as cur:
                for row in rows:
                    data = to_document(row)
                    id = data.get(primary) if primary else None
                    if id is None:
                        id = uuid.uuid4().hex
                        if primary:
                            data[primary] = id
                    cur.execute(
                        f'INSERT INTO "{table}" (id, data) VALUES (%s, %s::jsonb)',
                        (str(id), _dumps(data)),
                    )
                    ids.append(id)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            self.conn.autocommit = old_autocommit
        logger.debug("Inserted %d rows into '%s'", len(ids), table)
        return ids

    def find(self, model, aggregations, filters) -> list:
        table = self._table(model)
        filters = [f for f in filters if f is not None]
        where, params = self._where(filters)
        sql = f'SELECT data::text FROM "{table}"{where}'

        sort = {}
        for f in filters:
            sort.update(f.sort)
        if sort:
            terms = []
            for column, order in sort.items():
                direction = "DESC" if order == Order.DESCENDING else "ASC"
                terms.append(f"data->%s {direction}")
                params.append(column)
            sql += " ORDER BY " + ", ".join(terms)

        limits = [f.limit for f in filters if f.limit is not None]
        if limits:
            sql += " OFFSET %s LIMIT %s"
            params.extend([limits[-1].start, limits[-1].count])

        with self.conn.cursor() as cur:
            cur.execute(sql, params)
            rows = [_loads(r[0]) for r in cur.fetchall()]
        return attach_aggregations(rows, aggregations, self._lookup)

    def find_by_id(self, model, aggregations, id):
        table = self._table(model)
        with self.conn.cursor() as cur:
            cur.execute(f'SELECT data::text FROM "{table}" WHERE id = %s', (str(id),))
            row = cur.fetchone()
        if row is None:
            return None
        return attach_aggregations([_loads(row[0])], aggregations, self._lookup)[0]

    def update(self, model, patch, filter) -> int:
        table = self._table(model)
        where, params = self._where([filter] if filter is not None else [])
        with self.conn.cursor() as cur:
            cur.execute(
                f'UPDATE "{table}" SET data = data || %s::jsonb{where}',
                [_dumps(to_document(patch))] + params,
            )
            return cur.rowcount

    def update_by_id(self, model, patch, id) -> bool:
        table = self._table(model)
        with self.conn.cursor() as cur:
            cur.execute(
                f'UPDATE "{table}" SET data = data || %s::jsonb WHERE id = %s',
                (_dumps(to_document(patch)), str(id)),
            )
            return cur.rowcount > 0

    def delete(self, model, filter) -> int:
        table = self._table(model)
        where, params = self._where([filter] if filter is not None else [])
        with self.conn.cursor() as cur:
            cur.execute(f'DELETE FROM "{table}"{where}', params)
            return cur.rowcount

    def delete_by_id(self, model, id) -> bool:
        table = self._table(model)
        with self.conn.cursor() as cur:
            cur.execute(f'DELETE FROM "{table}" WHERE id = %s', (str(id),))
            return cur.rowcount > 0

    def close(self):
        """Close the database connection."""
        if self.conn and not self.conn.closed:
            self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
