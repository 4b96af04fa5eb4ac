"""Database store handle: engine ownership, per-request sessions, dev auto-migration."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from fastapi import Request
from sqlalchemy import Column, Table, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Table metadata must be registered before create_all runs.
from taskmaster import models  # noqa: F401

logger = logging.getLogger(__name__)


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for ``database_url``.

    In-memory SQLite gets a single shared connection so every session in the
    process sees the same database.
    """
    if _is_memory_sqlite(database_url):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if _is_sqlite(database_url):
        return create_engine(
            database_url, echo=echo, connect_args={"check_same_thread": False}
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


class Store:
    """Owns the engine and hands out sessions scoped to a unit of work."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.database_url = database_url
        self.engine = build_engine(database_url, echo=echo)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session that is always closed, rolling back on error."""
        with Session(self.engine) as session:
            try:
                yield session
            except Exception:
                session.rollback()
                raise

    def create_all(self, migrate: bool = False) -> None:
        """Create missing tables; optionally reconcile existing SQLite tables."""
        SQLModel.metadata.create_all(self.engine)
        if migrate and _is_sqlite(self.database_url):
            auto_migrate(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


def get_session(request: Request) -> Iterator[Session]:
    """Yield a database session for FastAPI dependency injection."""
    with request.app.state.store.session() as session:
        yield session


@dataclass
class TableDrift:
    """Column-level differences between a live SQLite table and its model."""

    table: Table
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    retyped: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.added or self.removed or self.retyped)

    @property
    def additive(self) -> bool:
        return bool(self.added) and not (self.removed or self.retyped)


def _column_ddl_type(column: Column, engine: Engine) -> str:
    return column.type.compile(dialect=engine.dialect)


def sqlite_default_clause(column: Column, engine: Engine) -> str:
    """DEFAULT clause for a column added with ALTER TABLE.

    SQLite rejects ``ADD COLUMN ... NOT NULL`` without a default, so NOT NULL
    columns get their scalar default or a zero value for their type. Nullable
    columns get no clause.
    """
    if column.nullable:
        return ""

    default = column.default
    if default is not None and default.is_scalar:
        value = default.arg
        # SQLAlchemy Enum columns persist the member name, not its value.
        if isinstance(value, Enum):
            value = value.name
        if isinstance(value, bool):
            return f" DEFAULT {int(value)}"
        if isinstance(value, (int, float)):
            return f" DEFAULT {value}"
        return " DEFAULT '{}'".format(str(value).replace("'", "''"))

    ddl_type = _column_ddl_type(column, engine).upper()
    if any(token in ddl_type for token in ("INT", "BOOL")):
        return " DEFAULT 0"
    if any(token in ddl_type for token in ("FLOAT", "REAL", "NUMERIC")):
        return " DEFAULT 0.0"
    if "DATE" in ddl_type or "TIME" in ddl_type:
        return " DEFAULT '1970-01-01 00:00:00'"
    return " DEFAULT ''"


def detect_drift(engine: Engine, table: Table) -> TableDrift:
    live = {col["name"]: col for col in inspect(engine).get_columns(table.name)}
    declared = {col.name: col for col in table.columns}

    drift = TableDrift(
        table=table,
        added=sorted(set(declared) - set(live)),
        removed=sorted(set(live) - set(declared)),
    )
    for name in sorted(set(live) & set(declared)):
        live_type = str(live[name]["type"]).upper()
        declared_type = _column_ddl_type(declared[name], engine).upper()
        if live_type != declared_type:
            logger.debug(
                "Column %s.%s is %s in the database but %s in the model",
                table.name, name, live_type, declared_type,
            )
            drift.retyped.append(name)
    return drift


def _add_columns(engine: Engine, drift: TableDrift) -> None:
    table = drift.table
    logger.info("Adding columns to '%s': %s", table.name, drift.added)
    with engine.begin() as conn:
        for name in drift.added:
            column = table.columns[name]
            not_null = "" if column.nullable else " NOT NULL"
            ddl = (
                f'ALTER TABLE "{table.name}" ADD COLUMN "{name}" '
                f"{_column_ddl_type(column, engine)}{not_null}"
                f"{sqlite_default_clause(column, engine)}"
            )
            logger.debug("%s", ddl)
            conn.execute(text(ddl))


def _recreate(engine: Engine, drift: TableDrift) -> None:
    table = drift.table
    logger.warning(
        "Recreating table '%s' (removed=%s, retyped=%s, added=%s); its rows are lost",
        table.name, drift.removed, drift.retyped, drift.added,
    )
    with engine.begin() as conn:
        conn.execute(text(f'DROP TABLE "{table.name}"'))
    table.create(engine)


def auto_migrate(engine: Engine) -> list[TableDrift]:
    """Reconcile existing SQLite tables with the SQLModel metadata.

    Purely additive drift is applied in place and keeps the rows. Removed or
    retyped columns drop and recreate the table. Tables that do not exist yet
    are left to ``create_all``. Returns the drift that was acted on.
    """
    existing = set(inspect(engine).get_table_names())
    applied = []
    for table in SQLModel.metadata.sorted_tables:
        if table.name not in existing:
            continue
        drift = detect_drift(engine, table)
        if drift.clean:
            continue
        if drift.additive:
            _add_columns(engine, drift)
        else:
            _recreate(engine, drift)
        applied.append(drift)
    return applied
