"""
Ordered schema migration definitions.

Each migration carries its own frozen table definitions so that it keeps
describing the schema as of its version, independent of later changes to
the ORM models. Versions must be unique and strictly increasing in list
order; MigrationEngine refuses to start otherwise.
"""

from dataclasses import dataclass
from typing import Callable

import sqlalchemy as sa
from sqlalchemy.engine import Connection


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    up: Callable[[Connection], None]
    down: Callable[[Connection], None]


def _initial_tables() -> tuple[sa.MetaData, list[sa.Table]]:
    metadata = sa.MetaData()
    users = sa.Table(
        "users",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    vault_items = sa.Table(
        "vault_items",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("encrypted_title", sa.Text, nullable=False),
        sa.Column("encrypted_username", sa.Text, nullable=True),
        sa.Column("encrypted_password", sa.Text, nullable=False),
        sa.Column("encrypted_url", sa.Text, nullable=True),
        sa.Column("encrypted_notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("category", sa.String(100), server_default="General"),
        sa.Column("is_favorite", sa.Boolean, nullable=False, server_default=sa.false()),
    )
    user_sessions = sa.Table(
        "user_sessions",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        # Hash of the session token (cookie holds the raw token)
        sa.Column("token_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    return metadata, [users, vault_items, user_sessions]


def create_initial_tables_up(conn: Connection) -> None:
    metadata, _ = _initial_tables()
    metadata.create_all(conn, checkfirst=True)


def create_initial_tables_down(conn: Connection) -> None:
    metadata, tables = _initial_tables()
    # Children first so foreign keys never dangle
    for table in reversed(tables):
        table.drop(conn, checkfirst=True)


_INDEXES = [
    ("idx_vault_items_user_id", "vault_items", "user_id"),
    ("idx_vault_items_category", "vault_items", "category"),
    ("idx_vault_items_created_at", "vault_items", "created_at"),
    ("idx_user_sessions_user_id", "user_sessions", "user_id"),
    ("idx_user_sessions_token_hash", "user_sessions", "token_hash"),
    ("idx_user_sessions_expires_at", "user_sessions", "expires_at"),
]


def _index_objects() -> list[sa.Index]:
    _, tables = _initial_tables()
    by_name = {table.name: table for table in tables}
    return [
        sa.Index(index_name, by_name[table_name].c[column])
        for index_name, table_name, column in _INDEXES
    ]


def create_indexes_up(conn: Connection) -> None:
    for index in _index_objects():
        index.create(conn, checkfirst=True)


def create_indexes_down(conn: Connection) -> None:
    for index in reversed(_index_objects()):
        index.drop(conn, checkfirst=True)


MIGRATIONS: list[Migration] = [
    Migration(1, "create_initial_tables", create_initial_tables_up, create_initial_tables_down),
    Migration(2, "create_indexes", create_indexes_up, create_indexes_down),
]
