"""SQLite storage for categories, transactions and per-user dialog state."""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
import uuid
from datetime import datetime, tzinfo
from typing import Any, List, Optional

from .models import Category, Transaction, TransactionFilter, UserState


class StorageError(Exception):
    """Raised when a storage backend cannot complete a request."""


SCHEMA = """
PRAGMA foreign_keys = ON;
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL CHECK(type IN ('expense', 'income')),
    created_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_categories_user_id ON categories(user_id);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    user_id INTEGER NOT NULL,
    category_id TEXT REFERENCES categories(id) ON DELETE SET NULL,
    amount REAL NOT NULL,
    description TEXT,
    date REAL NOT NULL,
    created_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_transactions_user_date
    ON transactions(user_id, date);

CREATE TABLE IF NOT EXISTS user_states (
    user_id INTEGER PRIMARY KEY,
    awaiting_action TEXT NOT NULL DEFAULT '',
    transaction_type TEXT NOT NULL DEFAULT '',
    selected_category_id TEXT NOT NULL DEFAULT '',
    pending_amount REAL,
    updated_at REAL NOT NULL
);
"""


def new_id() -> str:
    return str(uuid.uuid4())


class SQLiteRepository:
    def __init__(self, path: str, tz: Optional[tzinfo] = None) -> None:
        self.path = path
        self.tz = tz
        self.lock = threading.Lock()
        try:
            self.db = sqlite3.connect(path, check_same_thread=False)
            self.db.row_factory = sqlite3.Row
            with self.lock:
                self.db.executescript(SCHEMA)
                self.db.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to open database {path}: {exc}") from exc

    def close(self) -> None:
        with self.lock:
            self.db.close()

    def _from_ts(self, value: Optional[float]) -> Optional[datetime]:
        if value is None:
            return None
        return datetime.fromtimestamp(value, self.tz)

    def _execute(self, query: str, params: tuple = (), commit: bool = False) -> sqlite3.Cursor:
        try:
            with self.lock:
                cur = self.db.execute(query, params)
                if commit:
                    self.db.commit()
                return cur
        except sqlite3.Error as exc:
            logging.error("sqlite error on %s: %s", query.split()[0], exc)
            raise StorageError(str(exc)) from exc

    def _fetchall(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            with self.lock:
                return self.db.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            logging.error("sqlite error on %s: %s", query.split()[0], exc)
            raise StorageError(str(exc)) from exc

    def _category(self, row: sqlite3.Row) -> Category:
        return Category(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            type=row["type"],
            created_at=self._from_ts(row["created_at"]),
        )

    def _transaction(self, row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"],
            user_id=row["user_id"],
            category_id=row["category_id"],
            amount=float(row["amount"]),
            description=row["description"] or "",
            date=self._from_ts(row["date"]),
            created_at=self._from_ts(row["created_at"]),
        )

    def create_category(self, category: Category) -> Category:
        stored = Category(
            id=category.id or new_id(),
            user_id=category.user_id,
            name=category.name,
            type=category.type,
            created_at=category.created_at or datetime.now(self.tz),
        )
        self._execute(
            "INSERT INTO categories (id, user_id, name, type, created_at) VALUES (?, ?, ?, ?, ?)",
            (stored.id, stored.user_id, stored.name, stored.type, stored.created_at.timestamp()),
            commit=True,
        )
        logging.info("category created: %s (%s) for user %s", stored.name, stored.type, stored.user_id)
        return stored

    def get_categories(self, user_id: int) -> List[Category]:
        rows = self._fetchall(
            "SELECT id, user_id, name, type, created_at FROM categories WHERE user_id = ? ORDER BY created_at, name",
            (user_id,),
        )
        return [self._category(row) for row in rows]

    def delete_category(self, category_id: str, user_id: int) -> bool:
        cur = self._execute("DELETE FROM categories WHERE id = ? AND user_id = ?", (category_id, user_id), commit=True)
        return cur.rowcount > 0

    def create_transaction(self, transaction: Transaction) -> Transaction:
        stored = Transaction(
            id=transaction.id or new_id(),
            user_id=transaction.user_id,
            category_id=transaction.category_id,
            amount=transaction.amount,
            description=transaction.description,
            date=transaction.date,
            created_at=transaction.created_at,
        )
        self._execute(
            "INSERT INTO transactions (id, user_id, category_id, amount, description, date, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                stored.id,
                stored.user_id,
                stored.category_id,
                stored.amount,
                stored.description or None,
                stored.date.timestamp(),
                stored.created_at.timestamp(),
            ),
            commit=True,
        )
        return stored

    def get_transactions(self, user_id: int, flt: Optional[TransactionFilter] = None) -> List[Transaction]:
        flt = flt or TransactionFilter()
        query = ["SELECT id, user_id, category_id, amount, description, date, created_at FROM transactions WHERE user_id = ?"]
        params: List[Any] = [user_id]
        if flt.start_date is not None:
            query.append("AND date >= ?")
            params.append(flt.start_date.timestamp())
        if flt.end_date is not None:
            query.append("AND date <= ?")
            params.append(flt.end_date.timestamp())
        if flt.limit > 0:
            query.append("ORDER BY date DESC, created_at DESC LIMIT ?")
            params.append(flt.limit)
        else:
            query.append("ORDER BY date, created_at")
        rows = self._fetchall(" ".join(query), tuple(params))
        return [self._transaction(row) for row in rows]

    def delete_transaction(self, transaction_id: str, user_id: int) -> bool:
        cur = self._execute(
            "DELETE FROM transactions WHERE id = ? AND user_id = ?", (transaction_id, user_id), commit=True
        )
        return cur.rowcount > 0

    def get_user_state(self, user_id: int) -> Optional[UserState]:
        rows = self._fetchall(
            "SELECT user_id, awaiting_action, transaction_type, selected_category_id, pending_amount, updated_at "
            "FROM user_states WHERE user_id = ?",
            (user_id,),
        )
        if not rows:
            return None
        row = rows[0]
        return UserState(
            user_id=row["user_id"],
            awaiting_action=row["awaiting_action"],
            transaction_type=row["transaction_type"],
            selected_category_id=row["selected_category_id"],
            pending_amount=row["pending_amount"],
            updated_at=self._from_ts(row["updated_at"]),
        )

    def save_user_state(self, state: UserState) -> None:
        updated_at = state.updated_at.timestamp() if state.updated_at else time.time()
        self._execute(
            "INSERT INTO user_states (user_id, awaiting_action, transaction_type, selected_category_id, pending_amount, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?) ON CONFLICT(user_id) DO UPDATE SET "
            "awaiting_action = excluded.awaiting_action, transaction_type = excluded.transaction_type, "
            "selected_category_id = excluded.selected_category_id, pending_amount = excluded.pending_amount, "
            "updated_at = excluded.updated_at",
            (
                state.user_id,
                state.awaiting_action,
                state.transaction_type,
                state.selected_category_id,
                state.pending_amount,
                updated_at,
            ),
            commit=True,
        )

    def delete_user_state(self, user_id: int) -> None:
        self._execute("DELETE FROM user_states WHERE user_id = ?", (user_id,), commit=True)
