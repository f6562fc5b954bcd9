"""Storage backed by a PostgREST endpoint (Supabase-style REST over Postgres)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Optional

import httpx
from dateutil.parser import isoparse

from .models import Category, Transaction, TransactionFilter, UserState
from .storage import StorageError


def _parse_time(value: Optional[str], tz: Optional[tzinfo]) -> Optional[datetime]:
    if not value:
        return None
    parsed = isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(tz) if tz is not None else parsed


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class RestRepository:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        tz: Optional[tzinfo] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.tz = tz
        self.client = httpx.Client(
            base_url=base_url.rstrip("/") + "/rest/v1",
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    def close(self) -> None:
        self.client.close()

    def _request(
        self,
        method: str,
        table: str,
        params: Any = None,
        payload: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self.client.request(method, f"/{table}", params=params, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logging.error("%s /%s failed: %s %s", method, table, exc.response.status_code, exc.response.text[:200])
            raise StorageError(f"{method} {table} failed with status {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logging.error("%s /%s failed: %s", method, table, exc)
            raise StorageError(f"{method} {table} failed: {exc}") from exc
        if not response.content:
            return []
        try:
            return response.json()
        except ValueError as exc:
            raise StorageError(f"malformed response from {table}") from exc

    def _category(self, row: Dict[str, Any]) -> Category:
        try:
            return Category(
                id=str(row["id"]),
                user_id=int(row["user_id"]),
                name=row["name"],
                type=row["type"],
                created_at=_parse_time(row.get("created_at"), self.tz),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"malformed category row: {row!r}") from exc

    def _transaction(self, row: Dict[str, Any]) -> Transaction:
        try:
            return Transaction(
                id=str(row["id"]),
                user_id=int(row["user_id"]),
                category_id=row.get("category_id"),
                amount=float(row["amount"]),
                description=row.get("description") or "",
                date=_parse_time(row["date"], self.tz),
                created_at=_parse_time(row.get("created_at"), self.tz) or _parse_time(row["date"], self.tz),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"malformed transaction row: {row!r}") from exc

    def create_category(self, category: Category) -> Category:
        payload: Dict[str, Any] = {"user_id": category.user_id, "name": category.name, "type": category.type}
        if category.id:
            payload["id"] = category.id
        rows = self._request("POST", "categories", payload=payload, prefer="return=representation")
        return self._category(rows[0]) if rows else category

    def get_categories(self, user_id: int) -> List[Category]:
        rows = self._request("GET", "categories", params={"select": "*", "user_id": f"eq.{user_id}"})
        return [self._category(row) for row in rows]

    def delete_category(self, category_id: str, user_id: int) -> bool:
        rows = self._request(
            "DELETE",
            "categories",
            params={"id": f"eq.{category_id}", "user_id": f"eq.{user_id}"},
            prefer="return=representation",
        )
        return bool(rows)

    def create_transaction(self, transaction: Transaction) -> Transaction:
        payload: Dict[str, Any] = {
            "user_id": transaction.user_id,
            "category_id": transaction.category_id,
            "amount": transaction.amount,
            "description": transaction.description,
            "date": _format_time(transaction.date),
            "created_at": _format_time(transaction.created_at),
        }
        if transaction.id:
            payload["id"] = transaction.id
        rows = self._request("POST", "transactions", payload=payload, prefer="return=representation")
        return self._transaction(rows[0]) if rows else transaction

    def get_transactions(self, user_id: int, flt: Optional[TransactionFilter] = None) -> List[Transaction]:
        flt = flt or TransactionFilter()
        params: List[tuple] = [("select", "*"), ("user_id", f"eq.{user_id}")]
        if flt.start_date is not None:
            params.append(("date", f"gte.{_format_time(flt.start_date)}"))
        if flt.end_date is not None:
            params.append(("date", f"lte.{_format_time(flt.end_date)}"))
        if flt.limit > 0:
            params.append(("order", "date.desc"))
            params.append(("limit", str(flt.limit)))
        else:
            params.append(("order", "date.asc"))
        rows = self._request("GET", "transactions", params=params)
        return [self._transaction(row) for row in rows]

    def delete_transaction(self, transaction_id: str, user_id: int) -> bool:
        rows = self._request(
            "DELETE",
            "transactions",
            params={"id": f"eq.{transaction_id}", "user_id": f"eq.{user_id}"},
            prefer="return=representation",
        )
        return bool(rows)

    def get_user_state(self, user_id: int) -> Optional[UserState]:
        rows = self._request("GET", "user_states", params={"select": "*", "user_id": f"eq.{user_id}"})
        if not rows:
            return None
        row = rows[0]
        amount = row.get("pending_amount")
        return UserState(
            user_id=int(row["user_id"]),
            awaiting_action=row.get("awaiting_action") or "",
            transaction_type=row.get("transaction_type") or "",
            selected_category_id=row.get("selected_category_id") or "",
            pending_amount=float(amount) if amount is not None else None,
            updated_at=_parse_time(row.get("updated_at"), self.tz),
        )

    def save_user_state(self, state: UserState) -> None:
        payload = {
            "user_id": state.user_id,
            "awaiting_action": state.awaiting_action,
            "transaction_type": state.transaction_type,
            "selected_category_id": state.selected_category_id,
            "pending_amount": state.pending_amount,
            "updated_at": _format_time(state.updated_at or datetime.now(timezone.utc)),
        }
        self._request("POST", "user_states", payload=payload, prefer="resolution=merge-duplicates")

    def delete_user_state(self, user_id: int) -> None:
        self._request("DELETE", "user_states", params={"user_id": f"eq.{user_id}"})
