"""Persistence layer for subscriptions, wallet snapshots and the notification log."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Protocol

from ..utils.constants import utc_now
from .schemas import NotificationRecord, Snapshot, Subscription


class StorageAdapter(Protocol):
    """Persisted-store contract consumed by the monitor and the subscription service."""

    def upsert_subscription(self, subscription: Subscription) -> Subscription:
        ...

    def delete_subscription(self, device_token: str, wallet: str) -> bool:
        ...

    def list_subscriptions_by_device(self, device_token: str) -> List[Subscription]:
        ...

    def list_subscriptions_by_wallet(self, wallet: str) -> List[Subscription]:
        ...

    def list_subscribed_wallets(self) -> List[str]:
        ...

    def record_snapshot(self, snapshot: Snapshot) -> Snapshot:
        ...

    def get_latest_snapshot(self, wallet: str) -> Optional[Snapshot]:
        ...

    def list_recent_snapshots(self, wallet: str, limit: int = 10) -> List[Snapshot]:
        ...

    def record_notification(self, record: NotificationRecord) -> NotificationRecord:
        ...

    def list_notifications(self, wallet: str, limit: int = 50) -> List[NotificationRecord]:
        ...


CREATE_SUBSCRIPTION_TABLE = """
CREATE TABLE IF NOT EXISTS subscriptions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_token TEXT NOT NULL,
    wallet TEXT NOT NULL,
    platform TEXT NOT NULL DEFAULT 'ios',
    created_at TEXT NOT NULL,
    UNIQUE(device_token, wallet)
);
"""

CREATE_SNAPSHOT_TABLE = """
CREATE TABLE IF NOT EXISTS wallet_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    wallet TEXT NOT NULL,
    total_unclaimed_lamports INTEGER NOT NULL,
    positions_count INTEGER NOT NULL,
    taken_at TEXT NOT NULL
);
"""

CREATE_NOTIFICATION_TABLE = """
CREATE TABLE IF NOT EXISTS notification_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    wallet TEXT NOT NULL,
    type TEXT NOT NULL,
    payload TEXT,
    sent_at TEXT NOT NULL
);
"""

CREATE_SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER NOT NULL
);
"""

CREATE_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_subscriptions_wallet ON subscriptions(wallet)",
    "CREATE INDEX IF NOT EXISTS idx_subscriptions_device ON subscriptions(device_token)",
    "CREATE INDEX IF NOT EXISTS idx_snapshots_wallet ON wallet_snapshots(wallet, taken_at)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_wallet ON notification_history(wallet, sent_at)",
)

SCHEMA_VERSION = 2


def _format_ts(value: datetime) -> str:
    # Fixed-width UTC strings keep lexical and chronological order identical.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


class SQLiteStorage:
    """SQLite-backed implementation of :class:`StorageAdapter`."""

    def __init__(self, database_path: Path) -> None:
        self._database_path = Path(database_path).expanduser().resolve()
        self._initialize()

    @property
    def database_path(self) -> Path:
        return self._database_path

    def _initialize(self) -> None:
        self._database_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as con:
            con.execute(CREATE_SUBSCRIPTION_TABLE)
            con.execute(CREATE_SNAPSHOT_TABLE)
            con.execute(CREATE_NOTIFICATION_TABLE)
            con.execute(CREATE_SCHEMA_VERSION_TABLE)
            self._apply_migrations(con)
            con.commit()

    def _apply_migrations(self, con: sqlite3.Connection) -> None:
        current = self._get_schema_version(con)
        if current < 2:
            self._migrate_to_v2(con)
        if current != SCHEMA_VERSION:
            self._set_schema_version(con, SCHEMA_VERSION)

    def _get_schema_version(self, con: sqlite3.Connection) -> int:
        row = con.execute("SELECT version FROM schema_migrations ORDER BY ROWID DESC LIMIT 1").fetchone()
        if row is None:
            return 0
        return int(row[0])

    def _set_schema_version(self, con: sqlite3.Connection, version: int) -> None:
        con.execute("DELETE FROM schema_migrations")
        con.execute("INSERT INTO schema_migrations (version) VALUES (?)", (version,))

    def _migrate_to_v2(self, con: sqlite3.Connection) -> None:
        for statement in CREATE_INDEXES:
            con.execute(statement)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        con = sqlite3.connect(self._database_path, timeout=10.0)
        try:
            yield con
        finally:
            con.close()

    # -- subscriptions -------------------------------------------------

    def upsert_subscription(self, subscription: Subscription) -> Subscription:
        created_at = subscription.created_at or utc_now()
        with self._connect() as con:
            con.execute(
                """
                INSERT INTO subscriptions (device_token, wallet, platform, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(device_token, wallet) DO UPDATE SET
                    platform = excluded.platform,
                    created_at = excluded.created_at
                """,
                (
                    subscription.device_token,
                    subscription.wallet,
                    subscription.platform,
                    _format_ts(created_at),
                ),
            )
            con.commit()
        return Subscription(
            device_token=subscription.device_token,
            wallet=subscription.wallet,
            platform=subscription.platform,
            created_at=created_at,
        )

    def delete_subscription(self, device_token: str, wallet: str) -> bool:
        with self._connect() as con:
            cur = con.execute(
                "DELETE FROM subscriptions WHERE device_token = ? AND wallet = ?",
                (device_token, wallet),
            )
            con.commit()
            return cur.rowcount > 0

    def list_subscriptions_by_device(self, device_token: str) -> List[Subscription]:
        return self._query_subscriptions("WHERE device_token = ?", (device_token,))

    def list_subscriptions_by_wallet(self, wallet: str) -> List[Subscription]:
        return self._query_subscriptions("WHERE wallet = ?", (wallet,))

    def list_subscriptions(self) -> List[Subscription]:
        return self._query_subscriptions("", ())

    def _query_subscriptions(self, where: str, params: tuple) -> List[Subscription]:
        with self._connect() as con:
            rows = con.execute(
                f"SELECT device_token, wallet, platform, created_at FROM subscriptions {where} ORDER BY id",
                params,
            ).fetchall()
        return [
            Subscription(
                device_token=row[0],
                wallet=row[1],
                platform=row[2],
                created_at=_parse_ts(row[3]),
            )
            for row in rows
        ]

    def list_subscribed_wallets(self) -> List[str]:
        with self._connect() as con:
            rows = con.execute(
                "SELECT wallet FROM subscriptions GROUP BY wallet ORDER BY MIN(id)"
            ).fetchall()
        return [row[0] for row in rows]

    # -- snapshots -----------------------------------------------------

    def record_snapshot(self, snapshot: Snapshot) -> Snapshot:
        with self._connect() as con:
            cur = con.execute(
                """
                INSERT INTO wallet_snapshots (wallet, total_unclaimed_lamports, positions_count, taken_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    snapshot.wallet,
                    int(snapshot.total_unclaimed_lamports),
                    int(snapshot.positions_count),
                    _format_ts(snapshot.taken_at),
                ),
            )
            con.commit()
            row_id = cur.lastrowid
        return Snapshot(
            wallet=snapshot.wallet,
            total_unclaimed_lamports=snapshot.total_unclaimed_lamports,
            positions_count=snapshot.positions_count,
            taken_at=snapshot.taken_at,
            id=row_id,
        )

    def get_latest_snapshot(self, wallet: str) -> Optional[Snapshot]:
        snapshots = self.list_recent_snapshots(wallet, limit=1)
        return snapshots[0] if snapshots else None

    def list_recent_snapshots(self, wallet: str, limit: int = 10) -> List[Snapshot]:
        with self._connect() as con:
            rows = con.execute(
                """
                SELECT id, wallet, total_unclaimed_lamports, positions_count, taken_at
                FROM wallet_snapshots
                WHERE wallet = ?
                ORDER BY taken_at DESC, id DESC
                LIMIT ?
                """,
                (wallet, limit),
            ).fetchall()
        return [
            Snapshot(
                id=row[0],
                wallet=row[1],
                total_unclaimed_lamports=int(row[2]),
                positions_count=int(row[3]),
                taken_at=_parse_ts(row[4]),
            )
            for row in rows
        ]

    # -- notification log ----------------------------------------------

    def record_notification(self, record: NotificationRecord) -> NotificationRecord:
        sent_at = record.sent_at or utc_now()
        payload = json.dumps(record.payload, separators=(",", ":"), default=str)
        with self._connect() as con:
            cur = con.execute(
                "INSERT INTO notification_history (wallet, type, payload, sent_at) VALUES (?, ?, ?, ?)",
                (record.wallet, record.type, payload, _format_ts(sent_at)),
            )
            con.commit()
            row_id = cur.lastrowid
        return NotificationRecord(
            wallet=record.wallet,
            type=record.type,
            payload=dict(record.payload),
            sent_at=sent_at,
            id=row_id,
        )

    def list_notifications(self, wallet: str, limit: int = 50) -> List[NotificationRecord]:
        with self._connect() as con:
            rows = con.execute(
                """
                SELECT id, wallet, type, payload, sent_at
                FROM notification_history
                WHERE wallet = ?
                ORDER BY sent_at DESC, id DESC
                LIMIT ?
                """,
                (wallet, limit),
            ).fetchall()
        return [
            NotificationRecord(
                id=row[0],
                wallet=row[1],
                type=row[2],
                payload=json.loads(row[3]) if row[3] else {},
                sent_at=_parse_ts(row[4]),
            )
            for row in rows
        ]


__all__ = ["SQLiteStorage", "StorageAdapter", "SCHEMA_VERSION"]
