"""Persistence layer for recruiters, subscriptions, credits and the audit log."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from uuid import UUID
from typing import Iterable, Optional, Tuple

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from .models import PaymentAuditEntry, Recruiter, Subscription, SubscriptionStatus


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _is_uuid(value: str) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def _row_to_recruiter(row: dict) -> Recruiter:
    return Recruiter(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        full_name=row.get("full_name"),
        email=row.get("email"),
    )


def _row_to_subscription(row: dict) -> Subscription:
    return Subscription(
        id=str(row["id"]),
        recruiter_id=str(row["recruiter_id"]),
        plan_id=row["plan_id"],
        status=SubscriptionStatus(row["status"]),
        current_period_start=row.get("current_period_start"),
        current_period_end=row.get("current_period_end"),
        payfast_token=row.get("payfast_token"),
        payfast_subscription_id=row.get("payfast_subscription_id"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class _CursorMixin:
    _conn: Optional[PgConnection]

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()


class PostgresPaymentRepository(_CursorMixin):
    """Concrete repository persisting payment state in PostgreSQL.

    Every write is a single statement so concurrent notifications rely on
    row-level guarantees instead of read-then-write sequences.
    """

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    def get_recruiter_by_user_id(self, user_id: str) -> Optional[Recruiter]:
        if not _is_uuid(user_id):
            return None
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, user_id, full_name, email
                FROM recruiters
                WHERE user_id = %s
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
            return _row_to_recruiter(row) if row else None

    def get_recruiter(self, recruiter_id: str) -> Optional[Recruiter]:
        if not _is_uuid(recruiter_id):
            return None
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, user_id, full_name, email
                FROM recruiters
                WHERE id = %s
                LIMIT 1
                """,
                (recruiter_id,),
            )
            row = cursor.fetchone()
            return _row_to_recruiter(row) if row else None

    def ensure_active_subscription(
        self,
        *,
        recruiter_id: str,
        plan_id: str,
        period_start: datetime,
        period_end: datetime,
        payfast_token: Optional[str],
        payfast_subscription_id: Optional[str],
    ) -> Tuple[Subscription, bool]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO recruiter_subscriptions (
                    recruiter_id,
                    plan_id,
                    status,
                    current_period_start,
                    current_period_end,
                    payfast_token,
                    payfast_subscription_id
                )
                VALUES (%(recruiter_id)s, %(plan_id)s, %(status)s, %(period_start)s,
                        %(period_end)s, %(payfast_token)s, %(payfast_subscription_id)s)
                ON CONFLICT (recruiter_id) DO UPDATE SET
                    plan_id = EXCLUDED.plan_id,
                    status = EXCLUDED.status,
                    current_period_start = EXCLUDED.current_period_start,
                    current_period_end = EXCLUDED.current_period_end,
                    payfast_token = EXCLUDED.payfast_token,
                    payfast_subscription_id = EXCLUDED.payfast_subscription_id,
                    updated_at = NOW()
                RETURNING *, (xmax = 0) AS inserted
                """,
                {
                    "recruiter_id": recruiter_id,
                    "plan_id": plan_id,
                    "status": SubscriptionStatus.ACTIVE.value,
                    "period_start": period_start,
                    "period_end": period_end,
                    "payfast_token": payfast_token,
                    "payfast_subscription_id": payfast_subscription_id,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist subscription")
            return _row_to_subscription(row), bool(row.get("inserted"))

    def add_job_credits(self, recruiter_id: str, credits: int) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO recruiter_job_credits (recruiter_id, credits)
                VALUES (%s, %s)
                ON CONFLICT (recruiter_id) DO UPDATE SET
                    credits = recruiter_job_credits.credits + EXCLUDED.credits,
                    updated_at = NOW()
                RETURNING credits
                """,
                (recruiter_id, credits),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to add job credits")
            return int(row["credits"])

    def get_subscription_for_recruiter(self, recruiter_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM recruiter_subscriptions
                WHERE recruiter_id = %s
                LIMIT 1
                """,
                (recruiter_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def cancel_active_subscription(self, recruiter_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE recruiter_subscriptions
                SET status = %s, updated_at = NOW()
                WHERE recruiter_id = %s AND status = %s
                RETURNING *
                """,
                (SubscriptionStatus.CANCELLED.value, recruiter_id, SubscriptionStatus.ACTIVE.value),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def list_due_subscriptions(self, now: datetime) -> list[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM recruiter_subscriptions
                WHERE status = %s AND current_period_end < %s
                ORDER BY current_period_end ASC
                """,
                (SubscriptionStatus.ACTIVE.value, now),
            )
            rows = cursor.fetchall() or []
            return [_row_to_subscription(row) for row in rows]

    def extend_subscription_period(self, subscription_id: str, *, period_end: datetime) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE recruiter_subscriptions
                SET current_period_end = %s,
                    status = %s,
                    updated_at = NOW()
                WHERE id = %s
                RETURNING *
                """,
                (period_end, SubscriptionStatus.ACTIVE.value, subscription_id),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def mark_subscription_past_due(self, subscription_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE recruiter_subscriptions
                SET status = %s, updated_at = NOW()
                WHERE id = %s
                RETURNING *
                """,
                (SubscriptionStatus.PAST_DUE.value, subscription_id),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None


class PostgresPaymentAuditLog(_CursorMixin):
    """Insert-only writer for ``payfast_audit_log``."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    def append(self, entry: PaymentAuditEntry) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO payfast_audit_log (
                    pf_payment_id,
                    m_payment_id,
                    payment_status,
                    recruiter_id,
                    product_id,
                    amount_gross,
                    outcome,
                    error,
                    payload,
                    created_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    entry.pf_payment_id,
                    entry.m_payment_id,
                    entry.payment_status,
                    entry.recruiter_id,
                    entry.product_id,
                    entry.amount_gross,
                    entry.outcome.value,
                    entry.error,
                    psycopg2.extras.Json(entry.payload),
                    entry.created_at,
                ),
            )


__all__ = ["PostgresPaymentAuditLog", "PostgresPaymentRepository", "managed_connection"]
