"""
Per-order locks using PostgreSQL advisory locks.
"""
from contextlib import contextmanager
from uuid import UUID

from django.db import connection


@contextmanager
def order_lock(order_id: UUID):
    """
    Serialize transitions on one order for the rest of the transaction.

    Usage:
        with transaction.atomic(), order_lock(order_id):
            # read, validate and write the order
            pass

    Other databases rely on the compare-and-swap in ``OrderRepository``.
    """
    if connection.vendor == "postgresql":
        with connection.cursor() as cursor:
            # Released automatically when the transaction ends
            cursor.execute(
                "SELECT pg_advisory_xact_lock(hashtext(%s)::bigint)",
                [str(order_id)],
            )
    yield
