"""
Transaction helpers for the booking path.
"""

import re
from contextlib import contextmanager

from django.db import DEFAULT_DB_ALIAS, transaction

# SQLSTATE codes PostgreSQL reports for serialization failures and deadlocks
SERIALIZATION_SQLSTATES = {"40001", "40P01"}
UNIQUE_VIOLATION_SQLSTATE = "23505"

_CONFLICT_MESSAGE_RE = re.compile(
    r"serializ|transaction.*conflict|deadlock detected|database is locked|database table is locked"
    r"|unique constraint|duplicate key",
    re.IGNORECASE,
)


@contextmanager
def serializable_atomic(using=DEFAULT_DB_ALIAS):
    """
    transaction.atomic() that runs at SERIALIZABLE isolation on PostgreSQL.

    The isolation level can only be set on the outermost transaction; when
    already inside an atomic block the enclosing transaction's level applies.
    """
    connection = transaction.get_connection(using)
    outermost = not connection.in_atomic_block
    with transaction.atomic(using=using):
        if outermost and connection.vendor == "postgresql":
            with connection.cursor() as cursor:
                cursor.execute("SET TRANSACTION ISOLATION LEVEL SERIALIZABLE")
        yield


def is_serialization_failure(exc: BaseException) -> bool:
    """
    True if exc (or its driver-level cause) is a concurrent-write conflict.

    Unique-key violations count as conflicts: the live-appointment constraint
    only trips when another booking for the same start won. Other integrity
    errors, such as a foreign key to a deleted row, are not conflicts.
    """
    seen = set()
    current = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        sqlstate = getattr(current, "sqlstate", None) or getattr(current, "pgcode", None)
        if sqlstate in SERIALIZATION_SQLSTATES or sqlstate == UNIQUE_VIOLATION_SQLSTATE:
            return True
        if _CONFLICT_MESSAGE_RE.search(str(current)):
            return True
        current = current.__cause__ or current.__context__
    return False
