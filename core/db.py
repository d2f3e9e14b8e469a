import time
from contextlib import contextmanager

from django.db import transaction


class TransactionTimeout(Exception):
    """La transacción superó su plazo; el bloque atómico hace rollback."""


class Deadline:
    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        self._expires = time.monotonic() + seconds

    @property
    def remaining(self) -> float:
        return self._expires - time.monotonic()

    def check(self) -> None:
        if self.remaining <= 0:
            raise TransactionTimeout(f"transaction exceeded {self.seconds}s")


@contextmanager
def atomic_with_deadline(seconds: float, using=None):
    """
    transaction.atomic() con tiempo máximo de reloj.

    En PostgreSQL cada sentencia queda acotada con SET LOCAL statement_timeout;
    además el llamador debe invocar deadline.check() entre pasos. Se revisa
    una última vez antes del commit.
    """
    deadline = Deadline(seconds)
    with transaction.atomic(using=using):
        connection = transaction.get_connection(using)
        if connection.vendor == "postgresql":
            with connection.cursor() as cursor:
                cursor.execute(f"SET LOCAL statement_timeout = {int(seconds * 1000)}")
        yield deadline
        deadline.check()
