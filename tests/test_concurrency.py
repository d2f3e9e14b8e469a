"""Concurrent checkout and courtesy claims against real row locks.

Row locks need PostgreSQL; on SQLite these tests are skipped.
Run with: POSTGRES_DB=ticketf_test pytest tests/test_concurrency.py -v
"""

import threading
from decimal import Decimal

import pytest
from django.db import connection, connections

from accounts.models import User
from core.errors import CourtesyAlreadyClaimedError, DomainError
from orders.models import CourtesyTicket, Ticket
from orders.services.checkout import create_order
from orders.services.courtesy import claim_courtesy, generate_courtesy_batch
from tickets.models import DiscountCode, DiscountUsage


@pytest.fixture(autouse=True)
def postgres_only():
    if connection.vendor != "postgresql":
        pytest.skip("requiere PostgreSQL")


def _run_parallel(target, args_list):
    """Lanza un hilo por args, espera a todos y devuelve (resultados, errores)."""
    barrier = threading.Barrier(len(args_list))
    results, errors = [], []
    lock = threading.Lock()

    def worker(args):
        try:
            barrier.wait()
            value = target(*args)
            with lock:
                results.append(value)
        except DomainError as exc:
            with lock:
                errors.append(exc)
        finally:
            connections.close_all()

    threads = [threading.Thread(target=worker, args=(a,)) for a in args_list]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


def _buyers(n):
    return [User.objects.create_user(email=f"comprador{i}@example.com", password="x") for i in range(n)]


@pytest.mark.django_db(transaction=True)
class TestConcurrentCheckout:
    """Parallel orders never oversell."""

    def test_no_oversell(self, evento, make_tipo):
        tipo = make_tipo(capacidad=3)
        buyers = _buyers(8)

        def buy(user):
            return create_order(user=user, event_id=evento.pk,
                                items=[{"ticketTypeId": tipo.pk, "quantity": 1}])

        results, errors = _run_parallel(buy, [(u,) for u in buyers])

        tipo.refresh_from_db()
        assert len(results) == 3
        assert len(errors) == 5
        assert tipo.vendidos == 3

    def test_per_user_discount_cap(self, user, evento, tipo):
        code = DiscountCode.objects.create(
            codigo="UNAVEZ", tipo=DiscountCode.FIXED, valor=Decimal("5"), usos_por_usuario=1,
        )

        def buy():
            return create_order(user=user, event_id=evento.pk,
                                items=[{"ticketTypeId": tipo.pk, "quantity": 1}],
                                discount_code_id=code.pk)

        results, errors = _run_parallel(buy, [()] * 4)

        assert len(results) == 1
        assert DiscountUsage.objects.filter(discount_code=code, usuario=user).count() == 1


@pytest.mark.django_db(transaction=True)
class TestConcurrentCourtesyClaim:
    """Parallel claims of one code produce exactly one ticket."""

    def test_single_winner(self, evento, tipo):
        batch = generate_courtesy_batch(
            evento=evento, tipo=tipo, cantidad=1, motivo="Prensa",
            assigned=[{"name": "Carla Ríos", "dni": "44556677"}],
        )
        code = batch.courtesy_tickets.get().claim_code
        buyers = _buyers(5)

        results, errors = _run_parallel(lambda u: claim_courtesy(user=u, code=code), [(u,) for u in buyers])

        assert len(results) == 1
        assert all(isinstance(e, CourtesyAlreadyClaimedError) for e in errors)
        assert Ticket.objects.count() == 1
        assert CourtesyTicket.objects.get().estado == CourtesyTicket.CLAIMED
