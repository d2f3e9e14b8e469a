"""Tests for order creation and payment fulfilment.

Run with: pytest tests/test_checkout.py -v
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from core.errors import (
    DiscountRejectedError,
    EventNotFoundError,
    InsufficientCapacityError,
    OrderNotPayableError,
    OrderPayloadError,
    RetryableOrderError,
    TicketTypeNotFoundError,
    TicketTypeUnavailableError,
)
from orders.models import Orden, OrderItem, Ticket
from orders.services.checkout import create_order, fulfill_paid_order, normalize_items
from tickets import ledger
from tickets.discounts import Rejection
from tickets.models import DiscountCode, DiscountUsage, TipoTicket


def _item(tipo, qty=1, attendees=None):
    return {"ticketTypeId": tipo.pk, "quantity": qty, "attendees": attendees or []}


class TestNormalizeItems:
    """Tests for cart shape validation."""

    def test_merges_repeated_types_and_sorts_by_id(self):
        """Lines for the same type are merged; result is ordered by type id."""
        lines = normalize_items([
            {"ticketTypeId": 9, "quantity": 1},
            {"tipo_ticket_id": 3, "cantidad": 2},
            {"ticketTypeId": 9, "quantity": 2},
        ])
        assert [(l["tipo_id"], l["cantidad"]) for l in lines] == [(3, 2), (9, 3)]

    @pytest.mark.parametrize("items", [[], None, [{"ticketTypeId": "x", "quantity": 1}],
                                       [{"ticketTypeId": 1, "quantity": 0}],
                                       [{"ticketTypeId": 1, "quantity": 11}]])
    def test_rejects_malformed_items(self, items):
        """Empty carts, bad ids and out-of-range quantities are payload errors."""
        with pytest.raises(OrderPayloadError):
            normalize_items(items)

    def test_rejects_more_attendees_than_seats(self):
        """A line cannot carry more attendees than tickets."""
        with pytest.raises(OrderPayloadError):
            normalize_items([{"ticketTypeId": 1, "quantity": 1,
                              "attendees": [{"name": "A"}, {"name": "B"}]}])


@pytest.mark.django_db
class TestCapacity:
    """Tests for capacity reservation during checkout."""

    def test_last_seat_goes_to_first_order(self, user, other_user, evento, make_tipo):
        """With capacity 1, the second order is rejected and vendidos stays at 1."""
        tipo = make_tipo(capacidad=1)
        create_order(user=user, event_id=evento.pk, items=[_item(tipo)])

        with pytest.raises(InsufficientCapacityError) as exc:
            create_order(user=other_user, event_id=evento.pk, items=[_item(tipo)])

        assert exc.value.remaining == 0
        assert "Solo quedan 0 entradas" in exc.value.message
        tipo.refresh_from_db()
        assert tipo.vendidos == 1
        assert Orden.objects.count() == 1

    def test_failed_line_rolls_back_previous_reservations(self, user, evento, make_tipo):
        """If a later line fails, earlier increments are not persisted."""
        amplio = make_tipo("Amplio", capacidad=5)
        escaso = make_tipo("Escaso", capacidad=1)

        with pytest.raises(InsufficientCapacityError):
            create_order(user=user, event_id=evento.pk, items=[_item(amplio, 2), _item(escaso, 2)])

        amplio.refresh_from_db()
        escaso.refresh_from_db()
        assert (amplio.vendidos, escaso.vendidos) == (0, 0)
        assert not Orden.objects.exists()
        assert not OrderItem.objects.exists()

    def test_deadline_exceeded_rolls_back(self, user, evento, make_tipo, settings):
        """An order past its time limit is retryable and leaves no order or reservation."""
        settings.ORDER_TRANSACTION_TIMEOUT = 0
        tipo = make_tipo(capacidad=5)

        with pytest.raises(RetryableOrderError):
            create_order(user=user, event_id=evento.pk, items=[_item(tipo, 2)])

        tipo.refresh_from_db()
        assert tipo.vendidos == 0
        assert not Orden.objects.exists()

    def test_database_rejects_oversold_counter(self, make_tipo):
        """vendidos above capacidad violates the table constraint."""
        tipo = make_tipo(capacidad=2)
        with pytest.raises(IntegrityError), transaction.atomic():
            TipoTicket.objects.filter(pk=tipo.pk).update(vendidos=F("capacidad") + 1)

    def test_unlimited_capacity(self, user, evento, make_tipo):
        """Capacity 0 means no limit."""
        tipo = make_tipo(capacidad=0)
        create_order(user=user, event_id=evento.pk, items=[_item(tipo, 10)])
        tipo.refresh_from_db()
        assert tipo.vendidos == 10
        assert ledger.available(tipo) is None

    def test_inactive_type_rejected(self, user, evento, make_tipo):
        tipo = make_tipo(activo=False)
        with pytest.raises(TicketTypeUnavailableError):
            create_order(user=user, event_id=evento.pk, items=[_item(tipo)])

    def test_type_from_other_event_not_found(self, user, cuenta, evento, make_tipo):
        """A ticket type is only reservable through its own event."""
        from events.models import Evento
        otro = Evento.objects.create(cuenta=cuenta, nombre="Otro evento")
        tipo = make_tipo()
        with pytest.raises(TicketTypeNotFoundError):
            create_order(user=user, event_id=otro.pk, items=[_item(tipo)])

    def test_unknown_event(self, user, tipo):
        with pytest.raises(EventNotFoundError):
            create_order(user=user, event_id=999999, items=[_item(tipo)])


@pytest.mark.django_db
class TestOrderCreation:
    """Tests for the persisted order."""

    def test_order_snapshots_price_and_attendees(self, user, evento, tipo):
        """Items keep the unit price at purchase time and the attendee list."""
        orden, descuento = create_order(
            user=user, event_id=evento.pk,
            items=[_item(tipo, 2, [{"name": " Rosa ", "dni": "87654321"}])],
        )
        tipo.precio = Decimal("99.00")
        tipo.save()

        item = orden.items.get()
        assert orden.estado == Orden.PENDING
        assert orden.subtotal == Decimal("50.00")
        assert orden.total == Decimal("50.00")
        assert descuento == Decimal("0")
        assert item.precio_unitario == Decimal("25.00")
        assert item.asistentes == [{"name": "Rosa", "dni": "87654321"}]

    def test_mixed_currencies_rejected(self, user, evento, make_tipo):
        soles = make_tipo("Soles", moneda="PEN")
        dolares = make_tipo("Dolares", moneda="USD")
        with pytest.raises(OrderPayloadError):
            create_order(user=user, event_id=evento.pk, items=[_item(soles), _item(dolares)])
        soles.refresh_from_db()
        assert soles.vendidos == 0

    def test_no_tickets_before_payment(self, user, evento, tipo):
        orden, _ = create_order(user=user, event_id=evento.pk, items=[_item(tipo)])
        assert not orden.tickets.exists()


@pytest.mark.django_db
class TestOrderDiscounts:
    """Tests for discount application inside checkout."""

    @pytest.fixture
    def fixed_ten(self, evento):
        return DiscountCode.objects.create(
            codigo="menos10", tipo=DiscountCode.FIXED, valor=Decimal("10"), compra_minima=Decimal("20"),
        )

    def test_below_minimum_purchase_rejected(self, user, evento, make_tipo, fixed_ten):
        """FIXED 10 with minimum 20 is rejected for a subtotal of 15."""
        tipo = make_tipo(precio=Decimal("15.00"), capacidad=10)
        with pytest.raises(DiscountRejectedError) as exc:
            create_order(user=user, event_id=evento.pk, items=[_item(tipo)], discount_code_id=fixed_ten.pk)

        assert exc.value.reason == Rejection.BELOW_MINIMUM
        assert exc.value.message == "Compra mínima requerida: S/ 20.00"
        tipo.refresh_from_db()
        assert tipo.vendidos == 0
        assert not DiscountUsage.objects.exists()

    def test_fixed_discount_applied(self, user, evento, make_tipo, fixed_ten):
        """FIXED 10 with minimum 20 on a subtotal of 25 gives total 15."""
        tipo = make_tipo(precio=Decimal("25.00"))
        orden, descuento = create_order(
            user=user, event_id=evento.pk, items=[_item(tipo)], discount_code_id=fixed_ten.pk,
        )
        assert descuento == Decimal("10.00")
        assert orden.total == Decimal("15.00")
        usage = DiscountUsage.objects.get()
        assert (usage.orden_id, usage.usuario_id, usage.monto_ahorrado) == (orden.pk, user.pk, Decimal("10.00"))

    def test_per_user_cap(self, user, other_user, evento, tipo):
        """usos_por_usuario=1 blocks the second order of the same buyer only."""
        code = DiscountCode.objects.create(
            codigo="UNAVEZ", tipo=DiscountCode.PERCENTAGE, valor=Decimal("20"), usos_por_usuario=1,
        )
        create_order(user=user, event_id=evento.pk, items=[_item(tipo)], discount_code_id=code.pk)

        with pytest.raises(DiscountRejectedError) as exc:
            create_order(user=user, event_id=evento.pk, items=[_item(tipo)], discount_code_id=code.pk)
        assert exc.value.reason == Rejection.EXHAUSTED_FOR_USER

        orden, descuento = create_order(
            user=other_user, event_id=evento.pk, items=[_item(tipo)], discount_code_id=code.pk,
        )
        assert descuento == Decimal("5.00")
        assert DiscountUsage.objects.count() == 2

    def test_global_cap(self, user, other_user, evento, tipo):
        code = DiscountCode.objects.create(
            codigo="SOLO1", tipo=DiscountCode.FIXED, valor=Decimal("5"), usos_maximos=1,
        )
        create_order(user=user, event_id=evento.pk, items=[_item(tipo)], discount_code_id=code.pk)
        with pytest.raises(DiscountRejectedError) as exc:
            create_order(user=other_user, event_id=evento.pk, items=[_item(tipo)], discount_code_id=code.pk)
        assert exc.value.reason == Rejection.EXHAUSTED

    def test_expired_code(self, user, evento, tipo):
        code = DiscountCode.objects.create(
            codigo="VIEJO", tipo=DiscountCode.FIXED, valor=Decimal("5"),
            vigente_hasta=timezone.now() - timedelta(days=1),
        )
        with pytest.raises(DiscountRejectedError) as exc:
            create_order(user=user, event_id=evento.pk, items=[_item(tipo)], discount_code_id=code.pk)
        assert exc.value.reason == Rejection.EXPIRED


@pytest.mark.django_db
class TestFulfilment:
    """Tests for fulfill_paid_order."""

    def test_issues_one_ticket_per_seat(self, user, evento, tipo):
        """Attendees fill tickets in order; missing ones fall back to the buyer."""
        orden, _ = create_order(
            user=user, event_id=evento.pk,
            items=[_item(tipo, 2, [{"name": "Rosa Quispe", "dni": "87654321"}])],
        )
        orden, already_paid = fulfill_paid_order(orden.pk, provider_ref="REF-1")

        assert not already_paid
        assert orden.estado == Orden.PAID
        assert orden.paid_at is not None
        names = sorted(orden.tickets.values_list("attendee_name", flat=True))
        assert names == ["Ana Pérez", "Rosa Quispe"]
        assert set(orden.tickets.values_list("estado", flat=True)) == {Ticket.ACTIVE}

    def test_is_idempotent_and_keeps_capacity(self, user, evento, tipo):
        """A repeated payment signal neither duplicates tickets nor touches vendidos."""
        orden, _ = create_order(user=user, event_id=evento.pk, items=[_item(tipo, 3)])
        fulfill_paid_order(orden.pk)
        _, already_paid = fulfill_paid_order(orden.pk)

        tipo.refresh_from_db()
        assert already_paid
        assert Ticket.objects.filter(orden=orden).count() == 3
        assert tipo.vendidos == 3

    def test_cancelled_order_not_payable(self, user, evento, tipo):
        orden, _ = create_order(user=user, event_id=evento.pk, items=[_item(tipo)])
        Orden.objects.filter(pk=orden.pk).update(estado=Orden.CANCELLED)
        with pytest.raises(OrderNotPayableError):
            fulfill_paid_order(orden.pk)
