# orders/services/checkout.py
"""
Creación de órdenes y confirmación de pago.

create_order() corre entero dentro de una transacción con plazo: descuento,
reserva de capacidad por ítem, orden + ítems y uso del descuento. Si algo
falla no queda nada, tampoco los incrementos de `vendidos`.
"""
import logging
from decimal import Decimal

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from core.db import TransactionTimeout, atomic_with_deadline
from core.errors import (
    DomainError,
    EventNotFoundError,
    OrderNotFoundError,
    OrderNotPayableError,
    OrderPayloadError,
    RetryableOrderError,
)
from events.models import Evento
from tickets import ledger
from tickets.discounts import Rejection, evaluate, reject
from tickets.models import DiscountCode, DiscountUsage
from orders.models import Orden, OrderItem, Ticket

logger = logging.getLogger("ticketf.orders")


def _clean_attendees(raw):
    attendees = []
    for a in raw or []:
        if not isinstance(a, dict):
            raise OrderPayloadError("Datos de asistentes inválidos")
        attendees.append({
            "name": (a.get("name") or "").strip(),
            "dni": (a.get("dni") or "").strip(),
        })
    return attendees


def normalize_items(items):
    """
    Valida la forma del carrito antes de abrir la transacción.
    Agrupa líneas repetidas del mismo tipo y las ordena por id (orden de bloqueo).
    """
    if not isinstance(items, list) or not items:
        raise OrderPayloadError()

    max_qty = settings.ORDER_MAX_QUANTITY_PER_ITEM
    merged = {}
    for it in items:
        if not isinstance(it, dict):
            raise OrderPayloadError()
        try:
            tipo_id = int(it.get("ticketTypeId", it.get("tipo_ticket_id")))
            cantidad = int(it.get("quantity", it.get("cantidad")))
        except (TypeError, ValueError):
            raise OrderPayloadError("Ítems inválidos")
        if cantidad <= 0 or cantidad > max_qty:
            raise OrderPayloadError("Cantidad inválida para un tipo de ticket.")
        attendees = _clean_attendees(it.get("attendees"))
        line = merged.setdefault(tipo_id, {"tipo_id": tipo_id, "cantidad": 0, "attendees": []})
        line["cantidad"] += cantidad
        line["attendees"].extend(attendees)

    for line in merged.values():
        if len(line["attendees"]) > line["cantidad"]:
            raise OrderPayloadError("Hay más asistentes que entradas")
    return [merged[k] for k in sorted(merged)]


def _lock_discount(discount_code_id, *, user, evento):
    """
    Bloquea el código (FOR UPDATE) antes de contar usos: dos órdenes del mismo
    usuario con el mismo código quedan en fila y la segunda ve el uso de la primera.
    """
    code = DiscountCode.objects.select_for_update().filter(pk=discount_code_id).first()
    if code is None:
        reject(Rejection.NOT_FOUND)
    usage_count = DiscountUsage.objects.filter(discount_code=code).count()
    user_usage_count = DiscountUsage.objects.filter(discount_code=code, usuario=user).count()
    # subtotal=None: la compra mínima se revisa cuando el carrito tenga precio
    evaluate(
        code,
        event_id=evento.pk,
        subtotal=None,
        usage_count=usage_count,
        user_usage_count=user_usage_count,
    )
    return code, usage_count, user_usage_count


def create_order(*, user, event_id, items, discount_code_id=None):
    """
    Crea una orden PENDING. Devuelve (orden, descuento).

    Levanta DomainError para rechazos de negocio (capacidad, descuento,
    payload) y RetryableOrderError para timeouts o conflictos de escritura.
    """
    lines = normalize_items(items)
    try:
        event_id = int(event_id)
        discount_code_id = int(discount_code_id) if discount_code_id else None
    except (TypeError, ValueError):
        raise OrderPayloadError()
    evento = Evento.objects.filter(pk=event_id).first()
    if evento is None:
        raise EventNotFoundError(event_id)

    try:
        with atomic_with_deadline(settings.ORDER_TRANSACTION_TIMEOUT) as deadline:
            code = None
            if discount_code_id:
                code, usage_count, user_usage_count = _lock_discount(
                    discount_code_id, user=user, evento=evento,
                )

            subtotal = Decimal("0")
            moneda = None
            items_data = []
            for line in lines:
                deadline.check()
                tipo = ledger.reserve(line["tipo_id"], line["cantidad"], evento_id=evento.pk)
                if moneda and tipo.moneda != moneda:
                    raise OrderPayloadError("No se pueden mezclar monedas en una misma orden")
                moneda = tipo.moneda
                line_subtotal = tipo.precio * line["cantidad"]
                subtotal += line_subtotal
                items_data.append(OrderItem(
                    tipo=tipo,
                    cantidad=line["cantidad"],
                    precio_unitario=tipo.precio,
                    subtotal=line_subtotal,
                    asistentes=line["attendees"],
                ))

            descuento = Decimal("0")
            if code is not None:
                quote = evaluate(
                    code,
                    event_id=evento.pk,
                    subtotal=subtotal,
                    usage_count=usage_count,
                    user_usage_count=user_usage_count,
                )
                descuento = quote.discount_amount

            deadline.check()
            orden = Orden.objects.create(
                usuario=user,
                evento=evento,
                estado=Orden.PENDING,
                subtotal=subtotal,
                descuento=descuento,
                total=max(Decimal("0"), subtotal - descuento),
                moneda=moneda or settings.DEFAULT_CURRENCY,
                provider="IZIPAY",
            )
            for item in items_data:
                item.orden = orden
            OrderItem.objects.bulk_create(items_data)

            if code is not None:
                DiscountUsage.objects.create(
                    discount_code=code,
                    usuario=user,
                    orden=orden,
                    monto_ahorrado=descuento,
                )
    except DomainError as exc:
        logger.info("orden rechazada (usuario=%s evento=%s): %s", user.pk, event_id, exc)
        raise
    except (DatabaseError, TransactionTimeout) as exc:
        logger.warning("orden abortada (usuario=%s evento=%s): %s", user.pk, event_id, exc)
        raise RetryableOrderError() from exc

    logger.info("orden #%s creada: total=%s descuento=%s", orden.pk, orden.total, descuento)
    return orden, descuento


def fulfill_paid_order(order_id, *, provider_ref="", provider_response=None):
    """
    Marca la orden PAID (señal externa del proveedor de pagos) y emite un
    Ticket ACTIVE por asiento. Idempotente: una orden ya pagada con tickets
    no se toca. No modifica `vendidos`: la capacidad se reservó al crear la orden.

    Devuelve (orden, ya_pagada).
    """
    with transaction.atomic():
        orden = (
            Orden.objects.select_for_update()
            .select_related("usuario")
            .filter(pk=order_id)
            .first()
        )
        if orden is None:
            raise OrderNotFoundError()
        if orden.estado in (Orden.CANCELLED, Orden.REFUNDED):
            raise OrderNotPayableError(orden.estado)

        if orden.estado == Orden.PAID and orden.tickets.exists():
            return orden, True

        orden.estado = Orden.PAID
        orden.paid_at = orden.paid_at or timezone.now()
        if provider_ref:
            orden.provider_ref = provider_ref
        if provider_response is not None:
            orden.provider_response = provider_response
        orden.save(update_fields=["estado", "paid_at", "provider_ref", "provider_response"])

        tickets = []
        for item in orden.items.select_related("tipo"):
            asistentes = item.asistentes or []
            for i in range(item.cantidad):
                a = asistentes[i] if i < len(asistentes) else {}
                tickets.append(Ticket(
                    orden=orden,
                    evento_id=orden.evento_id,
                    tipo=item.tipo,
                    usuario=orden.usuario,
                    estado=Ticket.ACTIVE,
                    attendee_name=a.get("name") or orden.usuario.display_name,
                    attendee_dni=a.get("dni") or "",
                ))
        Ticket.objects.bulk_create(tickets)

    logger.info("orden #%s pagada, %s tickets emitidos", orden.pk, len(tickets))
    return orden, False
