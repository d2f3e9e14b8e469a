"""
Cortesías: lotes de códigos pre-generados que se canjean una sola vez por
un ticket gratuito. No pasan por el contador de capacidad.
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.errors import (
    AttendeeDataRequiredError,
    CourtesyAlreadyClaimedError,
    CourtesyExpiredError,
    CourtesyNotFoundError,
)
from orders.models import CourtesyBatch, CourtesyTicket, Orden, Ticket

logger = logging.getLogger("ticketf.courtesy")


def normalize_code(code):
    return (code or "").strip().upper()


def mask_dni(dni):
    if not dni:
        return None
    return f"****{dni[-4:]}"


def check_claimable(courtesy, now=None):
    """Mismo predicado para la verificación previa y para el canje."""
    if courtesy is None:
        raise CourtesyNotFoundError()
    if courtesy.estado != CourtesyTicket.PENDING:
        raise CourtesyAlreadyClaimedError()
    if courtesy.is_expired(now):
        raise CourtesyExpiredError()


def verify_courtesy(code):
    """
    Solo lectura: no abre transacción ni modifica nada.
    Devuelve dict con valid=False y el motivo si el código no sirve.
    """
    courtesy = (
        CourtesyTicket.objects
        .select_related("batch__evento", "batch__tipo")
        .filter(claim_code=normalize_code(code))
        .first()
    )
    try:
        check_claimable(courtesy)
    except (CourtesyNotFoundError, CourtesyAlreadyClaimedError, CourtesyExpiredError) as exc:
        return {"valid": False, "error": exc.message, "code": exc.code.value}

    evento = courtesy.batch.evento
    return {
        "valid": True,
        "event": {
            "id": evento.pk,
            "title": evento.nombre,
            "start_date": evento.fecha_inicio.isoformat() if evento.fecha_inicio else None,
            "venue": evento.ubicacion,
        },
        "ticket_type": courtesy.batch.tipo.nombre,
        "has_assigned_attendee": bool(courtesy.assigned_name and courtesy.assigned_dni),
        "assigned_name": courtesy.assigned_name or None,
        "assigned_dni_masked": mask_dni(courtesy.assigned_dni),
    }


def resolve_attendee(courtesy, attendee_name=None, attendee_dni=None):
    """Los datos pre-asignados mandan sobre lo que envía quien canjea."""
    name = courtesy.assigned_name or (attendee_name or "").strip()
    dni = courtesy.assigned_dni or (attendee_dni or "").strip()
    if not name or not dni:
        raise AttendeeDataRequiredError()
    return name, dni


def claim_courtesy(*, user, code, attendee_name=None, attendee_dni=None):
    """
    Canjea un código PENDING: orden PAID de monto 0 (provider COURTESY), ticket
    ACTIVE y cortesía CLAIMED, todo en una transacción.

    La fila se relee con FOR UPDATE y el cambio de estado es un UPDATE
    condicionado a estado=PENDING; de dos canjes simultáneos solo uno lo logra.
    """
    code = normalize_code(code)
    if not code:
        raise CourtesyNotFoundError()

    with transaction.atomic():
        courtesy = (
            CourtesyTicket.objects
            .select_for_update()
            .filter(claim_code=code)
            .first()
        )
        check_claimable(courtesy)
        name, dni = resolve_attendee(courtesy, attendee_name, attendee_dni)
        batch = CourtesyBatch.objects.select_related("evento", "tipo").get(pk=courtesy.batch_id)

        now = timezone.now()
        orden = Orden.objects.create(
            usuario=user,
            evento=batch.evento,
            estado=Orden.PAID,
            subtotal=Decimal("0"),
            descuento=Decimal("0"),
            total=Decimal("0"),
            moneda=batch.tipo.moneda,
            provider="COURTESY",
            paid_at=now,
        )
        ticket = Ticket.objects.create(
            orden=orden,
            evento=batch.evento,
            tipo=batch.tipo,
            usuario=user,
            estado=Ticket.ACTIVE,
            attendee_name=name,
            attendee_dni=dni,
        )
        updated = (
            CourtesyTicket.objects
            .filter(pk=courtesy.pk, estado=CourtesyTicket.PENDING)
            .update(estado=CourtesyTicket.CLAIMED, claimed_by=user, claimed_at=now, ticket=ticket)
        )
        if updated != 1:
            raise CourtesyAlreadyClaimedError()

    logger.info("cortesía %s canjeada por usuario=%s (ticket #%s)", code, user.pk, ticket.pk)
    return ticket


def generate_courtesy_batch(*, evento, tipo, cantidad, motivo, created_by=None, assigned=None, valid_days=None):
    """
    Crea el lote y sus códigos PENDING. `assigned` es opcional:
    [{"name": ..., "dni": ...}, ...] con exactamente `cantidad` elementos.
    """
    if cantidad <= 0:
        raise ValueError("La cantidad debe ser mayor a cero")
    if tipo.evento_id != evento.pk:
        raise ValueError("El tipo de ticket no pertenece al evento")
    if assigned and len(assigned) != cantidad:
        raise ValueError("La cantidad de asignados debe coincidir con la cantidad de entradas")

    ttl = valid_days if valid_days is not None else settings.COURTESY_CODE_TTL_DAYS
    expires_at = timezone.now() + timedelta(days=ttl)

    with transaction.atomic():
        batch = CourtesyBatch.objects.create(
            evento=evento, tipo=tipo, cantidad=cantidad, motivo=motivo, created_by=created_by,
        )
        codes = []
        for i in range(cantidad):
            a = (assigned or [{}] * cantidad)[i] or {}
            codes.append(CourtesyTicket(
                batch=batch,
                assigned_name=(a.get("name") or "").strip(),
                assigned_dni=(a.get("dni") or "").strip(),
                expires_at=expires_at,
            ))
        CourtesyTicket.objects.bulk_create(codes)

    logger.info("lote de cortesías #%s: %s códigos para %s", batch.pk, cantidad, tipo.nombre)
    return batch
