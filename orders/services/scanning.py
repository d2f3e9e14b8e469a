"""
Validación en puerta. Cada lectura deja un Scan; los VALID son la fuente
de verdad de qué días/usos se consumieron.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from django.db import transaction
from django.utils import timezone

from core.errors import InvalidQRError
from tickets.schedule import PackageEntitlement, entitlement_plan
from orders import qr
from orders.models import Scan, Ticket, TicketDayEntitlement
from orders.services.entitlements import attendance_summary, materialize, reconcile_scans

logger = logging.getLogger("ticketf.scans")

MESSAGES = {
    "VALID": "Asistencia registrada",
    "INVALID": "Código QR inválido",
    "INVALID_SIGNATURE": "Código QR manipulado o inválido",
    "TICKET_NOT_FOUND": "Ticket no encontrado",
    "CANCELLED": "Ticket cancelado",
    "EXPIRED": "Ticket expirado",
    "WRONG_EVENT": "Este ticket es para otro evento",
    "WRONG_DAY": "El ticket no es válido para hoy",
    "NO_CLASSES": "No tiene clases disponibles",
    "ALREADY_USED": "Asistencia ya registrada hoy",
}


@dataclass
class ScanOutcome:
    valid: bool
    reason: str
    ticket: Optional[Ticket] = None
    scanned_at: Optional[object] = None
    attendance: dict = field(default_factory=dict)

    @property
    def message(self):
        return MESSAGES[self.reason]


def _log(ticket, staff, evento_id, today, result, notes=""):
    return Scan.objects.create(
        ticket=ticket, staff=staff, evento_id=evento_id, fecha=today, result=result, notes=notes,
    )


def _check_day(ticket, plan, entitlements, today):
    """Devuelve (result, reason) si el día no corresponde, o None si puede entrar."""
    by_date = {e.fecha: e for e in entitlements}
    ent = by_date.get(today)
    if ent is not None and ent.estado == TicketDayEntitlement.USED:
        return "ALREADY_USED", "ALREADY_USED"

    if isinstance(plan, PackageEntitlement):
        if ticket.evento.tiene_rango and not ticket.evento.contiene(today):
            return "WRONG_DAY", "WRONG_DAY"
        used = sum(1 for e in entitlements if e.estado == TicketDayEntitlement.USED)
        if used >= plan.total_slots:
            return "WRONG_DAY", "NO_CLASSES"
        return None

    if ent is None:
        return "WRONG_DAY", "WRONG_DAY"
    return None


def _admit(*, staff, event_id, today, lookup, qr_date=None, via="qr"):
    """
    Chequeos comunes a la lectura de QR y al ingreso manual por código.
    qr_date=None omite la comparación con la fecha firmada en el QR.
    """
    with transaction.atomic():
        # bloqueo del ticket: dos lectores simultáneos no consumen el mismo día
        ticket = (
            Ticket.objects.select_for_update()
            .select_related("evento", "tipo")
            .filter(**lookup)
            .first()
        )
        if ticket is None:
            return ScanOutcome(valid=False, reason="TICKET_NOT_FOUND")

        plan = entitlement_plan(ticket.tipo, ticket.evento)
        materialize(ticket, plan)
        reconcile_scans(ticket)
        entitlements = list(ticket.entitlements.order_by("fecha"))

        def reject(result, reason, notes=""):
            _log(ticket, staff, event_id, today, result, notes or reason)
            logger.info("scan %s ticket #%s rechazado: %s", via, ticket.pk, reason)
            return ScanOutcome(
                valid=False, reason=reason, ticket=ticket,
                attendance=attendance_summary(plan, entitlements),
            )

        if ticket.estado != Ticket.ACTIVE:
            reason = "CANCELLED" if ticket.estado == Ticket.CANCELLED else "EXPIRED"
            return reject("EXPIRED", reason, f"Estado: {ticket.estado}")
        if str(ticket.evento_id) != str(event_id):
            return reject("WRONG_EVENT", "WRONG_EVENT")
        if qr_date is not None and qr_date != today.isoformat():
            return reject("WRONG_DAY", "WRONG_DAY", f"QR del {qr_date}")

        rejected = _check_day(ticket, plan, entitlements, today)
        if rejected:
            return reject(*rejected)

        scan = _log(ticket, staff, event_id, today, Scan.VALID, "" if via == "qr" else "Ingreso manual")
        reconcile_scans(ticket)
        entitlements = list(ticket.entitlements.order_by("fecha"))

    logger.info("scan %s ticket #%s válido para %s", via, ticket.pk, today)
    return ScanOutcome(
        valid=True,
        reason="VALID",
        ticket=ticket,
        scanned_at=scan.scanned_at,
        attendance=attendance_summary(plan, entitlements),
    )


def validate_scan(*, staff, raw_qr, event_id, today: Optional[date] = None):
    today = today or timezone.localdate()

    try:
        payload = qr.read_payload(raw_qr)
    except InvalidQRError as exc:
        logger.info("scan rechazado: %s", exc.reason)
        return ScanOutcome(valid=False, reason=exc.reason)

    return _admit(
        staff=staff,
        event_id=event_id,
        today=today,
        lookup={"pk": payload["ticket_id"], "code": payload["ticket_code"]},
        qr_date=payload["date"],
    )


def lookup_scan(*, staff, ticket_code, event_id, today: Optional[date] = None):
    """Ingreso manual cuando el QR no se puede leer: mismo control de día, sin firma."""
    today = today or timezone.localdate()
    code = (ticket_code or "").strip().upper()
    if not code:
        return ScanOutcome(valid=False, reason="TICKET_NOT_FOUND")
    return _admit(staff=staff, event_id=event_id, today=today, lookup={"code": code}, via="manual")
