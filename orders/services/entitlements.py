"""
Derivación de días habilitados (entitlements) por ticket.

Las filas TicketDayEntitlement son una proyección de los Scan VALID: se
materializan perezosamente al leer el ticket y se reconcilian contra la
bitácora de scans en cada lectura. Ambas operaciones son idempotentes.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from django.db.models import Min
from django.utils import timezone

from tickets.schedule import PackageEntitlement, ScheduledEntitlement, derive_dates, entitlement_plan
from orders.models import Scan, Ticket, TicketDayEntitlement
from orders import qr

logger = logging.getLogger("ticketf.entitlements")

QR_OK = "OK"
QR_NO_ENTITLEMENT = "NO_ENTITLEMENT"
QR_TICKET_INACTIVE = "TICKET_INACTIVE"


@dataclass
class TicketView:
    ticket: Ticket
    plan: object
    entitlements: list
    scan_count: int
    display_date: date
    qr_state: str
    qr_payload: Optional[str] = None
    attendance: dict = field(default_factory=dict)

    @property
    def has_qr(self):
        return self.qr_payload is not None


def materialize(ticket, plan=None):
    """
    Crea las filas AVAILABLE que falten. Los paquetes no tienen fechas
    previas: sus filas nacen de los scans. Devuelve cuántas fechas se derivaron.
    """
    plan = plan or entitlement_plan(ticket.tipo, ticket.evento)
    if not isinstance(plan, ScheduledEntitlement):
        return 0
    fechas = derive_dates(plan.rule, ticket.evento)
    if fechas:
        TicketDayEntitlement.objects.bulk_create(
            [TicketDayEntitlement(ticket=ticket, fecha=f, estado=TicketDayEntitlement.AVAILABLE) for f in fechas],
            ignore_conflicts=True,
        )
    return len(fechas)


def reconcile_scans(ticket):
    """
    Sincroniza en un solo sentido: cada fecha con Scan VALID queda USED con
    used_at = primer scan válido de esa fecha. Re-ejecutarlo escribe lo mismo.
    """
    usados = (
        Scan.objects
        .filter(ticket=ticket, result=Scan.VALID)
        .values("fecha")
        .annotate(primero=Min("scanned_at"))
        .order_by("fecha")
    )
    rows = [
        TicketDayEntitlement(
            ticket=ticket,
            fecha=u["fecha"],
            estado=TicketDayEntitlement.USED,
            used_at=u["primero"],
        )
        for u in usados
    ]
    if rows:
        TicketDayEntitlement.objects.bulk_create(
            rows,
            update_conflicts=True,
            unique_fields=["ticket", "fecha"],
            update_fields=["estado", "used_at"],
        )
    return len(rows)


def attendance_summary(plan, entitlements):
    used = sum(1 for e in entitlements if e.estado == TicketDayEntitlement.USED)
    if isinstance(plan, PackageEntitlement):
        total = plan.total_slots
    else:
        total = len(entitlements)
    return {"total": total, "used": used, "remaining": max(total - used, 0)}


def _package_allows(ticket, plan, fecha, by_date):
    if ticket.evento.tiene_rango and not ticket.evento.contiene(fecha):
        return False
    ent = by_date.get(fecha)
    if ent is not None and ent.estado == TicketDayEntitlement.USED:
        return False
    used = sum(1 for e in by_date.values() if e.estado == TicketDayEntitlement.USED)
    return used < plan.total_slots


def select_display_date(plan, ticket, entitlements, requested_date=None, today=None):
    """
    Devuelve (fecha, habilitada).

    Con fecha pedida solo se valida esa fecha. Sin fecha, para tickets con
    calendario se elige la próxima fecha disponible desde hoy; si todas las
    disponibles quedaron atrás, la más antigua de ellas.
    """
    today = today or timezone.localdate()
    by_date = {e.fecha: e for e in entitlements}
    fecha = requested_date or today

    if isinstance(plan, PackageEntitlement):
        return fecha, _package_allows(ticket, plan, fecha, by_date)

    disponibles = sorted(e.fecha for e in entitlements if e.estado == TicketDayEntitlement.AVAILABLE)
    if requested_date is not None:
        return fecha, requested_date in disponibles
    if not disponibles:
        return fecha, False
    proxima = next((d for d in disponibles if d >= today), disponibles[0])
    return proxima, True


def resolve_ticket_view(ticket, requested_date=None, today=None):
    """Se calcula en cada lectura: materializa, reconcilia, elige fecha y firma el QR."""
    plan = entitlement_plan(ticket.tipo, ticket.evento)
    materialize(ticket, plan)
    reconcile_scans(ticket)

    entitlements = list(TicketDayEntitlement.objects.filter(ticket=ticket).order_by("fecha"))
    scan_count = Scan.objects.filter(ticket=ticket, result=Scan.VALID).count()

    fecha, habilitada = select_display_date(plan, ticket, entitlements, requested_date, today)

    if ticket.estado != Ticket.ACTIVE:
        qr_state = QR_TICKET_INACTIVE
    elif not habilitada:
        qr_state = QR_NO_ENTITLEMENT
    else:
        qr_state = QR_OK

    payload = None
    if qr_state == QR_OK:
        payload = qr.sign_payload(qr.build_payload(ticket, fecha))
    else:
        logger.debug("ticket %s sin QR para %s: %s", ticket.pk, fecha, qr_state)

    return TicketView(
        ticket=ticket,
        plan=plan,
        entitlements=entitlements,
        scan_count=scan_count,
        display_date=fecha,
        qr_state=qr_state,
        qr_payload=payload,
        attendance=attendance_summary(plan, entitlements),
    )
