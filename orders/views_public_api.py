import json
from datetime import date

from django.conf import settings
from django.db.models import Q
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from accounts.utils import login_required_json, require_role, has_role
from core.errors import (
    DiscountRejectedError,
    DomainError,
    ErrorCode,
    EventNotFoundError,
    OrderPayloadError,
    RetryableOrderError,
)
from events.models import Evento
from tickets.discounts import preview_discount
from .models import Orden, Ticket
from .qr import qr_data_url
from .services.checkout import create_order, fulfill_paid_order
from .services.courtesy import claim_courtesy, verify_courtesy
from .services.entitlements import resolve_ticket_view
from .services.scanning import lookup_scan, validate_scan

CLAIM_STATUS = {
    ErrorCode.COURTESY_NOT_FOUND: 404,
    ErrorCode.COURTESY_ALREADY_CLAIMED: 400,
    ErrorCode.COURTESY_EXPIRED: 400,
    ErrorCode.ATTENDEE_REQUIRED: 400,
}


def _json_body(request):
    try:
        data = json.loads(request.body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, ValueError):
        raise OrderPayloadError("Payload inválido.")
    if not isinstance(data, dict):
        raise OrderPayloadError("Payload inválido.")
    return data


def _error(exc, status):
    return JsonResponse({"success": False, "error": exc.message, "code": exc.code.value}, status=status)


def _money(value):
    return f"{value:.2f}"


@csrf_exempt
@require_POST
@login_required_json
def crear_orden(request):
    """
    Espera JSON:
      {
        "eventId": 1,
        "items": [{"ticketTypeId": 3, "quantity": 2, "attendees": [{"name": "...", "dni": "..."}]}],
        "discountCodeId": 7        # opcional
      }
    """
    try:
        data = _json_body(request)
        if not data.get("eventId"):
            raise OrderPayloadError()
        orden, descuento = create_order(
            user=request.user,
            event_id=data["eventId"],
            items=data.get("items"),
            discount_code_id=data.get("discountCodeId"),
        )
    except OrderPayloadError as exc:
        return _error(exc, 400)
    except RetryableOrderError as exc:
        return _error(exc, 503)
    except EventNotFoundError as exc:
        return _error(exc, 404)
    except DomainError as exc:
        # rechazos de negocio: el mensaje va tal cual al comprador
        return _error(exc, 500)

    return JsonResponse({
        "success": True,
        "data": {
            "orderId": orden.pk,
            "totalAmount": _money(orden.total),
            "discountAmount": _money(descuento),
            "currency": orden.moneda,
        },
    }, status=201)


@csrf_exempt
@require_POST
def validar_descuento(request):
    """Vista previa del descuento; no registra uso ni bloquea nada."""
    try:
        data = _json_body(request)
    except OrderPayloadError as exc:
        return _error(exc, 400)

    code = (data.get("code") or "").strip()
    if not code:
        return JsonResponse({"valid": False, "error": "Código requerido"}, status=400)

    subtotal = data.get("subtotal")
    try:
        quote = preview_discount(
            code,
            user=request.user,
            event_id=data.get("eventId"),
            subtotal=str(subtotal) if subtotal not in (None, "") else None,
        )
    except DiscountRejectedError as exc:
        return JsonResponse({"valid": False, "error": exc.message, "reason": exc.reason.value})
    except ArithmeticError:
        return JsonResponse({"valid": False, "error": "Subtotal inválido"}, status=400)

    return JsonResponse({
        "valid": True,
        "discount": {
            "id": quote.code_id,
            "code": quote.codigo,
            "type": quote.tipo,
            "value": _money(quote.valor),
        },
        "discountAmount": _money(quote.discount_amount),
    })


@require_GET
def cortesia_verificar(request):
    code = (request.GET.get("code") or "").strip()
    if not code:
        return JsonResponse({"valid": False, "error": "Código requerido"}, status=400)
    return JsonResponse(verify_courtesy(code))


@csrf_exempt
@require_POST
@login_required_json
def cortesia_canjear(request):
    try:
        data = _json_body(request)
    except OrderPayloadError as exc:
        return _error(exc, 400)

    code = (data.get("code") or "").strip()
    if not code:
        return JsonResponse({"success": False, "error": "Código requerido"}, status=400)

    try:
        ticket = claim_courtesy(
            user=request.user,
            code=code,
            attendee_name=data.get("attendeeName"),
            attendee_dni=data.get("attendeeDni"),
        )
    except DomainError as exc:
        return _error(exc, CLAIM_STATUS.get(exc.code, 500))

    return JsonResponse({
        "success": True,
        "message": "¡Cortesía canjeada exitosamente!",
        "data": {
            "ticketId": ticket.pk,
            "eventTitle": ticket.evento.nombre,
            "ticketType": ticket.tipo.nombre,
            "attendeeName": ticket.attendee_name,
            "attendeeDni": ticket.attendee_dni,
        },
    })


def _serialize_view(view):
    t = view.ticket
    return {
        "id": t.pk,
        "ticketCode": t.code,
        "status": t.estado,
        "attendeeName": t.attendee_name,
        "attendeeDni": t.attendee_dni,
        "event": {
            "id": t.evento.pk,
            "title": t.evento.nombre,
            "startDate": t.evento.fecha_inicio.isoformat() if t.evento.fecha_inicio else None,
            "endDate": t.evento.fecha_termino.isoformat() if t.evento.fecha_termino else None,
            "venue": t.evento.ubicacion,
        },
        "ticketType": {
            "id": t.tipo.pk,
            "name": t.tipo.nombre,
            "isPackage": t.tipo.is_package,
            "packageDaysCount": t.tipo.package_days_count,
        },
        "entitlements": [
            {
                "date": e.fecha.isoformat(),
                "status": e.estado,
                "usedAt": e.used_at.isoformat() if e.used_at else None,
            }
            for e in view.entitlements
        ],
        "attendance": view.attendance,
        "scanCount": view.scan_count,
        "qrDate": view.display_date.isoformat(),
        "qrStatus": view.qr_state,
        "qrPayload": view.qr_payload,
        "qrDataUrl": qr_data_url(view.qr_payload) if view.has_qr else None,
    }


@require_GET
@login_required_json
def ticket_detalle(request, ticket_ref):
    """Se recalcula en cada llamada; no hay nada precomputado al comprar."""
    lookup = Q(code=ticket_ref.upper())
    if ticket_ref.isdigit():
        lookup |= Q(pk=int(ticket_ref))
    ticket = (
        Ticket.objects
        .select_related("evento", "tipo")
        .filter(lookup, usuario=request.user)
        .first()
    )
    if ticket is None:
        return JsonResponse({"success": False, "error": "Ticket no encontrado"}, status=404)

    requested = None
    date_param = request.GET.get("date")
    if date_param:
        try:
            requested = date.fromisoformat(date_param)
        except ValueError:
            return JsonResponse({"success": False, "error": "Fecha inválida"}, status=400)

    view = resolve_ticket_view(ticket, requested_date=requested)
    return JsonResponse({"success": True, "data": _serialize_view(view)})


def _scan_body(outcome):
    body = {
        "success": outcome.valid,
        "valid": outcome.valid,
        "reason": outcome.reason,
        "message": outcome.message,
    }
    if outcome.ticket is not None:
        t = outcome.ticket
        body["ticket"] = {
            "id": t.pk,
            "ticketCode": t.code,
            "attendeeName": t.attendee_name,
            "attendeeDni": t.attendee_dni,
            "eventTitle": t.evento.nombre,
            "ticketTypeName": t.tipo.nombre,
        }
        body["attendance"] = outcome.attendance
    if outcome.scanned_at:
        body["scannedAt"] = outcome.scanned_at.isoformat()
    return body


@csrf_exempt
@require_POST
@require_role("superadmin", "admin", "staff")
def scan_validar(request):
    try:
        data = _json_body(request)
    except OrderPayloadError as exc:
        return _error(exc, 400)

    qr_data, event_id = data.get("qrData"), data.get("eventId")
    if not qr_data or not str(event_id or "").isdigit():
        return JsonResponse({"success": False, "error": "Datos incompletos"}, status=400)
    evento = get_object_or_404(Evento, pk=event_id)

    outcome = validate_scan(staff=request.user, raw_qr=qr_data, event_id=evento.pk)
    return JsonResponse(_scan_body(outcome))


@csrf_exempt
@require_POST
@login_required_json
def pago_mock(request):
    """Confirmación de pago simulada; reemplaza al webhook del proveedor en desarrollo."""
    if settings.PAYMENTS_MODE != "mock":
        return JsonResponse({"success": False, "error": "Ruta no disponible"}, status=404)
    try:
        data = _json_body(request)
    except OrderPayloadError as exc:
        return _error(exc, 400)

    order_id = str(data.get("orderId") or "")
    if not order_id.isdigit():
        return JsonResponse({"success": False, "error": "Orden inválida"}, status=400)
    orden = Orden.objects.filter(pk=int(order_id)).first()
    if orden is None:
        return JsonResponse({"success": False, "error": "Orden no encontrada"}, status=404)
    if orden.usuario_id != request.user.pk and not has_role(request.user, "superadmin", "admin"):
        return JsonResponse({"success": False, "error": "No autorizado"}, status=403)

    try:
        orden, already_paid = fulfill_paid_order(orden.pk, provider_ref=f"MOCK-{orden.pk}",
                                                 provider_response={"mode": "mock"})
    except DomainError as exc:
        return _error(exc, 400)

    return JsonResponse({
        "success": True,
        "alreadyPaid": already_paid,
        "data": {"orderId": orden.pk, "status": orden.estado},
    })


@csrf_exempt
@require_POST
@require_role("superadmin", "admin", "staff")
def scan_buscar(request):
    """Ingreso manual por código de ticket cuando el QR no se puede leer."""
    try:
        data = _json_body(request)
    except OrderPayloadError as exc:
        return _error(exc, 400)

    ticket_code, event_id = (data.get("ticketCode") or "").strip(), data.get("eventId")
    if not ticket_code or not str(event_id or "").isdigit():
        return JsonResponse({"success": False, "error": "Datos incompletos"}, status=400)
    evento = get_object_or_404(Evento, pk=event_id)

    outcome = lookup_scan(staff=request.user, ticket_code=ticket_code, event_id=evento.pk)
    return JsonResponse(_scan_body(outcome))


@require_GET
@login_required_json
def mis_tickets(request):
    """Tickets del usuario, más recientes primero. Sin QR: ese va en el detalle."""
    tickets = (
        Ticket.objects
        .filter(usuario=request.user)
        .select_related("evento", "tipo", "orden", "courtesy_info")
        .prefetch_related("entitlements")
        .order_by("-created_at")
    )
    data = []
    for t in tickets:
        data.append({
            "id": t.pk,
            "ticketCode": t.code,
            "status": t.estado,
            "attendeeName": t.attendee_name,
            "event": {"id": t.evento_id, "title": t.evento.nombre,
                      "startDate": t.evento.fecha_inicio.isoformat() if t.evento.fecha_inicio else None},
            "ticketType": {"id": t.tipo_id, "name": t.tipo.nombre, "isPackage": t.tipo.is_package},
            "order": {"id": t.orden_id, "status": t.orden.estado,
                      "paidAt": t.orden.paid_at.isoformat() if t.orden.paid_at else None},
            "isCourtesy": hasattr(t, "courtesy_info"),
            "entitlements": [
                {"date": e.fecha.isoformat(), "status": e.estado} for e in t.entitlements.all()
            ],
        })
    return JsonResponse({"success": True, "data": data})


@require_GET
@login_required_json
def orden_detalle(request, order_id):
    orden = Orden.objects.select_related("evento").filter(pk=order_id).first()
    if orden is None:
        return JsonResponse({"success": False, "error": "Orden no encontrada"}, status=404)
    if orden.usuario_id != request.user.pk and not has_role(request.user, "superadmin", "admin"):
        return JsonResponse({"success": False, "error": "No autorizado"}, status=403)

    response = JsonResponse({
        "success": True,
        "data": {
            "id": orden.pk,
            "status": orden.estado,
            "totalAmount": _money(orden.total),
            "currency": orden.moneda,
            "paidAt": orden.paid_at.isoformat() if orden.paid_at else None,
            "eventTitle": orden.evento.nombre,
        },
    })
    response["Cache-Control"] = "no-store"
    return response
