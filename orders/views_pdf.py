from io import BytesIO

import qrcode
from django.http import HttpResponse, Http404
from django.shortcuts import get_object_or_404
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from accounts.utils import login_required_json
from .models import Orden, Ticket
from .services.entitlements import QR_NO_ENTITLEMENT, QR_OK, resolve_ticket_view


@login_required_json
def order_tickets_pdf(request, order_id: int):
    """Un ticket por página, cada uno con el QR de su próxima fecha habilitada."""
    orden = get_object_or_404(Orden, id=order_id, usuario=request.user)
    tickets = list(Ticket.objects.filter(orden=orden).select_related("tipo", "evento"))

    if not tickets:
        raise Http404("No hay tickets para esta orden.")

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4

    for idx, t in enumerate(tickets, start=1):
        view = resolve_ticket_view(t)

        c.setFont("Helvetica-Bold", 16)
        c.drawString(20*mm, height - 20*mm, f"{t.evento.nombre}")
        c.setFont("Helvetica", 12)
        c.drawString(20*mm, height - 28*mm, f"Orden #{orden.id}  •  Ticket #{t.id}")
        c.drawString(20*mm, height - 36*mm, f"Tipo: {t.tipo.nombre}")
        c.drawString(20*mm, height - 44*mm, f"Código: {t.code}")
        c.drawString(20*mm, height - 52*mm, f"Asistente: {t.attendee_name} {t.attendee_dni}".strip())

        qr_size = 40 * mm
        if view.qr_state == QR_OK:
            c.drawString(20*mm, height - 60*mm, f"Válido para: {view.display_date:%d/%m/%Y}")
            qr_img = qrcode.make(view.qr_payload).convert("RGB")
            c.drawInlineImage(qr_img, width - 20*mm - qr_size, height - 20*mm - qr_size, qr_size, qr_size)
        elif view.qr_state == QR_NO_ENTITLEMENT:
            c.drawString(20*mm, height - 60*mm, "Sin fechas disponibles")
        else:
            c.setFillColor(colors.red)
            c.drawString(20*mm, height - 60*mm, f"Ticket {t.get_estado_display().lower()}")
            c.setFillColor(colors.black)

        c.setStrokeColor(colors.grey)
        c.rect(15*mm, 15*mm, width - 30*mm, height - 60*mm, stroke=1, fill=0)

        c.setFont("Helvetica-Oblique", 9)
        c.drawRightString(width - 15*mm, 12*mm, f"Página {idx} de {len(tickets)}")

        c.showPage()

    c.save()
    buffer.seek(0)

    filename = f"orden_{orden.id}_tickets.pdf"
    return HttpResponse(
        buffer.getvalue(),
        content_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
