import io, base64, secrets, qrcode

from django.conf import settings
from django.core import signing

from core.errors import InvalidQRError

QR_SALT = "orders.qr"
PAYLOAD_FIELDS = ("ticket_id", "event_id", "user_id", "ticket_code", "date", "nonce")


def build_payload(ticket, fecha):
    return {
        "ticket_id": ticket.pk,
        "event_id": ticket.evento_id,
        "user_id": ticket.usuario_id,
        "ticket_code": ticket.code,
        "date": fecha.isoformat(),
        "nonce": secrets.token_hex(8),
    }


def sign_payload(payload):
    return signing.dumps(payload, key=settings.QR_SECRET, salt=QR_SALT, compress=True)


def read_payload(raw):
    """Devuelve el payload verificado o levanta InvalidQRError si fue manipulado."""
    try:
        payload = signing.loads((raw or "").strip(), key=settings.QR_SECRET, salt=QR_SALT)
    except signing.BadSignature:
        raise InvalidQRError("Código QR manipulado o inválido", reason="INVALID_SIGNATURE")
    if not isinstance(payload, dict) or any(not payload.get(f) for f in PAYLOAD_FIELDS):
        raise InvalidQRError()
    return payload


def qr_data_url(data: str) -> str:
    img = qrcode.make(data)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    b64 = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:image/png;base64,{b64}"
