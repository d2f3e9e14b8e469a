"""
Validación de códigos de descuento.

evaluate() es pura: recibe el código y los contadores ya leídos y responde
con el monto a descontar o levanta DiscountRejectedError. Registrar el uso
(DiscountUsage) es responsabilidad de quien crea la orden.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from django.utils import timezone

from core.errors import DiscountRejectedError
from .models import DiscountCode, DiscountUsage

CENT = Decimal("0.01")


class Rejection(Enum):
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    EXHAUSTED = "EXHAUSTED"
    EXHAUSTED_FOR_USER = "EXHAUSTED_FOR_USER"
    WRONG_EVENT = "WRONG_EVENT"
    BELOW_MINIMUM = "BELOW_MINIMUM"


MESSAGES = {
    Rejection.NOT_FOUND: "Código de descuento no válido",
    Rejection.INACTIVE: "Código de descuento no válido",
    Rejection.NOT_YET_VALID: "Código de descuento aún no vigente",
    Rejection.EXPIRED: "Código de descuento expirado",
    Rejection.EXHAUSTED: "Código de descuento agotado",
    Rejection.EXHAUSTED_FOR_USER: "Ya usaste este código el máximo permitido",
    Rejection.WRONG_EVENT: "Código de descuento no válido para este evento",
}


def reject(reason, message=None):
    raise DiscountRejectedError(reason, message or MESSAGES[reason])


@dataclass(frozen=True)
class DiscountQuote:
    code_id: int
    codigo: str
    tipo: str
    valor: Decimal
    discount_amount: Decimal


def compute_discount(code, subtotal):
    subtotal = Decimal(subtotal)
    if code.tipo == DiscountCode.PERCENTAGE:
        amount = subtotal * Decimal(code.valor) / Decimal(100)
    else:
        amount = min(Decimal(code.valor), subtotal)
    return min(amount, subtotal).quantize(CENT, rounding=ROUND_HALF_UP)


def evaluate(code, *, event_id, subtotal, usage_count, user_usage_count=0, now=None):
    """
    Aplica las reglas en orden: existencia/activo, vigencia, tope global,
    evento, tope por usuario y compra mínima.

    subtotal=None omite la compra mínima y devuelve descuento 0 (el carrito
    aún no tiene precio).
    """
    now = now or timezone.now()

    if code is None:
        reject(Rejection.NOT_FOUND)
    if not code.activo:
        reject(Rejection.INACTIVE)
    if code.vigente_desde and now < code.vigente_desde:
        reject(Rejection.NOT_YET_VALID)
    if code.vigente_hasta and now > code.vigente_hasta:
        reject(Rejection.EXPIRED)
    if code.usos_maximos and usage_count >= code.usos_maximos:
        reject(Rejection.EXHAUSTED)
    if code.evento_id and event_id is not None and str(code.evento_id) != str(event_id):
        reject(Rejection.WRONG_EVENT)
    if code.usos_por_usuario and user_usage_count >= code.usos_por_usuario:
        reject(Rejection.EXHAUSTED_FOR_USER)

    amount = Decimal("0")
    if subtotal is not None:
        subtotal = Decimal(subtotal)
        if code.compra_minima and subtotal < code.compra_minima:
            reject(Rejection.BELOW_MINIMUM, f"Compra mínima requerida: S/ {code.compra_minima:.2f}")
        amount = compute_discount(code, subtotal)

    return DiscountQuote(
        code_id=code.pk,
        codigo=code.codigo,
        tipo=code.tipo,
        valor=Decimal(code.valor),
        discount_amount=amount,
    )


def usage_counts(code, user):
    total = DiscountUsage.objects.filter(discount_code=code).count()
    if user is None or not user.is_authenticated:
        return total, 0
    return total, DiscountUsage.objects.filter(discount_code=code, usuario=user).count()


def preview_discount(codigo, *, user, event_id=None, subtotal=None):
    """Validación previa al checkout: solo lectura, sin bloqueos."""
    codigo = (codigo or "").strip().upper()
    code = DiscountCode.objects.filter(codigo=codigo).first() if codigo else None
    if code is None:
        reject(Rejection.NOT_FOUND)
    total, del_usuario = usage_counts(code, user)
    return evaluate(
        code,
        event_id=event_id,
        subtotal=subtotal,
        usage_count=total,
        user_usage_count=del_usuario,
    )
