"""
Contador de capacidad por tipo de ticket.

reserve() debe llamarse dentro de transaction.atomic(): relee la fila con
SELECT ... FOR UPDATE, así dos compras concurrentes del mismo tipo quedan
serializadas y la segunda ve los `vendidos` ya incrementados.
"""
from django.db import transaction
from django.db.models import F

from core.errors import (
    InsufficientCapacityError,
    TicketTypeNotFoundError,
    TicketTypeUnavailableError,
)
from .models import TipoTicket


def available(tipo):
    """None = sin límite."""
    if tipo.capacidad == 0:
        return None
    return max(tipo.capacidad - tipo.vendidos, 0)


def reserve(tipo_id, cantidad, *, evento_id=None):
    if not transaction.get_connection().in_atomic_block:
        raise RuntimeError("reserve() requiere una transacción abierta")

    qs = TipoTicket.objects.select_for_update()
    if evento_id is not None:
        qs = qs.filter(evento_id=evento_id)
    tipo = qs.filter(pk=tipo_id).first()
    if tipo is None:
        raise TicketTypeNotFoundError(tipo_id)
    if not tipo.activo:
        raise TicketTypeUnavailableError(tipo.nombre)

    restantes = available(tipo)
    if restantes is not None and cantidad > restantes:
        raise InsufficientCapacityError(tipo.nombre, restantes)

    TipoTicket.objects.filter(pk=tipo.pk).update(vendidos=F("vendidos") + cantidad)
    tipo.vendidos += cantidad
    return tipo
