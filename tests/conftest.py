"""Pytest configuration and shared fixtures."""

from datetime import date
from decimal import Decimal

import pytest
from django.test import Client

from accounts.models import Cuenta, User, UsuarioRol
from events.models import Evento
from orders.models import Orden, Ticket
from tickets.models import TipoTicket

# lunes 2 al domingo 15 de marzo de 2026
EVENT_START = date(2026, 3, 2)
EVENT_END = date(2026, 3, 15)


@pytest.fixture
def cuenta(db):
    return Cuenta.objects.create(nombre="Academia Lima")


@pytest.fixture
def user(db):
    return User.objects.create_user(
        email="ana@example.com", password="secreto123", first_name="Ana", last_name="Pérez",
    )


@pytest.fixture
def other_user(db):
    return User.objects.create_user(email="luis@example.com", password="secreto123")


@pytest.fixture
def staff(db, cuenta):
    staff = User.objects.create_user(email="puerta@example.com", password="secreto123")
    UsuarioRol.objects.create(usuario=staff, cuenta=cuenta, rol="staff")
    return staff


@pytest.fixture
def evento(cuenta):
    return Evento.objects.create(
        cuenta=cuenta,
        nombre="Taller de Salsa",
        estado="activo",
        fecha_inicio=EVENT_START,
        fecha_termino=EVENT_END,
        ubicacion="Miraflores",
    )


@pytest.fixture
def tipo(evento):
    return TipoTicket.objects.create(evento=evento, nombre="General", precio=Decimal("25.00"), capacidad=100)


@pytest.fixture
def make_tipo(evento):
    def _make(nombre="Tipo", **kwargs):
        kwargs.setdefault("precio", Decimal("10.00"))
        return TipoTicket.objects.create(evento=evento, nombre=nombre, **kwargs)
    return _make


@pytest.fixture
def make_ticket(user):
    """Ticket ACTIVE dentro de una orden ya pagada."""
    def _make(tipo, owner=None, **kwargs):
        owner = owner or user
        orden = Orden.objects.create(
            usuario=owner, evento=tipo.evento, estado=Orden.PAID,
            subtotal=tipo.precio, total=tipo.precio, provider="MOCK",
        )
        kwargs.setdefault("attendee_name", "Ana Pérez")
        kwargs.setdefault("attendee_dni", "12345678")
        return Ticket.objects.create(orden=orden, evento=tipo.evento, tipo=tipo, usuario=owner, **kwargs)
    return _make


@pytest.fixture
def client_user(user) -> Client:
    client = Client()
    client.force_login(user)
    return client


@pytest.fixture
def client_staff(staff) -> Client:
    client = Client()
    client.force_login(staff)
    return client
