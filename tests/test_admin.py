"""Tests for courtesy batch creation through the admin.

Run with: pytest tests/test_admin.py -v
"""

import pytest
from django.test import Client
from django.urls import reverse

from accounts.models import User
from events.models import Evento
from orders.models import CourtesyBatch, CourtesyTicket
from tickets.models import TipoTicket


@pytest.fixture
def admin_client_user(db) -> Client:
    admin_user = User.objects.create_superuser(email="admin@example.com", password="secreto123")
    client = Client()
    client.force_login(admin_user)
    return client


@pytest.mark.django_db
class TestCourtesyBatchAdmin:
    """Tests for CourtesyBatchAdmin."""

    def test_add_generates_codes(self, admin_client_user, evento, tipo):
        """Adding a batch of 3 creates 3 claimable codes."""
        response = admin_client_user.post(reverse("admin:orders_courtesybatch_add"), {
            "evento": evento.pk, "tipo": tipo.pk, "cantidad": 3, "motivo": "Prensa",
        })

        assert response.status_code == 302
        batch = CourtesyBatch.objects.get()
        assert batch.created_by.email == "admin@example.com"
        codes = CourtesyTicket.objects.filter(batch=batch)
        assert codes.count() == 3
        assert set(codes.values_list("estado", flat=True)) == {CourtesyTicket.PENDING}

    def test_type_from_other_event_rejected(self, admin_client_user, cuenta, evento):
        otro = Evento.objects.create(cuenta=cuenta, nombre="Otro")
        ajeno = TipoTicket.objects.create(evento=otro, nombre="Ajeno")

        response = admin_client_user.post(reverse("admin:orders_courtesybatch_add"), {
            "evento": evento.pk, "tipo": ajeno.pk, "cantidad": 2, "motivo": "Prensa",
        })

        assert response.status_code == 200
        assert not CourtesyBatch.objects.exists()
        assert not CourtesyTicket.objects.exists()


@pytest.mark.django_db
class TestUserAdmin:
    """Tests for UserAdmin."""

    def test_change_page_shows_roles(self, admin_client_user, staff):
        response = admin_client_user.get(reverse("admin:accounts_user_change", args=[staff.pk]))
        assert response.status_code == 200
        assert b"roles-TOTAL_FORMS" in response.content
