import secrets

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from events.models import Evento
from tickets.models import TipoTicket

TICKET_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # sin 0/O, 1/I


def generate_ticket_code():
    raw = "".join(secrets.choice(TICKET_CODE_ALPHABET) for _ in range(12))
    return "-".join(raw[i:i + 4] for i in range(0, 12, 4))


def generate_claim_code():
    return secrets.token_hex(4).upper()


class Orden(models.Model):
    PENDING, PAID, CANCELLED, REFUNDED = "PENDING", "PAID", "CANCELLED", "REFUNDED"
    ESTADOS = [(PENDING, "Pendiente"), (PAID, "Pagada"), (CANCELLED, "Cancelada"), (REFUNDED, "Reembolsada")]
    PROVIDERS = [("IZIPAY", "Izipay"), ("COURTESY", "Cortesía"), ("MOCK", "Simulado")]

    usuario = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="ordenes")
    evento = models.ForeignKey(Evento, on_delete=models.PROTECT, related_name="ordenes")
    estado = models.CharField(max_length=12, choices=ESTADOS, default=PENDING)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    descuento = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    moneda = models.CharField(max_length=3, default="PEN")
    provider = models.CharField(max_length=12, choices=PROVIDERS, default="IZIPAY")
    provider_ref = models.CharField(max_length=120, blank=True)
    provider_response = models.JSONField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"Orden #{self.id} · {self.evento.nombre}"


class OrderItem(models.Model):
    orden = models.ForeignKey(Orden, on_delete=models.CASCADE, related_name="items")
    tipo = models.ForeignKey(TipoTicket, on_delete=models.PROTECT, related_name="order_items")
    cantidad = models.PositiveIntegerField()
    precio_unitario = models.DecimalField(max_digits=10, decimal_places=2)  # precio al momento de la compra
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    asistentes = models.JSONField(default=list, blank=True)  # [{"name": ..., "dni": ...}]

    def __str__(self):
        return f"{self.cantidad} × {self.tipo.nombre}"


class Ticket(models.Model):
    ACTIVE, EXPIRED, CANCELLED = "ACTIVE", "EXPIRED", "CANCELLED"
    ESTADOS = [(ACTIVE, "Activo"), (EXPIRED, "Expirado"), (CANCELLED, "Anulado")]

    orden = models.ForeignKey(Orden, on_delete=models.CASCADE, related_name="tickets")
    evento = models.ForeignKey(Evento, on_delete=models.PROTECT, related_name="tickets")
    tipo = models.ForeignKey(TipoTicket, on_delete=models.PROTECT, related_name="tickets")
    usuario = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="tickets")
    code = models.CharField(max_length=14, unique=True, default=generate_ticket_code, editable=False)
    estado = models.CharField(max_length=12, choices=ESTADOS, default=ACTIVE)
    attendee_name = models.CharField(max_length=160, blank=True)
    attendee_dni = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("created_at",)

    def __str__(self):
        return f"{self.tipo.nombre} · {self.code}"


class TicketDayEntitlement(models.Model):
    AVAILABLE, USED = "AVAILABLE", "USED"
    ESTADOS = [(AVAILABLE, "Disponible"), (USED, "Usado")]

    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name="entitlements")
    fecha = models.DateField()
    estado = models.CharField(max_length=10, choices=ESTADOS, default=AVAILABLE)
    used_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("fecha",)
        constraints = [
            models.UniqueConstraint(fields=["ticket", "fecha"], name="entitlement_ticket_fecha_uniq"),
        ]

    def __str__(self):
        return f"{self.ticket.code} · {self.fecha} · {self.estado}"


class Scan(models.Model):
    """Bitácora de lecturas de QR. Nunca se edita: las entitlements se reconcilian desde aquí."""
    VALID = "VALID"
    RESULTS = [
        ("VALID", "VALID"),
        ("INVALID", "INVALID"),
        ("ALREADY_USED", "ALREADY_USED"),
        ("WRONG_DAY", "WRONG_DAY"),
        ("WRONG_EVENT", "WRONG_EVENT"),
        ("EXPIRED", "EXPIRED"),
    ]

    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name="scans")
    evento = models.ForeignKey(Evento, on_delete=models.SET_NULL, null=True, blank=True, related_name="scans")
    staff = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                              related_name="scans")
    fecha = models.DateField()
    result = models.CharField(max_length=16, choices=RESULTS)
    notes = models.CharField(max_length=160, blank=True)
    scanned_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ("scanned_at",)
        indexes = [models.Index(fields=["ticket", "result"])]


class CourtesyBatch(models.Model):
    evento = models.ForeignKey(Evento, on_delete=models.PROTECT, related_name="courtesy_batches")
    tipo = models.ForeignKey(TipoTicket, on_delete=models.PROTECT, related_name="courtesy_batches")
    cantidad = models.PositiveIntegerField()
    motivo = models.CharField(max_length=200)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"{self.cantidad} cortesías · {self.tipo.nombre} ({self.motivo})"

    def clean(self):
        if self.cantidad is not None and self.cantidad <= 0:
            raise ValidationError({"cantidad": "La cantidad debe ser mayor a cero."})
        if self.tipo_id and self.evento_id and self.tipo.evento_id != self.evento_id:
            raise ValidationError({"tipo": "El tipo de ticket no pertenece al evento."})


class CourtesyTicket(models.Model):
    PENDING, CLAIMED, EXPIRED = "PENDING", "CLAIMED", "EXPIRED"
    ESTADOS = [(PENDING, "Pendiente"), (CLAIMED, "Canjeada"), (EXPIRED, "Expirada")]

    batch = models.ForeignKey(CourtesyBatch, on_delete=models.CASCADE, related_name="courtesy_tickets")
    claim_code = models.CharField(max_length=16, unique=True, default=generate_claim_code)
    estado = models.CharField(max_length=10, choices=ESTADOS, default=PENDING)
    # si vienen asignados, fijan la identidad del asistente
    assigned_name = models.CharField(max_length=160, blank=True)
    assigned_dni = models.CharField(max_length=20, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    claimed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name="courtesies_claimed")
    claimed_at = models.DateTimeField(null=True, blank=True)
    ticket = models.OneToOneField(Ticket, on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name="courtesy_info")

    def __str__(self):
        return f"{self.claim_code} · {self.estado}"

    def save(self, *args, **kwargs):
        self.claim_code = (self.claim_code or "").strip().upper()
        super().save(*args, **kwargs)

    def is_expired(self, now=None):
        return bool(self.expires_at and (now or timezone.now()) > self.expires_at)
