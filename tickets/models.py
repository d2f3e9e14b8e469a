from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q
from events.models import Evento

SCHEDULES = [
    ("full_range", "Todos los días del evento"),
    ("explicit", "Fechas específicas"),
    ("weekdays", "Días de la semana"),
]


class TipoTicket(models.Model):
    evento = models.ForeignKey(Evento, on_delete=models.CASCADE, related_name="tipos")
    nombre = models.CharField(max_length=120)
    precio = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    moneda = models.CharField(max_length=3, default="PEN")
    capacidad = models.PositiveIntegerField(default=0, help_text="0 = sin límite")
    # solo lo escribe la transacción de compra (tickets.ledger)
    vendidos = models.PositiveIntegerField(default=0, editable=False)
    activo = models.BooleanField(default=True)

    # paquete de N clases/usos en vez de fechas concretas
    is_package = models.BooleanField(default=False)
    package_days_count = models.PositiveIntegerField(null=True, blank=True)

    schedule = models.CharField(max_length=20, choices=SCHEDULES, default="full_range")
    valid_days = models.JSONField(null=True, blank=True)  # ["2026-03-03", ...] si schedule=explicit
    weekdays = models.JSONField(null=True, blank=True)    # [1, 3] (lunes=0) si schedule=weekdays

    creado_en = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("evento", "nombre")
        ordering = ("-creado_en",)
        constraints = [
            models.CheckConstraint(
                condition=Q(capacidad=0) | Q(vendidos__lte=F("capacidad")),
                name="tipoticket_vendidos_lte_capacidad",
            ),
        ]

    def __str__(self):
        return f"{self.nombre} · {self.evento.nombre}"

    def clean(self):
        if self.schedule == "explicit" and not self.valid_days:
            raise ValidationError({"valid_days": "Indica al menos una fecha."})
        if self.schedule == "weekdays":
            if not self.weekdays or any(d not in range(7) for d in self.weekdays):
                raise ValidationError({"weekdays": "Días de semana inválidos (0=lunes … 6=domingo)."})
        if self.package_days_count and not self.is_package:
            raise ValidationError({"package_days_count": "Solo aplica a paquetes."})
        if self.is_package and not self.package_days_count and self.evento_id and not self.evento.tiene_rango:
            raise ValidationError({"package_days_count": "Indica la cantidad de usos: el evento no tiene rango de fechas."})


class DiscountCode(models.Model):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"
    TIPOS = [
        (PERCENTAGE, "Porcentaje"),
        (FIXED, "Monto fijo"),
    ]

    codigo = models.CharField(max_length=50, unique=True)
    descripcion = models.CharField(max_length=200, blank=True)
    tipo = models.CharField(max_length=12, choices=TIPOS)
    valor = models.DecimalField(max_digits=10, decimal_places=2)

    # si es null aplica a cualquier evento
    evento = models.ForeignKey(Evento, null=True, blank=True, on_delete=models.CASCADE,
                               related_name="discount_codes")

    compra_minima = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    usos_maximos = models.PositiveIntegerField(null=True, blank=True)
    usos_por_usuario = models.PositiveIntegerField(null=True, blank=True)

    vigente_desde = models.DateTimeField(null=True, blank=True)
    vigente_hasta = models.DateTimeField(null=True, blank=True)
    activo = models.BooleanField(default=True)
    creado_en = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-id"]

    def __str__(self):
        return f"{self.codigo} — {self.get_tipo_display()} {self.valor}"

    def save(self, *args, **kwargs):
        self.codigo = (self.codigo or "").strip().upper()
        super().save(*args, **kwargs)


class DiscountUsage(models.Model):
    """Una fila por orden que aplicó el código; base de los topes global y por usuario."""
    discount_code = models.ForeignKey(DiscountCode, on_delete=models.PROTECT, related_name="usages")
    usuario = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
                                related_name="discount_usages")
    orden = models.OneToOneField("orders.Orden", on_delete=models.PROTECT, related_name="discount_usage")
    monto_ahorrado = models.DecimalField(max_digits=10, decimal_places=2)
    creado_en = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=["discount_code", "usuario"])]
