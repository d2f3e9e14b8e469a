from datetime import timedelta

from django.db import models
from accounts.models import Cuenta
from django.utils.text import slugify

ESTADOS = [("borrador","Borrador"),("activo","Activo"),("inactivo","Inactivo"),("cancelado","Cancelado")]

class Evento(models.Model):
    id = models.BigAutoField(primary_key=True)
    cuenta = models.ForeignKey(Cuenta, on_delete=models.CASCADE, related_name="eventos")
    nombre = models.CharField(max_length=160)
    slug = models.SlugField(max_length=170)
    estado = models.CharField(max_length=15, choices=ESTADOS, default="borrador")
    fecha_inicio = models.DateField(null=True, blank=True)
    fecha_termino = models.DateField(null=True, blank=True)
    ubicacion = models.CharField(max_length=200, blank=True)
    creado_en = models.DateTimeField(auto_now_add=True)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("cuenta", "slug")
        ordering = ("-creado_en",)

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.nombre)[:170]
        super().save(*args, **kwargs)

    def __str__(self): return f"{self.nombre} ({self.cuenta.nombre})"

    @property
    def tiene_rango(self):
        return bool(self.fecha_inicio and self.fecha_termino)

    def dias(self):
        """Todos los días del rango del evento, ambos extremos incluidos."""
        if not self.tiene_rango:
            return []
        n = (self.fecha_termino - self.fecha_inicio).days
        return [self.fecha_inicio + timedelta(days=i) for i in range(n + 1)]

    def contiene(self, fecha):
        if not self.tiene_rango:
            return False
        return self.fecha_inicio <= fecha <= self.fecha_termino
