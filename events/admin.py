from django.contrib import admin
from .models import Evento

@admin.register(Evento)
class EventoAdmin(admin.ModelAdmin):
    list_display = ("nombre", "cuenta", "estado", "fecha_inicio", "fecha_termino")
    list_filter = ("estado",)
    search_fields = ("nombre", "ubicacion")
