from django.contrib import admin, messages

from .models import TipoTicket, DiscountCode, DiscountUsage
from .schedule import parse_weekday_label


@admin.register(TipoTicket)
class TipoTicketAdmin(admin.ModelAdmin):
    list_display = ("nombre", "evento", "precio", "capacidad", "vendidos", "schedule", "is_package", "activo")
    list_filter = ("activo", "is_package", "schedule")
    search_fields = ("nombre", "evento__nombre")
    readonly_fields = ("vendidos",)
    actions = ["aplicar_etiqueta_dias"]

    @admin.action(description='Calendario semanal desde el nombre, ej. "Clases (M-J)"')
    def aplicar_etiqueta_dias(self, request, queryset):
        for tipo in queryset:
            etiqueta = tipo.nombre.rsplit("(", 1)[-1].rstrip(")")
            try:
                dias = parse_weekday_label(etiqueta)
            except ValueError as exc:
                self.message_user(request, f"{tipo.nombre}: {exc}", level=messages.WARNING)
                continue
            tipo.schedule, tipo.weekdays = "weekdays", dias
            tipo.save(update_fields=["schedule", "weekdays"])


@admin.register(DiscountCode)
class DiscountCodeAdmin(admin.ModelAdmin):
    list_display = ("codigo", "tipo", "valor", "evento", "usos_maximos", "vigente_hasta", "activo")
    list_filter = ("tipo", "activo")
    search_fields = ("codigo",)


@admin.register(DiscountUsage)
class DiscountUsageAdmin(admin.ModelAdmin):
    list_display = ("discount_code", "usuario", "orden", "monto_ahorrado", "creado_en")
    readonly_fields = ("discount_code", "usuario", "orden", "monto_ahorrado")
