from django.contrib import admin

from .services.courtesy import generate_courtesy_batch
from .models import Orden, OrderItem, Ticket, TicketDayEntitlement, Scan, CourtesyBatch, CourtesyTicket


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("tipo", "cantidad", "precio_unitario", "subtotal", "asistentes")


@admin.register(Orden)
class OrdenAdmin(admin.ModelAdmin):
    list_display = ("id", "usuario", "evento", "estado", "total", "provider", "created_at")
    list_filter = ("estado", "provider")
    search_fields = ("usuario__email", "provider_ref")
    inlines = [OrderItemInline]


class EntitlementInline(admin.TabularInline):
    model = TicketDayEntitlement
    extra = 0
    readonly_fields = ("fecha", "estado", "used_at")


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ("code", "evento", "tipo", "attendee_name", "estado")
    list_filter = ("estado",)
    search_fields = ("code", "attendee_name", "attendee_dni")
    inlines = [EntitlementInline]


@admin.register(Scan)
class ScanAdmin(admin.ModelAdmin):
    list_display = ("ticket", "evento", "fecha", "result", "staff", "scanned_at")
    list_filter = ("result", "fecha")


class CourtesyTicketInline(admin.TabularInline):
    model = CourtesyTicket
    extra = 0
    readonly_fields = ("claim_code", "estado", "claimed_by", "claimed_at", "ticket")


@admin.register(CourtesyBatch)
class CourtesyBatchAdmin(admin.ModelAdmin):
    list_display = ("tipo", "evento", "cantidad", "motivo", "created_by", "created_at")
    fields = ("evento", "tipo", "cantidad", "motivo")

    def get_readonly_fields(self, request, obj=None):
        # los códigos ya existen: el lote no se redimensiona
        return ("evento", "tipo", "cantidad") if obj else ()

    def get_inlines(self, request, obj):
        return [CourtesyTicketInline] if obj else []

    def save_model(self, request, obj, form, change):
        if change:
            return super().save_model(request, obj, form, change)
        batch = generate_courtesy_batch(
            evento=obj.evento, tipo=obj.tipo, cantidad=obj.cantidad, motivo=obj.motivo,
            created_by=request.user,
        )
        obj.pk, obj.created_by, obj.created_at = batch.pk, batch.created_by, batch.created_at
        obj._state.adding = False
