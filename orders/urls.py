from django.urls import path
from . import views_pdf
from . import views_public_api

app_name = "orders"

urlpatterns = [
    path("api/orders/", views_public_api.crear_orden, name="api-order-create"),
    path("api/orders/<int:order_id>/", views_public_api.orden_detalle, name="api-order-detail"),
    path("api/discounts/validate/", views_public_api.validar_descuento, name="api-discount-validate"),
    path("api/courtesy/verify/", views_public_api.cortesia_verificar, name="api-courtesy-verify"),
    path("api/courtesy/claim/", views_public_api.cortesia_canjear, name="api-courtesy-claim"),
    path("api/tickets/", views_public_api.mis_tickets, name="api-ticket-list"),
    path("api/tickets/<str:ticket_ref>/", views_public_api.ticket_detalle, name="api-ticket-detail"),
    path("api/scans/validate/", views_public_api.scan_validar, name="api-scan-validate"),
    path("api/scans/lookup/", views_public_api.scan_buscar, name="api-scan-lookup"),
    path("api/payments/mock/", views_public_api.pago_mock, name="api-payment-mock"),

    path("public/<int:order_id>/pdf/", views_pdf.order_tickets_pdf, name="public-order-pdf"),
]
