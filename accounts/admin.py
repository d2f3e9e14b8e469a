from django.contrib import admin

from .models import User, Cuenta, UsuarioRol


class UsuarioRolInline(admin.TabularInline):
    """Roles por cuenta; `staff` habilita la validación en puerta."""
    model = UsuarioRol
    extra = 0
    fields = ("cuenta", "rol", "activo")


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ("email", "display_name", "dni", "is_staff")
    search_fields = ("email", "dni", "first_name", "last_name")
    fields = ("email", "first_name", "last_name", "dni", "is_active", "is_staff", "is_superuser")
    inlines = [UsuarioRolInline]


@admin.register(Cuenta)
class CuentaAdmin(admin.ModelAdmin):
    list_display = ("nombre", "estado", "creada_en")
    list_filter = ("estado",)
