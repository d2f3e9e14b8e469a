# accounts/models.py
import uuid
from django.db import models
from django.conf import settings
from django.contrib.auth.models import BaseUserManager, AbstractUser


class UserManager(BaseUserManager):
    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError("El email es obligatorio")
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    """Comprador / staff. El core solo consume su id y nombre."""
    username = None
    email = models.EmailField(unique=True)
    dni = models.CharField(max_length=20, blank=True)
    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []
    objects = UserManager()

    def __str__(self):
        return self.email

    @property
    def display_name(self):
        return self.get_full_name() or self.email


class Cuenta(models.Model):
    """Organizador dueño de los eventos (tenant)"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    nombre = models.CharField(max_length=150)
    estado = models.CharField(
        max_length=20,
        choices=[("activa", "Activa"), ("suspendida", "Suspendida")],
        default="activa",
    )
    creada_en = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.nombre


class UsuarioRol(models.Model):
    """Rol de un usuario dentro de una cuenta (admin, staff de puerta, etc.)"""
    ROLES = [
        ("superadmin", "Super Admin"),
        ("admin", "Admin"),
        ("staff", "Staff"),
        ("customer", "Usuario"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    usuario = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="roles")
    cuenta = models.ForeignKey(Cuenta, on_delete=models.CASCADE, related_name="usuarios")
    rol = models.CharField(max_length=20, choices=ROLES, default="customer")
    activo = models.BooleanField(default=True)
    creado_en = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("usuario", "cuenta", "rol")
