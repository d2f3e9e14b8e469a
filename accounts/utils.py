from functools import wraps

from django.http import JsonResponse

from .models import Cuenta, UsuarioRol


def get_current_cuenta(request):
    cid = request.session.get("cuenta_id")
    if not cid:
        return None
    return Cuenta.objects.filter(id=cid).first()


def has_role(user, *roles, cuenta=None):
    if not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    qs = UsuarioRol.objects.filter(usuario=user, rol__in=roles, activo=True)
    if cuenta is not None:
        qs = qs.filter(cuenta=cuenta)
    return qs.exists()


def login_required_json(viewfunc):
    @wraps(viewfunc)
    def _wrapped(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"success": False, "error": "No autorizado"}, status=401)
        return viewfunc(request, *args, **kwargs)
    return _wrapped


def require_role(*roles):
    """Como login_required_json, pero además exige un rol activo (en la cuenta de sesión si hay una)."""
    def deco(viewfunc):
        @wraps(viewfunc)
        def _wrapped(request, *args, **kwargs):
            if not request.user.is_authenticated:
                return JsonResponse({"success": False, "error": "No autorizado"}, status=401)
            if not has_role(request.user, *roles, cuenta=get_current_cuenta(request)):
                return JsonResponse({"success": False, "error": "Sin permisos"}, status=403)
            return viewfunc(request, *args, **kwargs)
        return _wrapped
    return deco
