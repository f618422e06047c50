"""
Decorators for guarding the JSON API by authentication and role
"""
from functools import wraps
from django.http import JsonResponse


def _deny(message, status):
    return JsonResponse({'success': False, 'message': message, 'error': message}, status=status)


def api_login_required(view_func):
    """Decorator to ensure the request comes from an authenticated user"""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return _deny('Authentication required.', 401)
        return view_func(request, *args, **kwargs)
    return wrapper


def api_role_required(*roles):
    """
    Decorator to ensure the authenticated user holds one of ``roles``.
    Django superusers count as admins.
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            user = request.user
            if not user.is_authenticated:
                return _deny('Authentication required.', 401)

            role = 'admin' if user.is_superuser else user.role
            if role not in roles:
                return _deny(f"Access restricted to: {', '.join(roles)}.", 403)

            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator
