"""
Dashboard authentication decorator.

Replaces the @login_required + @staff_member_required stack for the JSON
admin API: unauthenticated or non-staff requests get a 403 JSON body
instead of a redirect to a login page.
"""
from functools import wraps
from django.http import JsonResponse


def dashboard_admin_required(view_func):
    """Require is_authenticated + is_staff. JSON 403 otherwise."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated or not request.user.is_staff:
            return JsonResponse(
                {'error': 'Admin access required.', 'code': 'forbidden'}, status=403,
            )
        return view_func(request, *args, **kwargs)
    return wrapper
