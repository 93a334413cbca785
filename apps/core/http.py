"""
JSON request/response helpers shared by the public and dashboard views.
"""
import json
import logging

from django.http import JsonResponse

logger = logging.getLogger(__name__)


class InvalidJSONBody(ValueError):
    pass


def json_body(request) -> dict:
    """Decode a JSON object body. Empty bodies decode to {}."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise InvalidJSONBody('Request body is not valid JSON.') from exc
    if not isinstance(data, dict):
        raise InvalidJSONBody('Request body must be a JSON object.')
    return data


def error_response(exc) -> JsonResponse:
    """Map a BookingEngineError (or subclass) to its JSON error body and status."""
    return JsonResponse(exc.as_dict(), status=exc.status_code)


def bad_request(message: str, code: str = 'invalid_request', **extra) -> JsonResponse:
    return JsonResponse({'error': message, 'code': code, **extra}, status=400)


def form_error_response(form) -> JsonResponse:
    errors = form.errors.get_json_data()
    first = next(iter(errors.values()))[0]['message'] if errors else 'Invalid request.'
    return bad_request(first, fields={k: [e['message'] for e in v] for k, v in errors.items()})
