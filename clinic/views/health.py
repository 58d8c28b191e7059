from django.conf import settings
from django.db import connections
from django.http import JsonResponse

from clinic.exceptions import StoreError
from clinic.stores import get_stores


def healthz(request):
    try:
        with connections['default'].cursor() as c:
            c.execute('SELECT 1')
            row = c.fetchone()
    except Exception as e:
        return JsonResponse({'ok': False, 'error': str(e)}, status=500)
    payload = {'ok': True, 'db': bool(row and row[0] == 1), 'backend': settings.CLINIC_BACKEND}
    if settings.CLINIC_BACKEND == 'tree':
        try:
            get_stores().queue.list_active()
        except StoreError as e:
            return JsonResponse({**payload, 'ok': False, 'error': str(e)}, status=502)
    return JsonResponse(payload)
