import secrets

from django.conf import settings


def check_admin_credentials(username: str, password: str) -> bool:
    """Literal comparison against the configured admin pair; no session is issued."""
    ok_user = secrets.compare_digest((username or '').encode(), settings.CLINIC_ADMIN_USERNAME.encode())
    ok_pass = secrets.compare_digest((password or '').encode(), settings.CLINIC_ADMIN_PASSWORD.encode())
    return ok_user and ok_pass
