"""Storage backends for the clinic; ``get_stores`` picks the configured one."""
from django.conf import settings

from .base import Stores


def get_stores() -> Stores:
    if settings.CLINIC_BACKEND == 'tree':
        from .tree import build_tree_stores
        return build_tree_stores()
    from .relational import build_relational_stores
    return build_relational_stores()
