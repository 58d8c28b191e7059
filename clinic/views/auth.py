"""
Admin login.

The clinic has a single shared admin credential.  A successful check
returns ``ok`` and nothing else: no session or token is issued, and the
front-end simply unlocks the dashboard.  Every attempt is audited.
"""
from __future__ import annotations

import logging

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from clinic.serializers.auth import LoginSerializer
from clinic.services.audit import log_action
from clinic.services.credentials import check_admin_credentials

logger = logging.getLogger(__name__)


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    username = s.validated_data['username']
    password = s.validated_data['password']

    if not check_admin_credentials(username, password):
        log_action(actor=username, action='admin_login', object_type='admin',
                   detail={'result': 'failed', 'ip': request.META.get('REMOTE_ADDR')})
        logger.warning('failed admin login for %r', username)
        return Response({'ok': False, 'error': {'code': 'invalid_credentials',
                                                'message': 'Invalid username or password'}}, status=400)

    log_action(actor=username, action='admin_login', object_type='admin',
               detail={'result': 'success', 'ip': request.META.get('REMOTE_ADDR')})
    return Response({'ok': True, 'username': username, 'role': 'admin'})
