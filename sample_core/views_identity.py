# sample_core/views_identity.py
from __future__ import annotations

from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .permissions import roles_for_user
from .roles import STAFF_ROLES, role_codes_for


class WhoAmIView(APIView):
    """
    Returns the current user, their canonical roles and the approval/signature
    role codes (OM, LH) they may act for.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        user = request.user
        roles = roles_for_user(user)
        profile = getattr(user, "client_profile", None)

        return Response(
            {
                "id": user.id,
                "username": user.username,
                "is_superuser": bool(getattr(user, "is_superuser", False)),
                "is_staff_member": bool(roles & STAFF_ROLES),
                "roles": sorted(roles),
                "role_codes": sorted(role_codes_for(roles)),
                "client_id": profile.pk if profile is not None else None,
            }
        )
