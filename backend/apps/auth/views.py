# apps/auth/views.py

from rest_framework import permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import MembershipSerializer, UserProfileSerializer


class UserProfileView(APIView):
    """Get and update the authenticated user's profile"""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response(UserProfileSerializer(request.user).data)

    def patch(self, request):
        serializer = UserProfileSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)


class UserTenantsView(APIView):
    """List the tenants the authenticated user can act in"""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        memberships = request.user.get_tenant_memberships().select_related('tenant')
        return Response(MembershipSerializer(memberships, many=True).data)
