import logging

from rest_framework import status, permissions
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView

from .serializers import LoginSerializer, UserSummarySerializer

logger = logging.getLogger(__name__)


class MyTokenObtainPairView(TokenObtainPairView):
    permission_classes = [permissions.AllowAny]
    serializer_class = LoginSerializer


class LogoutAPIView(APIView):
    """
    API View to handle user logout by blacklisting the refresh token.
    An invalid or already blacklisted token still counts as logged out.
    """

    permission_classes = [permissions.AllowAny]

    def post(self, request):
        refresh_token = request.data.get("refresh_token")
        if refresh_token:
            try:
                RefreshToken(refresh_token).blacklist()
            except TokenError as e:
                logger.info("[AUTH] Logout with unusable refresh token: %s", e)

        return Response(
            {"detail": "Successfully logged out."}, status=status.HTTP_200_OK
        )


class MeAPIView(APIView):
    """
    GET /api/me/

    Profile and loyalty counters of the authenticated user.
    """

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response(UserSummarySerializer(request.user).data)
