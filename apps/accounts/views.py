from rest_framework import status, generics, permissions
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi
import logging

from apps.core.exceptions import WorkflowError
from apps.core.responses import error_response

from .models import User
from .permissions import IsPortalMember
from .serializers import (
    UserRegistrationSerializer,
    UserLoginSerializer,
    UserProfileSerializer,
    ClubSetupSerializer
)
from .services import setup_club

logger = logging.getLogger(__name__)


def token_pair(user):
    refresh = RefreshToken.for_user(user)
    return {
        'access': str(refresh.access_token),
        'refresh': str(refresh)
    }


class UserRegistrationView(generics.CreateAPIView):
    """
    Register a new user
    """
    queryset = User.objects.all()
    serializer_class = UserRegistrationSerializer
    permission_classes = [permissions.AllowAny]

    @swagger_auto_schema(
        operation_description="Register a new user",
        responses={
            201: openapi.Response("User created successfully", UserProfileSerializer),
            400: "Bad Request"
        }
    )
    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            logger.info(f"User registered: {user.username}")

            return Response({
                'message': 'ユーザー登録が完了しました。',
                'user': UserProfileSerializer(user).data,
                'tokens': token_pair(user)
            }, status=status.HTTP_201_CREATED)

        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class UserLoginView(APIView):
    """
    Login user and return JWT tokens
    """
    permission_classes = [permissions.AllowAny]

    @swagger_auto_schema(
        operation_description="Login user",
        request_body=UserLoginSerializer,
        responses={
            200: openapi.Response("Login successful", UserProfileSerializer),
            401: "Invalid credentials"
        }
    )
    def post(self, request):
        serializer = UserLoginSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.validated_data['user']

            return Response({
                'message': 'ログインしました。',
                'user': UserProfileSerializer(user).data,
                'tokens': token_pair(user)
            }, status=status.HTTP_200_OK)

        logger.warning(f"Failed login for {request.data.get('username')!r}")
        return Response(serializer.errors, status=status.HTTP_401_UNAUTHORIZED)


class UserLogoutView(APIView):
    """
    Logout user by blacklisting refresh token
    """
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Logout user",
        request_body=openapi.Schema(
            type=openapi.TYPE_OBJECT,
            properties={
                'refresh': openapi.Schema(type=openapi.TYPE_STRING, description='Refresh token')
            },
            required=['refresh']
        ),
        responses={
            200: "Logout successful",
            400: "Bad Request"
        }
    )
    def post(self, request):
        refresh_token = request.data.get('refresh')
        if refresh_token:
            try:
                RefreshToken(refresh_token).blacklist()
            except TokenError:
                return Response({
                    'error': 'トークンが不正です。'
                }, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'message': 'ログアウトしました。'
        }, status=status.HTTP_200_OK)


class UserProfileView(generics.RetrieveUpdateAPIView):
    """
    Get and update the signed-in user's profile
    """
    serializer_class = UserProfileSerializer
    permission_classes = [IsPortalMember]
    http_method_names = ['get', 'patch', 'head', 'options']

    def get_object(self):
        return self.request.user

    @swagger_auto_schema(
        operation_description="Get user profile",
        responses={200: UserProfileSerializer}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_description="Update user profile",
        responses={200: UserProfileSerializer}
    )
    def patch(self, request, *args, **kwargs):
        return super().patch(request, *args, **kwargs)


class ClubSetupView(APIView):
    """
    First-time setup: join an existing club or register a new one.
    A user who already has a club only gets the display name updated.
    """
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Complete first-time club setup",
        request_body=ClubSetupSerializer,
        responses={
            200: UserProfileSerializer,
            400: "Bad Request",
            404: "Club not found"
        }
    )
    def post(self, request):
        serializer = ClubSetupSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            user = setup_club(
                request.user,
                data['last_name'],
                data['first_name'],
                club_id=data['club_id'],
                club_name=data['club_name'],
                total_budget=data['total_budget']
            )
        except WorkflowError as exc:
            return error_response(exc)

        return Response(UserProfileSerializer(user).data, status=status.HTTP_200_OK)
