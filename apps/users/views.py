import logging
from django.contrib.auth import get_user_model
from django.utils import timezone
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import status, permissions
from rest_framework.authtoken.models import Token
from rest_framework.parsers import MultiPartParser, FormParser, JSONParser
from rest_framework.response import Response
from rest_framework.views import APIView
from apps.jobs.models import Rating
from apps.jobs.serializers import RatingSerializer
from apps.notifications.utils import notify_admins
from .serializers import (
    RegisterSerializer, EmailCodeSerializer, EmailSerializer, LoginSerializer,
    PasswordResetConfirmSerializer, ChangePasswordSerializer, ProfileUpdateSerializer,
    UserSerializer, send_verification_code, consume_code
)

User = get_user_model()
logger = logging.getLogger(__name__)

message_schema = openapi.Schema(
    type=openapi.TYPE_OBJECT,
    properties={'message': openapi.Schema(type=openapi.TYPE_STRING)}
)


class AuthRegisterView(APIView):
    permission_classes = []

    @swagger_auto_schema(
        request_body=RegisterSerializer,
        responses={201: UserSerializer, 400: 'Bad Request'}
    )
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            logger.info(f"New {user.role} registered: {user.email}")
            notify_admins(
                'new_registration',
                'New Account Pending Approval',
                f"{user.name} registered as a {user.role} and is awaiting approval."
            )
            return Response({
                "message": "Account created. Check your email for the verification code.",
                "user": UserSerializer(user).data
            }, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class AuthVerifyEmailView(APIView):
    permission_classes = []

    @swagger_auto_schema(request_body=EmailCodeSerializer, responses={200: message_schema, 400: 'Bad Request'})
    def post(self, request):
        serializer = EmailCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data['user']
        consume_code(user, serializer.validated_data['code'], 'email_verification')
        user.email_verified = True
        user.save(update_fields=['email_verified'])
        logger.info(f"Email verified for user {user.pk}")
        return Response({"message": "Email verified successfully."})


class AuthResendCodeView(APIView):
    permission_classes = []

    @swagger_auto_schema(request_body=EmailSerializer, responses={200: message_schema})
    def post(self, request):
        serializer = EmailSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = User.objects.filter(email__iexact=serializer.validated_data['email']).first()
        if user is not None and not user.email_verified:
            send_verification_code(user, 'email_verification')
        return Response({"message": "If the account exists and is unverified, a new code has been sent."})


class AuthLoginView(APIView):
    permission_classes = []

    @swagger_auto_schema(
        request_body=LoginSerializer,
        responses={
            200: openapi.Response(
                description='Login successful',
                schema=openapi.Schema(
                    type=openapi.TYPE_OBJECT,
                    properties={
                        'token': openapi.Schema(type=openapi.TYPE_STRING),
                        'user': openapi.Schema(type=openapi.TYPE_OBJECT),
                    }
                )
            ),
            400: 'Invalid credentials',
            403: 'Account blocked or email not verified'
        }
    )
    def post(self, request):
        serializer = LoginSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        user = serializer.validated_data['user']

        if user.status == 'rejected':
            return Response(
                {"error": "Your account has been rejected.", "code": "ACCOUNT_REJECTED"},
                status=status.HTTP_403_FORBIDDEN
            )
        if user.status == 'blacklisted':
            return Response(
                {"error": "Your account has been blacklisted.", "code": "ACCOUNT_BLACKLISTED"},
                status=status.HTTP_403_FORBIDDEN
            )
        user.lift_expired_suspension()
        if user.is_suspended:
            return Response({
                "error": f"Your account is suspended until {user.suspended_until:%Y-%m-%d %H:%M}.",
                "code": "ACCOUNT_SUSPENDED",
                "suspended_until": user.suspended_until,
                "reason": user.suspension_reason,
            }, status=status.HTTP_403_FORBIDDEN)
        if not user.email_verified and not user.is_admin_role:
            return Response(
                {"error": "Please verify your email before logging in.", "code": "EMAIL_NOT_VERIFIED"},
                status=status.HTTP_403_FORBIDDEN
            )

        user.last_login_at = timezone.now()
        user.login_count += 1
        user.save(update_fields=['last_login_at', 'login_count'])
        logger.info(f"User {user.pk} logged in")
        token, created = Token.objects.get_or_create(user=user)
        return Response({
            "token": token.key,
            "user": UserSerializer(user).data
        }, status=status.HTTP_200_OK)


class AuthLogoutView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        Token.objects.filter(user=request.user).delete()
        return Response({"message": "Logged out."})


class AuthPasswordForgotView(APIView):
    permission_classes = []

    @swagger_auto_schema(request_body=EmailSerializer, responses={200: message_schema})
    def post(self, request):
        serializer = EmailSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = User.objects.filter(email__iexact=serializer.validated_data['email']).first()
        if user is not None:
            send_verification_code(user, 'password_reset')
        return Response({"message": "If the account exists, a reset code has been sent."})


class AuthPasswordResetView(APIView):
    permission_classes = []

    @swagger_auto_schema(request_body=PasswordResetConfirmSerializer, responses={200: message_schema})
    def post(self, request):
        serializer = PasswordResetConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data['user']
        consume_code(user, serializer.validated_data['code'], 'password_reset')
        user.set_password(serializer.validated_data['new_password'])
        user.save()
        Token.objects.filter(user=user).delete()
        return Response({"message": "Password reset successfully."})


class ChangePasswordView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(request_body=ChangePasswordSerializer, responses={200: message_schema})
    def post(self, request):
        serializer = ChangePasswordSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        request.user.set_password(serializer.validated_data['new_password'])
        request.user.save()
        return Response({"message": "Password changed successfully."})


class UserProfileView(APIView):
    permission_classes = [permissions.IsAuthenticated]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    @swagger_auto_schema(responses={200: UserSerializer})
    def get(self, request):
        return Response(UserSerializer(request.user).data)

    @swagger_auto_schema(request_body=ProfileUpdateSerializer, responses={200: UserSerializer})
    def patch(self, request):
        serializer = ProfileUpdateSerializer(request.user, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(UserSerializer(request.user).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class UserRatingsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, user_id=None):
        """Ratings received by a user, with a star breakdown."""
        try:
            user = User.objects.get(id=user_id) if user_id else request.user
        except User.DoesNotExist:
            return Response({"error": "User not found"}, status=status.HTTP_404_NOT_FOUND)
        ratings = Rating.objects.filter(rated_user=user).select_related('rated_by', 'job')
        return Response({
            "stats": user.get_rating_stats(),
            "ratings": RatingSerializer(ratings, many=True).data
        })
