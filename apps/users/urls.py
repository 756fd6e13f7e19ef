from django.urls import path
from .views import (
    AuthRegisterView, AuthVerifyEmailView, AuthResendCodeView, AuthLoginView, AuthLogoutView,
    AuthPasswordForgotView, AuthPasswordResetView, ChangePasswordView, UserProfileView,
    UserRatingsView
)

urlpatterns = [
    # Authentication
    path('auth/register/', AuthRegisterView.as_view(), name='auth_register'),
    path('auth/verify-email/', AuthVerifyEmailView.as_view(), name='auth_verify_email'),
    path('auth/resend-code/', AuthResendCodeView.as_view(), name='auth_resend_code'),
    path('auth/login/', AuthLoginView.as_view(), name='auth_login'),
    path('auth/logout/', AuthLogoutView.as_view(), name='auth_logout'),

    # Password Management
    path('auth/password/forgot/', AuthPasswordForgotView.as_view(), name='auth_password_forgot'),
    path('auth/password/reset/', AuthPasswordResetView.as_view(), name='auth_password_reset'),
    path('auth/password/change/', ChangePasswordView.as_view(), name='auth_password_change'),

    # Profile Management
    path('profile/', UserProfileView.as_view(), name='user_profile'),

    # Ratings
    path('ratings/', UserRatingsView.as_view(), name='user_ratings'),
    path('<int:user_id>/ratings/', UserRatingsView.as_view(), name='user_ratings_by_id'),
]
