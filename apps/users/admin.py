from django.contrib import admin
from .models import User, VerificationToken

@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('display_id', 'name', 'email', 'phone', 'role', 'status', 'approved', 'balance')
    list_filter = ('role', 'status', 'approved', 'email_verified')
    search_fields = ('display_id', 'name', 'email', 'phone')

@admin.register(VerificationToken)
class VerificationTokenAdmin(admin.ModelAdmin):
    list_display = ('user', 'code', 'purpose', 'created_at', 'expires_at', 'is_used')
    search_fields = ('user__email', 'code')
    list_filter = ('purpose', 'is_used', 'expires_at')
