from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import User


class CustomUserAdmin(UserAdmin):
    list_display = ('username', 'email', 'role', 'rt', 'rw', 'is_active', 'is_staff')
    list_filter = ('role', 'rw', 'is_active', 'is_staff')
    search_fields = ('username', 'first_name', 'last_name', 'email', 'nik')
    fieldsets = UserAdmin.fieldsets + (
        ('Data Kependudukan', {'fields': ('role', 'nik', 'phone', 'rt', 'rw', 'address')}),
    )
    add_fieldsets = UserAdmin.add_fieldsets + (
        ('Data Kependudukan', {'fields': ('role', 'nik', 'phone', 'rt', 'rw', 'address')}),
    )


@admin.register(User)
class UserAdminConfig(CustomUserAdmin):
    pass
