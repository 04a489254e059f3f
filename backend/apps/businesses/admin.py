from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import Business, Role, User


@admin.register(Business)
class BusinessAdmin(admin.ModelAdmin):
    list_display = ["name", "vat_number", "currency", "is_active", "created_at"]
    list_filter = ["is_active", "currency"]
    search_fields = ["name", "vat_number"]


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ["name", "business", "is_system"]
    list_filter = ["business"]
    search_fields = ["name", "business__name"]


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ["email", "business", "is_active", "is_staff"]
    list_filter = ["is_active", "is_staff", "business"]
    search_fields = ["email", "first_name", "last_name"]
    ordering = ["email"]
    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Personal info", {"fields": ("first_name", "last_name")}),
        ("Business", {"fields": ("business", "roles")}),
        ("Permissions", {"fields": ("is_active", "is_staff", "is_superuser")}),
        ("Important dates", {"fields": ("last_login", "date_joined")}),
    )
    add_fieldsets = (
        (None, {"classes": ("wide",), "fields": ("email", "password1", "password2", "business")}),
    )
