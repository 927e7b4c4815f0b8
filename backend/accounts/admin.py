from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import User


@admin.register(User)
class LessonUserAdmin(UserAdmin):
    list_display = ("email", "display_name", "role", "is_active")
    list_filter = ("role", "is_active", "is_superuser")
    fieldsets = UserAdmin.fieldsets + (
        ("Lessons", {"fields": ("display_name", "role", "payment_customer_ref", "payment_method_ref")}),
    )
