from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from accounts.models import User


class UserModelAdmin(BaseUserAdmin):
    list_display = ('id', 'email', 'name', 'department', 'is_active', 'is_staff', 'is_superuser')
    list_filter = ('department', 'is_active', 'is_staff', 'is_superuser', 'groups')

    fieldsets = (
        ('User Credentials', {'fields': ('email', 'password')}),
        ('Personal Info', {'fields': ('name', 'department')}),
        ('Permissions', {'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions')}),
        ('Important Dates', {'fields': ('last_login',)}),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'name', 'department', 'password1', 'password2', 'is_active', 'is_staff'),
        }),
    )

    search_fields = ('email', 'name')
    ordering = ('email', 'id')
    filter_horizontal = ('groups', 'user_permissions',)


admin.site.register(User, UserModelAdmin)
