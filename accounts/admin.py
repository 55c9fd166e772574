from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User, Restaurant


class StaffInline(admin.TabularInline):
    model = User
    fields = ('email', 'first_name', 'last_name', 'user_type', 'is_active')
    readonly_fields = ('email',)
    extra = 0
    can_delete = False
    show_change_link = True


@admin.register(Restaurant)
class RestaurantAdmin(admin.ModelAdmin):
    list_display = ('name', 'contact_number', 'email', 'currency', 'created_at')
    search_fields = ('name', 'email')
    readonly_fields = ('created_at', 'updated_at')
    inlines = (StaffInline,)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('email', 'first_name', 'last_name', 'user_type', 'restaurant', 'is_active', 'last_login')
    list_filter = ('user_type', 'is_active', 'is_staff', 'restaurant')
    search_fields = ('email', 'first_name', 'last_name', 'phone')
    ordering = ('-date_joined',)
    readonly_fields = ('date_joined', 'last_login')

    fieldsets = (
        ('Account Information', {
            'fields': ('email', 'password')
        }),
        ('Personal Details', {
            'fields': ('first_name', 'last_name', 'phone')
        }),
        ('Restaurant', {
            'fields': ('restaurant', 'user_type')
        }),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
            'classes': ('collapse',)
        }),
        ('Important Dates', {
            'fields': ('last_login', 'date_joined'),
            'classes': ('collapse',)
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'first_name', 'last_name', 'user_type', 'restaurant', 'password1', 'password2'),
        }),
    )
