from django.contrib import admin
from .models import ServiceTemplate


@admin.register(ServiceTemplate)
class ServiceTemplateAdmin(admin.ModelAdmin):
    list_display = ('name', 'service_type', 'is_active', 'updated_at')
    list_filter = ('service_type', 'is_active')
    search_fields = ('name', 'description')
