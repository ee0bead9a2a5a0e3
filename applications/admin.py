from django.contrib import admin
from .models import Application, ApplicationLog, DocumentCounter


class ApplicationLogInline(admin.TabularInline):
    model = ApplicationLog
    extra = 0
    readonly_fields = ('action', 'from_status', 'to_status', 'by_user', 'remarks', 'timestamp')
    can_delete = False


@admin.register(Application)
class ApplicationAdmin(admin.ModelAdmin):
    list_display = ('id', 'citizen', 'service_template', 'status', 'document_number', 'updated_at')
    list_filter = ('status', 'service_template__service_type', 'created_at')
    search_fields = ('document_number', 'citizen__username', 'citizen__nik')
    # Status and audit fields only change through the workflow
    readonly_fields = (
        'status',
        'rt_rw_reviewer', 'rt_rw_review_notes', 'rt_rw_reviewed_at',
        'village_staff', 'village_processing_notes', 'village_processed_at',
        'village_head', 'village_head_notes', 'village_head_reviewed_at',
        'document_number', 'generated_document_url',
        'created_at', 'updated_at',
    )
    inlines = [ApplicationLogInline]


@admin.register(ApplicationLog)
class ApplicationLogAdmin(admin.ModelAdmin):
    list_display = ('application', 'action', 'from_status', 'to_status', 'by_user', 'timestamp')
    list_filter = ('action', 'timestamp')
    search_fields = ('remarks',)


@admin.register(DocumentCounter)
class DocumentCounterAdmin(admin.ModelAdmin):
    list_display = ('service_type', 'year', 'last_seq')
    list_filter = ('year', 'service_type')
