from django.db import models, transaction
from django.conf import settings

from catalog.models import ServiceTemplate


class Application(models.Model):
    class Status(models.TextChoices):
        SUBMITTED = "submitted", "Submitted"
        RT_RW_REVIEW = "rt_rw_review", "RT/RW Review"
        RT_RW_APPROVED = "rt_rw_approved", "Approved by RT/RW"
        RT_RW_REJECTED = "rt_rw_rejected", "Rejected by RT/RW"
        VILLAGE_PROCESSING = "village_processing", "Village Processing"
        VILLAGE_HEAD_REVIEW = "village_head_review", "Village Head Review"
        COMPLETED = "completed", "Completed"
        REJECTED = "rejected", "Rejected"

    citizen = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="applications")
    service_template = models.ForeignKey(ServiceTemplate, on_delete=models.PROTECT, related_name="applications")
    status = models.CharField(max_length=30, choices=Status.choices, default=Status.SUBMITTED, db_index=True)

    form_data = models.JSONField(default=dict, blank=True)
    # Ids of uploaded citizen documents (KTP, KK, ...)
    submitted_documents = models.JSONField(default=list, blank=True)

    # RT/RW stage
    rt_rw_reviewer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="rt_rw_reviews")
    rt_rw_review_notes = models.TextField(null=True, blank=True)
    rt_rw_reviewed_at = models.DateTimeField(null=True, blank=True)

    # Village staff stage
    village_staff = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="village_processings")
    village_processing_notes = models.TextField(null=True, blank=True)
    village_processed_at = models.DateTimeField(null=True, blank=True)

    # Village head stage
    village_head = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="village_head_reviews")
    village_head_notes = models.TextField(null=True, blank=True)
    village_head_reviewed_at = models.DateTimeField(null=True, blank=True)

    document_number = models.CharField(max_length=50, unique=True, null=True, blank=True)
    generated_document_url = models.CharField(max_length=500, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'updated_at'], name='application_status_idx'),
        ]

    def __str__(self):
        return f"#{self.pk} {self.service_template} ({self.status})"


class DocumentCounter(models.Model):
    """
    Last issued document sequence per (service type, year).
    """
    service_type = models.CharField(max_length=30, choices=ServiceTemplate.ServiceType.choices)
    year = models.PositiveIntegerField()
    last_seq = models.PositiveIntegerField(default=0)

    class Meta:
        unique_together = ('service_type', 'year')

    def __str__(self):
        return f"{self.service_type}/{self.year}: {self.last_seq}"

    @classmethod
    def next_sequence(cls, service_type, year):
        with transaction.atomic():
            counter, created = cls.objects.select_for_update().get_or_create(
                service_type=service_type,
                year=year,
                defaults={'last_seq': 0}
            )
            counter.last_seq += 1
            counter.save(update_fields=['last_seq'])

            return counter.last_seq


class ApplicationLog(models.Model):
    class Action(models.TextChoices):
        CREATED = 'CREATED', 'Created'
        STATUS_CHANGED = 'STATUS_CHANGED', 'Status Changed'
        DOCUMENT_GENERATED = 'DOCUMENT_GENERATED', 'Document Generated'

    application = models.ForeignKey(Application, on_delete=models.CASCADE, related_name='logs')
    action = models.CharField(max_length=20, choices=Action.choices)

    from_status = models.CharField(max_length=30, choices=Application.Status.choices, null=True, blank=True)
    to_status = models.CharField(max_length=30, choices=Application.Status.choices, null=True, blank=True)

    by_user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    remarks = models.TextField(null=True, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['timestamp', 'id']

    def __str__(self):
        return f"#{self.application_id} - {self.action}"
