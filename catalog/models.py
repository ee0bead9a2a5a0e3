from django.db import models


class ServiceTemplate(models.Model):
    """
    An administrative service offered by the village office
    (e.g. Surat Keterangan Domisili). Citizens apply against one template.
    """
    class ServiceType(models.TextChoices):
        DOMICILE_LETTER = 'domicile_letter', 'Surat Keterangan Domisili'
        BUSINESS_LETTER = 'business_letter', 'Surat Keterangan Usaha'
        POOR_CERTIFICATE = 'poor_certificate', 'Surat Keterangan Tidak Mampu'
        BIRTH_CERTIFICATE = 'birth_certificate', 'Surat Keterangan Kelahiran'
        OTHER = 'other', 'Lainnya'

    name = models.CharField(max_length=150)
    service_type = models.CharField(max_length=30, choices=ServiceType.choices, db_index=True)
    description = models.TextField(blank=True)
    # List of document types, e.g. ["ktp", "kk"]
    required_documents = models.JSONField(default=list, blank=True)
    form_fields = models.JSONField(default=dict, blank=True)
    template_content = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name
