from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


STATUS_CHOICES = [
    ('submitted', 'Submitted'),
    ('rt_rw_review', 'RT/RW Review'),
    ('rt_rw_approved', 'Approved by RT/RW'),
    ('rt_rw_rejected', 'Rejected by RT/RW'),
    ('village_processing', 'Village Processing'),
    ('village_head_review', 'Village Head Review'),
    ('completed', 'Completed'),
    ('rejected', 'Rejected'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Application',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=STATUS_CHOICES, db_index=True, default='submitted', max_length=30)),
                ('form_data', models.JSONField(blank=True, default=dict)),
                ('submitted_documents', models.JSONField(blank=True, default=list)),
                ('rt_rw_review_notes', models.TextField(blank=True, null=True)),
                ('rt_rw_reviewed_at', models.DateTimeField(blank=True, null=True)),
                ('village_processing_notes', models.TextField(blank=True, null=True)),
                ('village_processed_at', models.DateTimeField(blank=True, null=True)),
                ('village_head_notes', models.TextField(blank=True, null=True)),
                ('village_head_reviewed_at', models.DateTimeField(blank=True, null=True)),
                ('document_number', models.CharField(blank=True, max_length=50, null=True, unique=True)),
                ('generated_document_url', models.CharField(blank=True, max_length=500, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('citizen', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='applications', to=settings.AUTH_USER_MODEL)),
                ('service_template', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='applications', to='catalog.servicetemplate')),
                ('rt_rw_reviewer', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='rt_rw_reviews', to=settings.AUTH_USER_MODEL)),
                ('village_staff', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='village_processings', to=settings.AUTH_USER_MODEL)),
                ('village_head', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='village_head_reviews', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['status', 'updated_at'], name='application_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='DocumentCounter',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('service_type', models.CharField(choices=[('domicile_letter', 'Surat Keterangan Domisili'), ('business_letter', 'Surat Keterangan Usaha'), ('poor_certificate', 'Surat Keterangan Tidak Mampu'), ('birth_certificate', 'Surat Keterangan Kelahiran'), ('other', 'Lainnya')], max_length=30)),
                ('year', models.PositiveIntegerField()),
                ('last_seq', models.PositiveIntegerField(default=0)),
            ],
            options={
                'unique_together': {('service_type', 'year')},
            },
        ),
        migrations.CreateModel(
            name='ApplicationLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=[('CREATED', 'Created'), ('STATUS_CHANGED', 'Status Changed'), ('DOCUMENT_GENERATED', 'Document Generated')], max_length=20)),
                ('from_status', models.CharField(blank=True, choices=STATUS_CHOICES, max_length=30, null=True)),
                ('to_status', models.CharField(blank=True, choices=STATUS_CHOICES, max_length=30, null=True)),
                ('remarks', models.TextField(blank=True, null=True)),
                ('timestamp', models.DateTimeField(auto_now_add=True)),
                ('application', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='logs', to='applications.application')),
                ('by_user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['timestamp', 'id'],
            },
        ),
    ]
