from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='ServiceTemplate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=150)),
                ('service_type', models.CharField(choices=[('domicile_letter', 'Surat Keterangan Domisili'), ('business_letter', 'Surat Keterangan Usaha'), ('poor_certificate', 'Surat Keterangan Tidak Mampu'), ('birth_certificate', 'Surat Keterangan Kelahiran'), ('other', 'Lainnya')], db_index=True, max_length=30)),
                ('description', models.TextField(blank=True)),
                ('required_documents', models.JSONField(blank=True, default=list)),
                ('form_fields', models.JSONField(blank=True, default=dict)),
                ('template_content', models.TextField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
    ]
