from django.test import TestCase
from .models import ServiceTemplate
from .utils import get_service_template


class ServiceTemplateTests(TestCase):
    def setUp(self):
        self.template = ServiceTemplate.objects.create(
            name="Surat Keterangan Tidak Mampu",
            service_type=ServiceTemplate.ServiceType.POOR_CERTIFICATE,
            required_documents=["ktp", "kk"],
            form_fields={"income": "number"},
            template_content="Yang bertanda tangan di bawah ini menerangkan bahwa {name} ...",
        )

    def test_defaults(self):
        template = ServiceTemplate.objects.create(name="Lainnya", service_type=ServiceTemplate.ServiceType.OTHER)
        self.assertTrue(template.is_active)
        self.assertEqual(template.required_documents, [])
        self.assertEqual(template.form_fields, {})

    def test_get_service_template(self):
        self.assertEqual(get_service_template(self.template.id), self.template)
        self.assertIsNone(get_service_template(99999))
        self.assertIsNone(get_service_template(None))
        self.assertIsNone(get_service_template("abc"))

    def test_inactive_template_still_resolved(self):
        self.template.is_active = False
        self.template.save()
        self.assertEqual(get_service_template(self.template.id), self.template)
