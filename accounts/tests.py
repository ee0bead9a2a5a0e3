from django.test import TestCase, Client
from django.urls import reverse
from django.contrib.auth import get_user_model
from .utils import get_user, get_users_in_area

User = get_user_model()


class UserDirectoryTests(TestCase):
    def setUp(self):
        self.citizen = User.objects.create_user(
            username="warga1", password="password", role=User.Role.CITIZEN, rt="001", rw="002"
        )
        self.neighbour = User.objects.create_user(
            username="warga2", password="password", role=User.Role.CITIZEN, rt="003", rw="002"
        )
        self.rt_rw_head = User.objects.create_user(
            username="ketua_rt", password="password", role=User.Role.RT_RW_HEAD, rt="001", rw="002"
        )

    def test_get_user(self):
        self.assertEqual(get_user(self.citizen.id), self.citizen)
        self.assertIsNone(get_user(99999))
        self.assertIsNone(get_user(None))
        self.assertIsNone(get_user("abc"))

    def test_default_role_is_citizen(self):
        user = User.objects.create_user(username="baru", password="password")
        self.assertEqual(user.role, User.Role.CITIZEN)
        self.assertTrue(user.is_citizen)

    def test_users_in_area(self):
        self.assertEqual(list(get_users_in_area(rt="001", rw="002")), [self.citizen])
        self.assertEqual(set(get_users_in_area(rw="002")), {self.citizen, self.neighbour})
        # Officials are not residents of the area list
        self.assertNotIn(self.rt_rw_head, get_users_in_area(rw="002"))

    def test_empty_area_matches_nobody(self):
        self.assertFalse(get_users_in_area().exists())


class AdminAccessTests(TestCase):
    def setUp(self):
        self.client = Client()
        self.admin_user = User.objects.create_superuser(username="admin", password="password", email="admin@desa.id")
        self.staff_user = User.objects.create_user(
            username="staf1", password="password", role=User.Role.VILLAGE_STAFF
        )

    def test_admin_changelists(self):
        urls = [
            reverse('admin:accounts_user_changelist'),
            reverse('admin:catalog_servicetemplate_changelist'),
            reverse('admin:applications_application_changelist'),
            reverse('admin:applications_documentcounter_changelist'),
        ]

        for url in urls:
            # Village staff without is_staff cannot open the admin
            self.client.force_login(self.staff_user)
            response = self.client.get(url)
            self.assertNotEqual(response.status_code, 200)

            self.client.force_login(self.admin_user)
            response = self.client.get(url)
            self.assertEqual(response.status_code, 200)
