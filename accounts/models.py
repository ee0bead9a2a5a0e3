from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    class Role(models.TextChoices):
        CITIZEN = 'citizen', 'Warga'
        RT_RW_HEAD = 'rt_rw_head', 'Ketua RT/RW'
        VILLAGE_STAFF = 'village_staff', 'Staf Kelurahan'
        VILLAGE_HEAD = 'village_head', 'Kepala Desa/Lurah'

    role = models.CharField(max_length=20, choices=Role.choices, default=Role.CITIZEN)
    phone = models.CharField(max_length=20, null=True, blank=True)
    # NIK: Nomor Induk Kependudukan (16 digits)
    nik = models.CharField(max_length=16, null=True, blank=True, verbose_name="NIK")
    rt = models.CharField(max_length=3, null=True, blank=True, verbose_name="RT")
    rw = models.CharField(max_length=3, null=True, blank=True, verbose_name="RW")
    address = models.TextField(null=True, blank=True)

    def __str__(self):
        return self.username

    @property
    def is_citizen(self):
        return self.role == self.Role.CITIZEN
