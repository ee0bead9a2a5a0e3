import re
import threading
from datetime import date
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import IntegrityError, OperationalError, connection
from django.test import TestCase, TransactionTestCase, Client, override_settings
from django.urls import reverse

from catalog.models import ServiceTemplate
from .exceptions import NotFound, InvalidTransition, InvalidApplication, NumberingConflict, StorageFailure
from .models import Application, ApplicationLog, DocumentCounter
from .numbering import ensure_document_number
from .services import (
    create_application, update_application_status, generate_application_document, get_applications_for_user
)
from .templatetags.application_extras import status_label, document_sequence
from .utils import (
    get_service_type_code, get_status_label, get_status_color, format_document_number, build_document_url
)
from .workflow import TRANSITIONS, TERMINAL_STATUSES, allowed_targets

User = get_user_model()
Status = Application.Status

AUDIT_TRIPLES = {
    'rt_rw': ('rt_rw_reviewer_id', 'rt_rw_review_notes', 'rt_rw_reviewed_at'),
    'village_staff': ('village_staff_id', 'village_processing_notes', 'village_processed_at'),
    'village_head': ('village_head_id', 'village_head_notes', 'village_head_reviewed_at'),
}


class WorkflowFixtureMixin:
    def setUp(self):
        self.citizen = User.objects.create_user(
            username="warga1", password="password", role=User.Role.CITIZEN, rt="001", rw="002"
        )
        self.rt_rw_head = User.objects.create_user(
            username="ketua_rt", password="password", role=User.Role.RT_RW_HEAD, rt="001", rw="002"
        )
        self.staff = User.objects.create_user(username="staf1", password="password", role=User.Role.VILLAGE_STAFF)
        self.head = User.objects.create_user(username="lurah", password="password", role=User.Role.VILLAGE_HEAD)

        self.domicile = ServiceTemplate.objects.create(
            name="Surat Keterangan Domisili",
            service_type=ServiceTemplate.ServiceType.DOMICILE_LETTER,
            required_documents=["ktp", "kk"],
            form_fields={"purpose": "text"},
        )
        self.business = ServiceTemplate.objects.create(
            name="Surat Keterangan Usaha",
            service_type=ServiceTemplate.ServiceType.BUSINESS_LETTER,
        )

    def make_application(self, status=Status.SUBMITTED, template=None):
        application = create_application(
            self.citizen.id,
            (template or self.domicile).id,
            form_data={"purpose": "Pembukaan rekening bank"},
            submitted_documents=[1, 2],
        )
        if status != Status.SUBMITTED:
            Application.objects.filter(pk=application.pk).update(status=status)
            application.refresh_from_db()
        return application

    def complete(self, application):
        update_application_status(application.id, Status.RT_RW_APPROVED, self.rt_rw_head.id, notes="Disetujui")
        update_application_status(application.id, Status.VILLAGE_PROCESSING, self.staff.id)
        update_application_status(application.id, Status.VILLAGE_HEAD_REVIEW, self.staff.id)
        return update_application_status(application.id, Status.COMPLETED, self.head.id)

    def assertTriple(self, application, stage, populated):
        values = [getattr(application, f) for f in AUDIT_TRIPLES[stage]]
        if populated:
            self.assertTrue(all(v is not None for v in values[::2]), f"{stage} triple should be set")
        else:
            self.assertTrue(all(v is None for v in values), f"{stage} triple should be empty")


class CreateApplicationTest(WorkflowFixtureMixin, TestCase):
    def test_new_application_is_submitted_and_unstamped(self):
        application = self.make_application()

        self.assertEqual(application.status, Status.SUBMITTED)
        for stage in AUDIT_TRIPLES:
            self.assertTriple(application, stage, populated=False)
        self.assertIsNone(application.document_number)
        self.assertIsNone(application.generated_document_url)
        self.assertEqual(application.form_data, {"purpose": "Pembukaan rekening bank"})
        self.assertEqual(application.submitted_documents, [1, 2])

    def test_creation_is_logged(self):
        application = self.make_application()
        log = application.logs.get()
        self.assertEqual(log.action, ApplicationLog.Action.CREATED)
        self.assertEqual(log.by_user, self.citizen)

    def test_unknown_citizen(self):
        with self.assertRaises(NotFound):
            create_application(99999, self.domicile.id)

    def test_unknown_template(self):
        with self.assertRaises(NotFound):
            create_application(self.citizen.id, 99999)

    def test_inactive_template(self):
        self.domicile.is_active = False
        self.domicile.save()

        with self.assertRaises(InvalidApplication):
            create_application(self.citizen.id, self.domicile.id)
        self.assertEqual(Application.objects.count(), 0)


class TransitionTest(WorkflowFixtureMixin, TestCase):
    def test_rt_rw_approval_stamps_rt_rw_triple(self):
        application = self.make_application()

        result = update_application_status(application.id, Status.RT_RW_APPROVED, self.rt_rw_head.id, notes="Disetujui")

        self.assertEqual(result.status, Status.RT_RW_APPROVED)
        self.assertEqual(result.rt_rw_reviewer_id, self.rt_rw_head.id)
        self.assertEqual(result.rt_rw_review_notes, "Disetujui")
        self.assertIsNotNone(result.rt_rw_reviewed_at)
        self.assertTriple(result, 'village_staff', populated=False)
        self.assertTriple(result, 'village_head', populated=False)

        result.refresh_from_db()
        self.assertEqual(result.status, Status.RT_RW_APPROVED)

    def test_rt_rw_review_is_treated_like_submitted(self):
        application = self.make_application(status=Status.RT_RW_REVIEW)

        result = update_application_status(application.id, Status.RT_RW_REJECTED, self.rt_rw_head.id)

        self.assertEqual(result.status, Status.RT_RW_REJECTED)

    def test_rejection_stamps_closing_actor(self):
        application = self.make_application()

        result = update_application_status(application.id, Status.RT_RW_REJECTED, self.rt_rw_head.id)

        self.assertEqual(result.rt_rw_reviewer_id, self.rt_rw_head.id)
        self.assertIsNone(result.rt_rw_review_notes)
        self.assertIsNotNone(result.rt_rw_reviewed_at)
        self.assertIsNone(result.document_number)

    def test_blank_notes_are_stored_as_null(self):
        application = self.make_application()

        result = update_application_status(application.id, Status.RT_RW_APPROVED, self.rt_rw_head.id, notes="   ")

        self.assertIsNone(result.rt_rw_review_notes)

    def test_non_string_notes_are_stored_as_text(self):
        application = self.make_application()

        result = update_application_status(application.id, Status.RT_RW_APPROVED, self.rt_rw_head.id, notes=123)

        result.refresh_from_db()
        self.assertEqual(result.rt_rw_review_notes, "123")

    def test_village_processing_stamps_staff_triple(self):
        application = self.make_application(status=Status.RT_RW_APPROVED)

        result = update_application_status(application.id, Status.VILLAGE_PROCESSING, self.staff.id,
                                           notes="Sedang verifikasi dokumen")

        self.assertEqual(result.village_staff_id, self.staff.id)
        self.assertEqual(result.village_processing_notes, "Sedang verifikasi dokumen")
        self.assertIsNotNone(result.village_processed_at)

    def test_handoff_to_village_head_keeps_staff_triple(self):
        application = self.make_application(status=Status.RT_RW_APPROVED)
        processing = update_application_status(application.id, Status.VILLAGE_PROCESSING, self.staff.id, notes="Mulai")
        processed_at = processing.village_processed_at

        result = update_application_status(application.id, Status.VILLAGE_HEAD_REVIEW, self.staff.id, notes="Selesai diproses")

        self.assertEqual(result.status, Status.VILLAGE_HEAD_REVIEW)
        self.assertEqual(result.village_processed_at, processed_at)
        self.assertEqual(result.village_processing_notes, "Mulai")

    def test_staff_can_forward_directly_to_village_head(self):
        application = self.make_application(status=Status.RT_RW_APPROVED)

        result = update_application_status(application.id, Status.VILLAGE_HEAD_REVIEW, self.staff.id)

        self.assertEqual(result.status, Status.VILLAGE_HEAD_REVIEW)
        self.assertTriple(result, 'village_staff', populated=True)

    def test_updated_at_refreshed(self):
        application = self.make_application()
        before = application.updated_at

        result = update_application_status(application.id, Status.RT_RW_APPROVED, self.rt_rw_head.id)

        self.assertGreaterEqual(result.updated_at, before)
        self.assertNotEqual(result.updated_at, before)

    def test_transition_is_logged(self):
        application = self.make_application()

        update_application_status(application.id, Status.RT_RW_APPROVED, self.rt_rw_head.id, notes="Disetujui")

        log = application.logs.filter(action=ApplicationLog.Action.STATUS_CHANGED).get()
        self.assertEqual(log.from_status, Status.SUBMITTED)
        self.assertEqual(log.to_status, Status.RT_RW_APPROVED)
        self.assertEqual(log.by_user, self.rt_rw_head)
        self.assertEqual(log.remarks, "Disetujui")

    def test_full_path_audit_invariant(self):
        application = self.make_application()

        result = update_application_status(application.id, Status.RT_RW_APPROVED, self.rt_rw_head.id)
        self.assertTriple(result, 'rt_rw', True)
        self.assertTriple(result, 'village_staff', False)
        self.assertTriple(result, 'village_head', False)
        self.assertIsNone(result.document_number)

        result = update_application_status(application.id, Status.VILLAGE_PROCESSING, self.staff.id)
        self.assertTriple(result, 'village_staff', True)
        self.assertTriple(result, 'village_head', False)

        result = update_application_status(application.id, Status.VILLAGE_HEAD_REVIEW, self.staff.id)
        self.assertTriple(result, 'village_head', False)
        self.assertIsNone(result.document_number)

        result = update_application_status(application.id, Status.COMPLETED, self.head.id, notes="Disetujui")
        for stage in AUDIT_TRIPLES:
            self.assertTriple(result, stage, True)
        self.assertIsNotNone(result.document_number)

    def test_village_head_rejection_has_no_document(self):
        application = self.make_application(status=Status.VILLAGE_HEAD_REVIEW)

        result = update_application_status(application.id, Status.REJECTED, self.head.id, notes="Data tidak lengkap")

        self.assertEqual(result.status, Status.REJECTED)
        self.assertEqual(result.village_head_id, self.head.id)
        self.assertIsNone(result.document_number)
        self.assertIsNone(result.generated_document_url)


class InvalidTransitionTest(WorkflowFixtureMixin, TestCase):
    def assertUnchanged(self, application, **kwargs):
        before = Application.objects.get(pk=application.pk)
        with self.assertRaises(InvalidTransition):
            update_application_status(application.id, **kwargs)
        after = Application.objects.get(pk=application.pk)
        self.assertEqual(after.status, before.status)
        self.assertEqual(after.updated_at, before.updated_at)
        self.assertEqual(after.rt_rw_reviewed_at, before.rt_rw_reviewed_at)
        self.assertEqual(after.village_processed_at, before.village_processed_at)
        self.assertEqual(after.village_head_reviewed_at, before.village_head_reviewed_at)
        self.assertEqual(after.document_number, before.document_number)

    def test_citizen_cannot_transition(self):
        for status in Status.values:
            application = self.make_application(status=status)
            for target in Status.values:
                self.assertUnchanged(application, target_status=target, acting_user_id=self.citizen.id)

    def test_staff_cannot_act_on_submitted(self):
        application = self.make_application()
        self.assertUnchanged(application, target_status=Status.RT_RW_APPROVED, acting_user_id=self.staff.id)
        self.assertUnchanged(application, target_status=Status.VILLAGE_PROCESSING, acting_user_id=self.staff.id)

    def test_village_head_cannot_skip_stages(self):
        application = self.make_application()
        self.assertUnchanged(application, target_status=Status.COMPLETED, acting_user_id=self.head.id)

    def test_rt_rw_head_cannot_move_past_own_stage(self):
        application = self.make_application(status=Status.RT_RW_APPROVED)
        self.assertUnchanged(application, target_status=Status.VILLAGE_PROCESSING, acting_user_id=self.rt_rw_head.id)

    def test_repeated_rt_rw_approval_rejected(self):
        application = self.make_application()
        first = update_application_status(application.id, Status.RT_RW_APPROVED, self.rt_rw_head.id, notes="Disetujui")

        self.assertUnchanged(application, target_status=Status.RT_RW_APPROVED,
                             acting_user_id=self.rt_rw_head.id, notes="Lagi")

        application.refresh_from_db()
        self.assertEqual(application.rt_rw_reviewed_at, first.rt_rw_reviewed_at)
        self.assertEqual(application.rt_rw_review_notes, "Disetujui")

    def test_repeated_village_processing_rejected(self):
        application = self.make_application(status=Status.RT_RW_APPROVED)
        update_application_status(application.id, Status.VILLAGE_PROCESSING, self.staff.id)

        self.assertUnchanged(application, target_status=Status.VILLAGE_PROCESSING, acting_user_id=self.staff.id)

    def test_closed_stage_cannot_be_restamped(self):
        # Legacy row whose RT/RW triple is set but whose status was reset
        application = self.make_application()
        update_application_status(application.id, Status.RT_RW_APPROVED, self.rt_rw_head.id)
        Application.objects.filter(pk=application.pk).update(status=Status.SUBMITTED)

        self.assertUnchanged(application, target_status=Status.RT_RW_APPROVED, acting_user_id=self.rt_rw_head.id)

    def test_no_transition_out_of_terminal_statuses(self):
        for status in TERMINAL_STATUSES:
            application = self.make_application(status=status)
            for actor in (self.rt_rw_head, self.staff, self.head):
                for target in Status.values:
                    self.assertUnchanged(application, target_status=target, acting_user_id=actor.id)

    def test_rejected_application_refuses_everything(self):
        application = self.make_application(status=Status.VILLAGE_HEAD_REVIEW)
        update_application_status(application.id, Status.REJECTED, self.head.id)

        for target in Status.values:
            self.assertUnchanged(application, target_status=target, acting_user_id=self.head.id)

    def test_unknown_target_status(self):
        application = self.make_application()
        self.assertUnchanged(application, target_status="approved", acting_user_id=self.rt_rw_head.id)

    def test_invalid_transition_is_not_retried(self):
        application = self.make_application()
        with mock.patch('applications.workflow.check_transition', side_effect=InvalidTransition("nope")) as check:
            with self.assertRaises(InvalidTransition):
                update_application_status(application.id, Status.RT_RW_APPROVED, self.rt_rw_head.id)
        self.assertEqual(check.call_count, 1)

    def test_missing_application(self):
        with self.assertRaises(NotFound):
            update_application_status(99999, Status.RT_RW_APPROVED, self.rt_rw_head.id)

    def test_missing_user(self):
        application = self.make_application()
        with self.assertRaises(NotFound):
            update_application_status(application.id, Status.RT_RW_APPROVED, 99999)
        application.refresh_from_db()
        self.assertEqual(application.status, Status.SUBMITTED)

    def test_malformed_ids_are_not_found(self):
        application = self.make_application()

        with self.assertRaises(NotFound):
            update_application_status("abc", Status.RT_RW_APPROVED, self.rt_rw_head.id)
        with self.assertRaises(NotFound):
            update_application_status(application.id, Status.RT_RW_APPROVED, "abc")
        with self.assertRaises(NotFound):
            generate_application_document("abc")
        with self.assertRaises(NotFound):
            create_application("abc", self.domicile.id)
        with self.assertRaises(NotFound):
            create_application(self.citizen.id, ["x"])

        application.refresh_from_db()
        self.assertEqual(application.status, Status.SUBMITTED)


class TransitionTableTest(TestCase):
    def test_terminal_statuses_have_no_outgoing_transitions(self):
        for (status, _role) in TRANSITIONS:
            self.assertNotIn(status, TERMINAL_STATUSES)

    def test_citizen_has_no_transitions(self):
        for status in Status.values:
            self.assertEqual(allowed_targets(status, User.Role.CITIZEN), frozenset())

    def test_only_village_head_completes(self):
        for (status, role), targets in TRANSITIONS.items():
            if Status.COMPLETED in targets:
                self.assertEqual(role, User.Role.VILLAGE_HEAD)


class DocumentNumberingTest(WorkflowFixtureMixin, TestCase):
    def test_completion_assigns_document_number(self):
        application = self.make_application(status=Status.VILLAGE_HEAD_REVIEW)

        result = update_application_status(application.id, Status.COMPLETED, self.head.id, notes="Disetujui")

        self.assertEqual(result.status, Status.COMPLETED)
        self.assertRegex(result.document_number, r"^\d{3}/SKD/\d{4}$")
        self.assertIsNotNone(result.generated_document_url)
        self.assertIn(str(application.id), result.generated_document_url)

        result.refresh_from_db()
        self.assertRegex(result.document_number, r"^001/SKD/\d{4}$")
        self.assertTrue(result.logs.filter(action=ApplicationLog.Action.DOCUMENT_GENERATED).exists())

    def test_sequence_per_service_type(self):
        first = self.complete(self.make_application())
        second = self.complete(self.make_application())
        business = self.complete(self.make_application(template=self.business))

        self.assertTrue(first.document_number.startswith("001/SKD/"))
        self.assertTrue(second.document_number.startswith("002/SKD/"))
        self.assertTrue(business.document_number.startswith("001/SKU/"))

    def test_numbers_unique_for_same_type(self):
        numbers = [self.complete(self.make_application()).document_number for _ in range(5)]
        self.assertEqual(len(set(numbers)), 5)

    def test_rejected_applications_do_not_consume_numbers(self):
        rejected = self.make_application(status=Status.VILLAGE_HEAD_REVIEW)
        update_application_status(rejected.id, Status.REJECTED, self.head.id)

        completed = self.complete(self.make_application())
        self.assertTrue(completed.document_number.startswith("001/"))

    def test_generate_document_is_idempotent(self):
        completed = self.complete(self.make_application())

        first = generate_application_document(completed.id)
        second = generate_application_document(completed.id)

        self.assertEqual(first.document_number, completed.document_number)
        self.assertEqual(second.document_number, completed.document_number)
        self.assertEqual(second.generated_document_url, completed.generated_document_url)
        self.assertEqual(DocumentCounter.objects.get(service_type="domicile_letter").last_seq, 1)
        self.assertEqual(completed.logs.filter(action=ApplicationLog.Action.DOCUMENT_GENERATED).count(), 1)

    def test_generate_document_assigns_missing_number(self):
        application = self.make_application(status=Status.COMPLETED)

        result = generate_application_document(application.id)

        self.assertRegex(result.document_number, r"^001/SKD/\d{4}$")
        self.assertIsNotNone(result.generated_document_url)

    def test_generate_document_requires_completed(self):
        for status in Status.values:
            if status == Status.COMPLETED:
                continue
            application = self.make_application(status=status)
            with self.assertRaises(InvalidTransition):
                generate_application_document(application.id)
            application.refresh_from_db()
            self.assertEqual(application.status, status)
            self.assertIsNone(application.document_number)

    def test_generate_document_missing_application(self):
        with self.assertRaises(NotFound):
            generate_application_document(99999)

    def test_existing_number_never_changes(self):
        application = self.make_application(status=Status.COMPLETED)
        Application.objects.filter(pk=application.pk).update(document_number="007/SKD/2023")
        application.refresh_from_db()

        number, url = ensure_document_number(application, self.domicile)

        self.assertEqual(number, "007/SKD/2023")
        self.assertTrue(url.endswith("/007-SKD-2023.pdf"))
        self.assertFalse(DocumentCounter.objects.exists())

    def test_sequence_restarts_each_year(self):
        with mock.patch('applications.numbering.timezone') as mock_tz:
            mock_tz.localdate.return_value = date(2023, 12, 31)
            last_year = self.complete(self.make_application())
            mock_tz.localdate.return_value = date(2024, 1, 1)
            this_year = self.complete(self.make_application())

        self.assertEqual(last_year.document_number, "001/SKD/2023")
        self.assertEqual(this_year.document_number, "001/SKD/2024")

    def test_counter_is_monotonic(self):
        values = [DocumentCounter.next_sequence("domicile_letter", 2024) for _ in range(3)]
        self.assertEqual(values, [1, 2, 3])
        self.assertEqual(DocumentCounter.next_sequence("domicile_letter", 2025), 1)
        self.assertEqual(DocumentCounter.next_sequence("business_letter", 2024), 1)


@override_settings(WORKFLOW_MAX_RETRIES=3)
class TransientErrorTest(WorkflowFixtureMixin, TestCase):
    def test_numbering_conflict_is_retried(self):
        application = self.make_application(status=Status.VILLAGE_HEAD_REVIEW)
        calls = []

        def flaky(app, template):
            calls.append(app.pk)
            if len(calls) == 1:
                raise NumberingConflict("concurrent completion")
            return ensure_document_number(app, template)

        with mock.patch('applications.workflow.ensure_document_number', side_effect=flaky):
            result = update_application_status(application.id, Status.COMPLETED, self.head.id)

        self.assertEqual(len(calls), 2)
        self.assertEqual(result.status, Status.COMPLETED)
        self.assertRegex(result.document_number, r"^001/SKD/\d{4}$")
        # The failed attempt left nothing behind
        self.assertEqual(application.logs.filter(action=ApplicationLog.Action.STATUS_CHANGED).count(), 1)

    def test_failed_numbering_rolls_back_status(self):
        application = self.make_application(status=Status.VILLAGE_HEAD_REVIEW)

        with mock.patch('applications.workflow.ensure_document_number',
                        side_effect=StorageFailure("database unavailable")) as numbering:
            with self.assertRaises(StorageFailure):
                update_application_status(application.id, Status.COMPLETED, self.head.id)

        self.assertEqual(numbering.call_count, 3)
        application.refresh_from_db()
        self.assertEqual(application.status, Status.VILLAGE_HEAD_REVIEW)
        self.assertIsNone(application.village_head_reviewed_at)
        self.assertIsNone(application.document_number)
        self.assertFalse(application.logs.filter(action=ApplicationLog.Action.STATUS_CHANGED).exists())

    def test_integrity_error_surfaces_as_numbering_conflict(self):
        application = self.make_application(status=Status.VILLAGE_HEAD_REVIEW)

        with mock.patch.object(DocumentCounter, 'next_sequence', side_effect=IntegrityError("duplicate key")):
            with self.assertRaises(NumberingConflict):
                update_application_status(application.id, Status.COMPLETED, self.head.id)

        application.refresh_from_db()
        self.assertEqual(application.status, Status.VILLAGE_HEAD_REVIEW)

    def test_operational_error_surfaces_as_storage_failure(self):
        application = self.make_application(status=Status.COMPLETED)

        with mock.patch.object(DocumentCounter, 'next_sequence', side_effect=OperationalError("connection lost")):
            with self.assertRaises(StorageFailure):
                generate_application_document(application.id)

        application.refresh_from_db()
        self.assertIsNone(application.document_number)


class ApplicationVisibilityTest(WorkflowFixtureMixin, TestCase):
    def test_citizen_sees_own_applications(self):
        mine = self.make_application()
        other = User.objects.create_user(username="warga2", password="password", role=User.Role.CITIZEN)
        create_application(other.id, self.domicile.id)

        self.assertEqual(list(get_applications_for_user(self.citizen)), [mine])

    def test_rt_rw_head_sees_pending_in_area(self):
        pending = self.make_application()
        self.make_application(status=Status.VILLAGE_PROCESSING)
        outsider = User.objects.create_user(username="warga3", password="password",
                                            role=User.Role.CITIZEN, rt="009", rw="009")
        create_application(outsider.id, self.domicile.id)

        self.assertEqual(list(get_applications_for_user(self.rt_rw_head)), [pending])

    def test_rt_rw_head_sees_own_reviews(self):
        application = self.make_application()
        update_application_status(application.id, Status.RT_RW_APPROVED, self.rt_rw_head.id)

        self.assertIn(application, get_applications_for_user(self.rt_rw_head))

    def test_rt_rw_head_without_area_sees_nothing(self):
        self.make_application()
        head = User.objects.create_user(username="ketua_rw", password="password", role=User.Role.RT_RW_HEAD)

        self.assertFalse(get_applications_for_user(head).exists())

    def test_staff_and_head_queues(self):
        approved = self.make_application(status=Status.RT_RW_APPROVED)
        processing = self.make_application(status=Status.VILLAGE_PROCESSING)
        review = self.make_application(status=Status.VILLAGE_HEAD_REVIEW)
        self.make_application()

        self.assertEqual(set(get_applications_for_user(self.staff)), {approved, processing})
        self.assertEqual(list(get_applications_for_user(self.head)), [review])


class UtilsTest(TestCase):
    def test_service_type_codes(self):
        self.assertEqual(get_service_type_code("domicile_letter"), "SKD")
        self.assertEqual(get_service_type_code("business_letter"), "SKU")
        self.assertEqual(get_service_type_code("poor_certificate"), "SKTM")
        self.assertEqual(get_service_type_code("birth_certificate"), "SAL")
        self.assertEqual(get_service_type_code("other"), "LAIN")
        self.assertEqual(get_service_type_code("unknown"), "LAIN")

    def test_format_document_number(self):
        self.assertEqual(format_document_number(4, "SKD", 2024), "004/SKD/2024")
        self.assertEqual(format_document_number(1234, "SKU", 2024), "1234/SKU/2024")

    @override_settings(DOCUMENT_BASE_URL="https://files.kelurahan.test/docs/")
    def test_build_document_url(self):
        self.assertEqual(
            build_document_url(12, "004/SKD/2024"),
            "https://files.kelurahan.test/docs/12/004-SKD-2024.pdf"
        )

    def test_status_display(self):
        self.assertEqual(get_status_label("rt_rw_approved"), "Disetujui RT/RW")
        self.assertEqual(get_status_label("completed"), "Selesai")
        self.assertIn("red", get_status_color("rejected"))
        # Unknown statuses fall back to 'submitted'
        self.assertEqual(get_status_label("bogus"), "Diajukan")

    def test_template_filters(self):
        self.assertEqual(status_label("village_head_review"), "Review Kades")
        self.assertEqual(document_sequence("004/SKD/2024"), "004")
        self.assertIsNone(document_sequence(None))


class ApplicationViewTests(WorkflowFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = Client()

    def test_requires_login(self):
        response = self.client.get(reverse('applications:application_list'))
        self.assertEqual(response.status_code, 302)

    def test_list_for_citizen(self):
        application = self.make_application()
        self.client.force_login(self.citizen)

        response = self.client.get(reverse('applications:application_list'))

        self.assertEqual(response.status_code, 200)
        data = response.json()['applications']
        self.assertEqual([a['id'] for a in data], [application.id])
        self.assertEqual(data[0]['status_label'], "Diajukan")

    def test_citizen_cannot_see_others(self):
        other = User.objects.create_user(username="warga2", password="password", role=User.Role.CITIZEN)
        application = create_application(other.id, self.domicile.id)
        self.client.force_login(self.citizen)

        response = self.client.get(reverse('applications:application_detail', args=[application.id]))

        self.assertEqual(response.status_code, 404)

    def test_detail_follows_role_visibility(self):
        application = self.make_application()
        other_head = User.objects.create_user(username="ketua_rt9", password="password",
                                              role=User.Role.RT_RW_HEAD, rt="009", rw="009")
        url = reverse('applications:application_detail', args=[application.id])

        self.client.force_login(other_head)
        self.assertEqual(self.client.get(url).status_code, 404)

        self.client.force_login(self.head)
        self.assertEqual(self.client.get(url).status_code, 404)

        self.client.force_login(self.rt_rw_head)
        response = self.client.get(url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['id'], application.id)

    def test_status_update(self):
        application = self.make_application()
        self.client.force_login(self.rt_rw_head)

        response = self.client.post(
            reverse('applications:update_status', args=[application.id]),
            {'status': 'rt_rw_approved', 'notes': 'Disetujui'}
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['status'], 'rt_rw_approved')
        self.assertEqual(data['rt_rw_reviewer_id'], self.rt_rw_head.id)
        self.assertEqual(data['rt_rw_review_notes'], 'Disetujui')

    def test_status_update_by_citizen_is_conflict(self):
        application = self.make_application()
        self.client.force_login(self.citizen)

        response = self.client.post(
            reverse('applications:update_status', args=[application.id]),
            {'status': 'rt_rw_approved'}
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'InvalidTransition')
        application.refresh_from_db()
        self.assertEqual(application.status, Status.SUBMITTED)

    def test_status_update_missing_application(self):
        self.client.force_login(self.rt_rw_head)
        response = self.client.post(reverse('applications:update_status', args=[99999]), {'status': 'rt_rw_approved'})
        self.assertEqual(response.status_code, 404)

    def test_generate_document(self):
        application = self.complete(self.make_application())
        self.client.force_login(self.head)

        response = self.client.post(reverse('applications:generate_document', args=[application.id]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['document_number'], application.document_number)

    def test_transient_error_is_503(self):
        application = self.make_application(status=Status.COMPLETED)
        self.client.force_login(self.head)

        with override_settings(WORKFLOW_MAX_RETRIES=1), \
                mock.patch.object(DocumentCounter, 'next_sequence', side_effect=OperationalError("down")):
            response = self.client.post(reverse('applications:generate_document', args=[application.id]))

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()['error'], 'StorageFailure')


class ConcurrentCompletionTest(WorkflowFixtureMixin, TransactionTestCase):
    def test_parallel_completions_get_distinct_numbers(self):
        applications = [self.make_application(status=Status.VILLAGE_HEAD_REVIEW) for _ in range(6)]
        results = {}
        errors = []

        def worker(application_id):
            try:
                app = update_application_status(application_id, Status.COMPLETED, self.head.id)
                results[application_id] = app.document_number
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(a.id,)) for a in applications]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        numbers = list(results.values())
        self.assertEqual(len(numbers), 6)
        self.assertEqual(len(set(numbers)), 6)
        sequences = sorted(int(re.match(r"(\d{3})/SKD/\d{4}", n).group(1)) for n in numbers)
        self.assertEqual(sequences, [1, 2, 3, 4, 5, 6])

    def test_parallel_transitions_on_same_application_serialize(self):
        application = self.make_application(status=Status.VILLAGE_HEAD_REVIEW)
        outcomes = []
        errors = []

        def worker(target):
            try:
                update_application_status(application.id, target, self.head.id)
                outcomes.append(target)
            except InvalidTransition:
                outcomes.append('invalid')
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(t,)) for t in (Status.COMPLETED, Status.REJECTED)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(outcomes), 2)
        self.assertEqual(outcomes.count('invalid'), 1)
        application.refresh_from_db()
        self.assertIn(application.status, (Status.COMPLETED, Status.REJECTED))
        self.assertEqual(application.document_number is not None, application.status == Status.COMPLETED)

    def test_sqlite_writers_wait_for_the_lock(self):
        if connection.vendor != 'sqlite':
            self.skipTest("SQLite only")
        options = connection.settings_dict['OPTIONS']
        self.assertEqual(options['transaction_mode'], 'IMMEDIATE')
        self.assertGreater(options['timeout'], 0)
        self.assertNotIn(':memory:', connection.settings_dict['TEST']['NAME'])
