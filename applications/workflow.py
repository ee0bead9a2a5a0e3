"""
Approval workflow for citizen applications.

    submitted / rt_rw_review --(RT/RW head)--> rt_rw_approved | rt_rw_rejected
    rt_rw_approved --(village staff)--> village_processing | village_head_review
    village_processing --(village staff)--> village_head_review
    village_head_review --(village head)--> completed | rejected

TRANSITIONS is the only place that decides who may move an application
where. Each accepted transition stamps the acting authority's audit fields
(reviewer, notes, timestamp) once; they are never overwritten.
"""
import logging

from django.db import transaction
from django.utils import timezone

from accounts.models import User
from accounts.utils import get_user
from catalog.utils import get_service_template
from .exceptions import NotFound, InvalidTransition, storage_errors
from .models import Application, ApplicationLog
from .numbering import ensure_document_number
from .services import log_application_action

logger = logging.getLogger(__name__)

Status = Application.Status
Role = User.Role

TERMINAL_STATUSES = frozenset({Status.RT_RW_REJECTED, Status.REJECTED, Status.COMPLETED})

# (current status, actor role) -> allowed target statuses
TRANSITIONS = {
    (Status.SUBMITTED, Role.RT_RW_HEAD): frozenset({Status.RT_RW_APPROVED, Status.RT_RW_REJECTED}),
    (Status.RT_RW_REVIEW, Role.RT_RW_HEAD): frozenset({Status.RT_RW_APPROVED, Status.RT_RW_REJECTED}),
    (Status.RT_RW_APPROVED, Role.VILLAGE_STAFF): frozenset({Status.VILLAGE_PROCESSING, Status.VILLAGE_HEAD_REVIEW}),
    (Status.VILLAGE_PROCESSING, Role.VILLAGE_STAFF): frozenset({Status.VILLAGE_HEAD_REVIEW}),
    (Status.VILLAGE_HEAD_REVIEW, Role.VILLAGE_HEAD): frozenset({Status.COMPLETED, Status.REJECTED}),
}

# role -> (reviewer field, notes field, timestamp field)
STAGE_FIELDS = {
    Role.RT_RW_HEAD: ('rt_rw_reviewer', 'rt_rw_review_notes', 'rt_rw_reviewed_at'),
    Role.VILLAGE_STAFF: ('village_staff', 'village_processing_notes', 'village_processed_at'),
    Role.VILLAGE_HEAD: ('village_head', 'village_head_notes', 'village_head_reviewed_at'),
}

# Statuses where a stage has already recorded its decision but still holds the application.
STAGE_IN_PROGRESS = {
    Status.VILLAGE_PROCESSING: Role.VILLAGE_STAFF,
}


def is_terminal(status):
    return status in TERMINAL_STATUSES


def allowed_targets(status, role):
    return TRANSITIONS.get((status, role), frozenset())


def check_transition(application, role, target_status):
    """
    Raises InvalidTransition unless `role` may move `application`
    from its current status to `target_status`.
    """
    current = application.status

    if target_status not in Status.values:
        raise InvalidTransition(f"Unknown status '{target_status}'", application_id=application.pk)

    if is_terminal(current):
        raise InvalidTransition(
            f"Application is already {current}; no further transitions",
            application_id=application.pk, current_status=current,
        )

    if target_status not in allowed_targets(current, role):
        raise InvalidTransition(
            f"Role '{role}' cannot move application from {current} to {target_status}",
            application_id=application.pk, current_status=current,
        )

    stamped_at = STAGE_FIELDS[role][2]
    if getattr(application, stamped_at) is not None and STAGE_IN_PROGRESS.get(current) != role:
        raise InvalidTransition(
            f"The {role} stage of this application is already closed",
            application_id=application.pk, current_status=current,
        )


def stamp_stage(application, role, user, notes, now):
    """
    Records the acting authority's decision. Returns the names of the
    fields that were set (empty if the stage was already recorded).
    """
    user_field, notes_field, at_field = STAGE_FIELDS[role]
    if getattr(application, at_field) is not None:
        return []

    setattr(application, user_field, user)
    setattr(application, notes_field, _clean_notes(notes))
    setattr(application, at_field, now)
    return [user_field, notes_field, at_field]


def _clean_notes(notes):
    if notes is None:
        return None
    notes = str(notes).strip()
    return notes or None


def _lock_application(application_id):
    try:
        application = Application.objects.select_for_update().filter(pk=application_id).first()
    except (TypeError, ValueError):
        application = None
    if application is None:
        raise NotFound(f"Application {application_id} not found", application_id=application_id)
    return application


def _finalize(application, by_user=None):
    template = get_service_template(application.service_template_id)
    if template is None:
        raise NotFound(
            f"Service template {application.service_template_id} not found",
            service_template_id=application.service_template_id,
        )

    had_number = bool(application.document_number)
    document_number, _url = ensure_document_number(application, template)
    if not had_number:
        log_application_action(
            application, ApplicationLog.Action.DOCUMENT_GENERATED,
            by_user=by_user, to_status=application.status,
            remarks=f"Document number {document_number}",
        )


def transition(application_id, target_status, acting_user_id, notes=None):
    """
    Moves an application to `target_status` on behalf of `acting_user_id`.
    Completing an application also assigns its document number, in the same
    transaction. Returns the updated Application.
    """
    with storage_errors(), transaction.atomic():
        application = _lock_application(application_id)

        actor = get_user(acting_user_id)
        if actor is None:
            raise NotFound(f"User {acting_user_id} not found", user_id=acting_user_id)

        try:
            check_transition(application, actor.role, target_status)
        except InvalidTransition as e:
            logger.warning("Rejected transition on application %s by user %s: %s",
                           application.pk, actor.pk, e.message)
            raise

        from_status = application.status
        stamped = stamp_stage(application, actor.role, actor, notes, timezone.now())

        application.status = target_status
        application.save(update_fields=['status', 'updated_at', *stamped])

        log_application_action(
            application, ApplicationLog.Action.STATUS_CHANGED,
            by_user=actor, from_status=from_status, to_status=target_status,
            remarks=_clean_notes(notes),
        )

        if target_status == Status.COMPLETED:
            _finalize(application, by_user=actor)

    logger.info("Application %s moved from %s to %s by user %s",
                application.pk, from_status, target_status, actor.pk)
    return application


def generate_document(application_id):
    """
    Ensures a completed application has its document number and reference.
    Safe to call repeatedly; an existing number is never changed.
    """
    with storage_errors(), transaction.atomic():
        application = _lock_application(application_id)

        if application.status != Status.COMPLETED:
            raise InvalidTransition(
                f"Cannot generate document for application with status: {application.status}",
                application_id=application.pk, current_status=application.status,
            )

        _finalize(application)

    return application
