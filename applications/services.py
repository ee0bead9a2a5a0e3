import logging
import time

from django.conf import settings
from django.db import transaction
from django.db.models import Q

from accounts.models import User
from accounts.utils import get_user, get_users_in_area
from catalog.utils import get_service_template
from .exceptions import NotFound, InvalidApplication, TransientWorkflowError, storage_errors
from .models import Application, ApplicationLog

logger = logging.getLogger(__name__)


def log_application_action(application, action, by_user=None, from_status=None, to_status=None, remarks=None):
    """
    Creates an ApplicationLog entry. Runs inside the caller's transaction.
    """
    return ApplicationLog.objects.create(
        application=application,
        action=action,
        by_user=by_user,
        from_status=from_status,
        to_status=to_status,
        remarks=remarks
    )


def _run_with_retries(operation, *args, **kwargs):
    """
    Runs `operation`, retrying transient errors a bounded number of times.
    Validation errors are raised immediately.
    """
    attempts = max(1, getattr(settings, 'WORKFLOW_MAX_RETRIES', 3))
    name = getattr(operation, '__name__', repr(operation))
    for attempt in range(1, attempts + 1):
        try:
            return operation(*args, **kwargs)
        except TransientWorkflowError as e:
            if attempt == attempts:
                logger.error("%s failed after %d attempts: %s", name, attempts, e.message)
                raise
            logger.warning("%s attempt %d/%d failed (%s), retrying",
                           name, attempt, attempts, e.message)
            time.sleep(0.05 * attempt)


def update_application_status(application_id, target_status, acting_user_id, notes=None):
    """
    Moves an application through the approval workflow.
    See applications.workflow for the transition rules.
    """
    from .workflow import transition
    return _run_with_retries(transition, application_id, target_status, acting_user_id, notes=notes)


def generate_application_document(application_id):
    """
    Returns the completed application with its document number assigned.
    Calling it again returns the same number.
    """
    from .workflow import generate_document
    return _run_with_retries(generate_document, application_id)


def create_application(citizen_id, service_template_id, form_data=None, submitted_documents=None):
    citizen = get_user(citizen_id)
    if citizen is None:
        raise NotFound(f"Citizen with ID {citizen_id} not found", user_id=citizen_id)

    template = get_service_template(service_template_id)
    if template is None:
        raise NotFound(f"Service template with ID {service_template_id} not found",
                       service_template_id=service_template_id)
    if not template.is_active:
        raise InvalidApplication(f"Service template with ID {service_template_id} is not active",
                                 service_template_id=service_template_id)

    with storage_errors(), transaction.atomic():
        application = Application.objects.create(
            citizen=citizen,
            service_template=template,
            form_data=form_data or {},
            submitted_documents=list(submitted_documents or []),
            status=Application.Status.SUBMITTED
        )
        log_application_action(application, ApplicationLog.Action.CREATED, by_user=citizen,
                               to_status=application.status, remarks=f"Applied for {template.name}")

    logger.info("Application %s created by user %s for template %s", application.pk, citizen.pk, template.pk)
    return application


def get_applications_for_user(user):
    """
    Applications visible to the given user, by role:
    citizens see their own, RT/RW heads see pending ones from their area
    (plus the ones they reviewed), village staff see RT/RW approved ones,
    the village head sees those awaiting final review.
    """
    Status = Application.Status
    qs = Application.objects.select_related('service_template')

    if user.role == User.Role.CITIZEN:
        return qs.filter(citizen=user)

    if user.role == User.Role.RT_RW_HEAD:
        area = get_users_in_area(rt=user.rt, rw=user.rw)
        return qs.filter(citizen__in=area).filter(
            Q(status__in=[Status.SUBMITTED, Status.RT_RW_REVIEW]) | Q(rt_rw_reviewer=user)
        )

    if user.role == User.Role.VILLAGE_STAFF:
        return qs.filter(status__in=[Status.RT_RW_APPROVED, Status.VILLAGE_PROCESSING])

    if user.role == User.Role.VILLAGE_HEAD:
        return qs.filter(status=Status.VILLAGE_HEAD_REVIEW)

    return qs.none()
