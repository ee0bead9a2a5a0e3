import logging

from django.utils import timezone

from .models import DocumentCounter
from .utils import get_service_type_code, format_document_number, build_document_url

logger = logging.getLogger(__name__)


def ensure_document_number(application, service_template):
    """
    Assigns a document number and document reference to the application,
    unless it already has one. Returns (document_number, generated_document_url).

    Must be called inside the transaction that holds the application row
    lock. The sequence comes from DocumentCounter for
    (service_type, current year), so two applications of the same type
    never receive the same number.
    """
    if application.document_number:
        if not application.generated_document_url:
            application.generated_document_url = build_document_url(application.pk, application.document_number)
            application.save(update_fields=['generated_document_url', 'updated_at'])
        return application.document_number, application.generated_document_url

    service_type = service_template.service_type
    year = timezone.localdate().year
    sequence = DocumentCounter.next_sequence(service_type, year)

    document_number = format_document_number(sequence, get_service_type_code(service_type), year)

    application.document_number = document_number
    application.generated_document_url = build_document_url(application.pk, document_number)
    application.save(update_fields=['document_number', 'generated_document_url', 'updated_at'])

    logger.info("Assigned document number %s to application %s", document_number, application.pk)
    return application.document_number, application.generated_document_url
