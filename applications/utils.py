"""
Formatting helpers for applications. Pure functions, no database access.
"""
from django.conf import settings

SERVICE_TYPE_CODES = {
    'domicile_letter': 'SKD',
    'business_letter': 'SKU',
    'poor_certificate': 'SKTM',
    'birth_certificate': 'SAL',
    'other': 'LAIN',
}

DEFAULT_SERVICE_TYPE_CODE = 'LAIN'

# status -> (label, css classes, progress percent)
STATUS_DISPLAY = {
    'submitted': ('Diajukan', 'bg-blue-50 text-blue-700 border-blue-200', 10),
    'rt_rw_review': ('Review RT/RW', 'bg-yellow-50 text-yellow-700 border-yellow-200', 25),
    'rt_rw_approved': ('Disetujui RT/RW', 'bg-green-50 text-green-700 border-green-200', 40),
    'rt_rw_rejected': ('Ditolak RT/RW', 'bg-red-50 text-red-700 border-red-200', 25),
    'village_processing': ('Diproses Kelurahan', 'bg-purple-50 text-purple-700 border-purple-200', 60),
    'village_head_review': ('Review Kades', 'bg-orange-50 text-orange-700 border-orange-200', 80),
    'completed': ('Selesai', 'bg-green-50 text-green-700 border-green-200', 100),
    'rejected': ('Ditolak', 'bg-red-50 text-red-700 border-red-200', 0),
}


def get_service_type_code(service_type):
    """
    Short letter code used in document numbers.
    Example: 'domicile_letter' -> 'SKD'. Unknown types map to 'LAIN'.
    """
    return SERVICE_TYPE_CODES.get(service_type, DEFAULT_SERVICE_TYPE_CODE)


def _status_display(status):
    return STATUS_DISPLAY.get(status, STATUS_DISPLAY['submitted'])


def get_status_label(status):
    return _status_display(status)[0]


def get_status_color(status):
    return _status_display(status)[1]


def get_status_progress(status):
    return _status_display(status)[2]


def format_document_number(sequence, code, year):
    """
    Example: (4, 'SKD', 2024) -> '004/SKD/2024'
    """
    return f"{sequence:03d}/{code}/{year}"


def build_document_url(application_id, document_number, base_url=None):
    """
    Reference to the generated letter. Slashes in the number are not
    path separators, so they are replaced.
    """
    base = (base_url or settings.DOCUMENT_BASE_URL).rstrip('/')
    safe_number = document_number.replace('/', '-')
    return f"{base}/{application_id}/{safe_number}.pdf"


def _iso(value):
    return value.isoformat() if value else None


def serialize_application(application):
    """
    Plain dict representation used by the JSON views.
    """
    return {
        'id': application.id,
        'citizen_id': application.citizen_id,
        'service_template_id': application.service_template_id,
        'status': application.status,
        'status_label': get_status_label(application.status),
        'form_data': application.form_data,
        'submitted_documents': application.submitted_documents,
        'rt_rw_reviewer_id': application.rt_rw_reviewer_id,
        'rt_rw_review_notes': application.rt_rw_review_notes,
        'rt_rw_reviewed_at': _iso(application.rt_rw_reviewed_at),
        'village_staff_id': application.village_staff_id,
        'village_processing_notes': application.village_processing_notes,
        'village_processed_at': _iso(application.village_processed_at),
        'village_head_id': application.village_head_id,
        'village_head_notes': application.village_head_notes,
        'village_head_reviewed_at': _iso(application.village_head_reviewed_at),
        'document_number': application.document_number,
        'generated_document_url': application.generated_document_url,
        'created_at': _iso(application.created_at),
        'updated_at': _iso(application.updated_at),
    }
