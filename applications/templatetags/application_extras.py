from django import template

from applications.utils import get_status_label, get_status_color, get_status_progress

register = template.Library()


@register.filter
def status_label(value):
    """
    Usage: {{ application.status|status_label }} -> 'Disetujui RT/RW'
    """
    return get_status_label(value)


@register.filter
def status_color(value):
    return get_status_color(value)


@register.filter
def status_progress(value):
    return get_status_progress(value)


@register.filter
def document_sequence(value):
    """
    Extracts the sequence from a document number.
    Example: '004/SKD/2024' -> '004'
    """
    if not value or '/' not in value:
        return value
    return value.split('/')[0]
