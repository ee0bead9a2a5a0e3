from .models import ServiceTemplate


def get_service_template(template_id):
    """
    Returns the ServiceTemplate with the given id, or None.
    Inactive templates are returned too; callers decide what is allowed.
    """
    if template_id is None:
        return None
    try:
        return ServiceTemplate.objects.filter(pk=template_id).first()
    except (TypeError, ValueError):
        return None
