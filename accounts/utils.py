from .models import User


def get_user(user_id):
    """
    Returns the User with the given id, or None if no such user exists
    (including ids that are not valid primary keys).
    """
    if user_id is None:
        return None
    try:
        return User.objects.filter(pk=user_id).first()
    except (TypeError, ValueError):
        return None


def get_users_in_area(rt=None, rw=None):
    """
    Citizens living in the given RT and/or RW. Empty area matches nobody.
    """
    if not rt and not rw:
        return User.objects.none()

    qs = User.objects.filter(role=User.Role.CITIZEN)
    if rt:
        qs = qs.filter(rt=rt)
    if rw:
        qs = qs.filter(rw=rw)
    return qs
