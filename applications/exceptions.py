"""
Typed errors raised by the application workflow.

Validation errors (NotFound, InvalidTransition, InvalidApplication) are
deterministic and never retried. Transient errors (NumberingConflict,
StorageFailure) may be retried because nothing is committed when they occur.
"""
from contextlib import contextmanager

from django.db import DatabaseError, IntegrityError


class WorkflowError(Exception):
    http_status = 400

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def as_dict(self):
        return {'error': self.__class__.__name__, 'message': self.message, **self.context}


class NotFound(WorkflowError):
    http_status = 404


class InvalidTransition(WorkflowError):
    http_status = 409


class InvalidApplication(WorkflowError):
    http_status = 400


class TransientWorkflowError(WorkflowError):
    http_status = 503


class NumberingConflict(TransientWorkflowError):
    pass


class StorageFailure(TransientWorkflowError):
    pass


@contextmanager
def storage_errors():
    """
    Re-raises database errors as transient workflow errors.
    IntegrityError here can only come from the numbering constraints.
    """
    try:
        yield
    except IntegrityError as e:
        raise NumberingConflict(f"Document numbering conflict: {e}") from e
    except DatabaseError as e:
        raise StorageFailure(f"Storage unavailable: {e}") from e
