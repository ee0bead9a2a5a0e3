from django.contrib.auth.mixins import LoginRequiredMixin
from django.http import JsonResponse
from django.views import View

from .exceptions import WorkflowError
from .services import (
    update_application_status, generate_application_document, get_applications_for_user
)
from .utils import serialize_application


def error_response(error):
    return JsonResponse(error.as_dict(), status=error.http_status)


class ApplicationListView(LoginRequiredMixin, View):
    def get(self, request):
        applications = get_applications_for_user(request.user)

        status = request.GET.get('status')
        if status:
            applications = applications.filter(status=status)

        return JsonResponse({
            'applications': [serialize_application(a) for a in applications]
        })


class ApplicationDetailView(LoginRequiredMixin, View):
    def get(self, request, application_id):
        # Same visibility rules as the list
        application = get_applications_for_user(request.user).filter(pk=application_id).first()
        if application is None:
            return JsonResponse({'error': 'NotFound', 'message': 'Application not found'}, status=404)

        return JsonResponse(serialize_application(application))


class ApplicationStatusUpdateView(LoginRequiredMixin, View):
    def post(self, request, application_id):
        target_status = request.POST.get('status', '')
        notes = request.POST.get('notes')

        try:
            application = update_application_status(application_id, target_status, request.user.id, notes=notes)
        except WorkflowError as e:
            return error_response(e)

        return JsonResponse(serialize_application(application))


class GenerateDocumentView(LoginRequiredMixin, View):
    def post(self, request, application_id):
        try:
            application = generate_application_document(application_id)
        except WorkflowError as e:
            return error_response(e)

        return JsonResponse(serialize_application(application))
