from django.urls import path
from . import views

app_name = 'applications'

urlpatterns = [
    path('', views.ApplicationListView.as_view(), name='application_list'),
    path('<int:application_id>/', views.ApplicationDetailView.as_view(), name='application_detail'),
    path('<int:application_id>/status/', views.ApplicationStatusUpdateView.as_view(), name='update_status'),
    path('<int:application_id>/document/', views.GenerateDocumentView.as_view(), name='generate_document'),
]
