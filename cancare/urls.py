from django.urls import path

from .views import (
    DoctorDashboardView,
    DoctorLabResultListView,
    DoctorPatientListView,
    GroupChatListView,
    GroupJoinView,
    GroupMessageView,
    LabResultNotesView,
    LabTestRequestView,
    NurseAppointmentListView,
    NurseOverrideRequestView,
    NursePatientListView,
    OverrideDecisionView,
    OverrideRequestListView,
    PatientDashboardView,
    PatientLabResultListView,
    PatientPrescriptionListView,
    ResponsibleDashboardView,
    ResponsiblePatientListView,
)

urlpatterns = [
    path('doctor/dashboard/', DoctorDashboardView.as_view(), name='doctor-dashboard'),
    path('doctor/patients/', DoctorPatientListView.as_view(), name='doctor-patients'),
    path('doctor/lab-requests/', LabTestRequestView.as_view(), name='doctor-lab-requests'),
    path('doctor/lab-results/', DoctorLabResultListView.as_view(), name='doctor-lab-results'),
    path('doctor/lab-results/<str:result_id>/notes/', LabResultNotesView.as_view(), name='lab-result-notes'),
    path('doctor/override-requests/', OverrideRequestListView.as_view(), name='doctor-override-requests'),
    path('override-requests/<str:request_id>/approve/',
         OverrideDecisionView.as_view(decision='approved'), name='override-approve'),
    path('override-requests/<str:request_id>/reject/',
         OverrideDecisionView.as_view(decision='rejected'), name='override-reject'),

    path('nurse/patients/', NursePatientListView.as_view(), name='nurse-patients'),
    path('nurse/appointments/', NurseAppointmentListView.as_view(), name='nurse-appointments'),
    path('nurse/override-requests/', NurseOverrideRequestView.as_view(), name='nurse-override-requests'),

    path('patient/dashboard/', PatientDashboardView.as_view(), name='patient-dashboard'),
    path('patient/prescriptions/', PatientPrescriptionListView.as_view(), name='patient-prescriptions'),
    path('patient/lab-results/', PatientLabResultListView.as_view(), name='patient-lab-results'),

    path('responsible/dashboard/', ResponsibleDashboardView.as_view(), name='responsible-dashboard'),
    path('responsible/patients/', ResponsiblePatientListView.as_view(), name='responsible-patients'),

    path('group-chats/', GroupChatListView.as_view(), name='group-chats'),
    path('group-chats/<str:group_id>/messages/', GroupMessageView.as_view(), name='group-messages'),
    path('group-chats/<str:group_id>/join/', GroupJoinView.as_view(), name='group-join'),
]
