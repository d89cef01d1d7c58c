from django.apps import apps
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .identity import RequestIdentity
from .search import search_list
from .serializers import (
    GroupMessageInput,
    LabNotesInput,
    LabTestRequestInput,
    OverrideDecisionInput,
    OverrideRequestInput,
    serialize_appointment,
    serialize_dashboard,
    serialize_group_chat,
    serialize_group_message,
    serialize_lab_request,
    serialize_lab_result,
    serialize_lab_result_summary,
    serialize_patient,
    serialize_pending_override,
    serialize_prescription,
)
from .services import CareDataService


def get_store():
    return apps.get_app_config('cancare').store


class CareAPIView(APIView):
    """
    每个请求新建一个 CareDataService：store 来自 app config，身份来自请求。

    列表接口统一返回 {"results", "count", "degraded"}；
    degraded 为 True 表示有读操作失败，空列表不一定是真的空。
    """

    search_fields = ()

    def get_service(self, request):
        return CareDataService(get_store(), RequestIdentity(request))

    def list_response(self, request, service, items, serializer):
        data = [serializer(item) for item in items]
        data = search_list(request.query_params.get('q', ''), data, self.search_fields)
        return Response({
            'results': data,
            'count': len(data),
            'degraded': service.degraded,
        })

    def dashboard_response(self, service, dashboard):
        return Response({**serialize_dashboard(dashboard), 'degraded': service.degraded})


# ── Doctor ─────────────────────────────────────────────────────────────────

class DoctorDashboardView(CareAPIView):
    """GET /api/doctor/dashboard/"""

    def get(self, request):
        service = self.get_service(request)
        return self.dashboard_response(service, service.dashboards.doctor_dashboard())


class DoctorPatientListView(CareAPIView):
    """GET /api/doctor/patients/?q="""

    search_fields = ('name', 'diagnosis')

    def get(self, request):
        service = self.get_service(request)
        return self.list_response(request, service, service.doctors.list_patients(), serialize_patient)


class LabTestRequestView(CareAPIView):
    """
    GET  /api/doctor/lab-requests/  - 待处理的检验申请
    POST /api/doctor/lab-requests/  - 新建检验申请
    """

    search_fields = ('patient_name', 'test_type', 'test')

    def get(self, request):
        service = self.get_service(request)
        return self.list_response(
            request, service, service.doctors.list_pending_lab_requests(), serialize_lab_request,
        )

    def post(self, request):
        body = LabTestRequestInput(data=request.data)
        body.is_valid(raise_exception=True)
        request_id = self.get_service(request).doctors.create_lab_test_request(**body.validated_data)
        return Response({'id': request_id, 'status': 'pending'}, status=status.HTTP_201_CREATED)


class DoctorLabResultListView(CareAPIView):
    """GET /api/doctor/lab-results/?q="""

    search_fields = ('test_name', 'patient_name', 'status')

    def get(self, request):
        service = self.get_service(request)
        return self.list_response(
            request, service, service.doctors.list_lab_results(), serialize_lab_result_summary,
        )


class LabResultNotesView(CareAPIView):
    """POST /api/doctor/lab-results/<result_id>/notes/"""

    def post(self, request, result_id):
        body = LabNotesInput(data=request.data)
        body.is_valid(raise_exception=True)
        self.get_service(request).doctors.add_notes_to_lab_result(result_id, body.validated_data['notes'])
        return Response({'id': result_id, 'status': 'completed'})


class OverrideRequestListView(CareAPIView):
    """GET /api/doctor/override-requests/?q="""

    search_fields = ('nurse_name', 'medication_name', 'reason')

    def get(self, request):
        service = self.get_service(request)
        return self.list_response(
            request, service, service.doctors.list_pending_override_requests(), serialize_pending_override,
        )


class OverrideDecisionView(CareAPIView):
    """
    POST /api/override-requests/<request_id>/approve/
    POST /api/override-requests/<request_id>/reject/

    body 可带 expected_status，状态不符时 409。
    """

    decision = None

    def post(self, request, request_id):
        body = OverrideDecisionInput(data=request.data)
        body.is_valid(raise_exception=True)
        doctors = self.get_service(request).doctors
        if self.decision == 'approved':
            transition = doctors.approve_override_request
        else:
            transition = doctors.reject_override_request
        transition(request_id, expected_status=body.validated_data.get('expected_status'))
        return Response({'id': request_id, 'status': self.decision})


# ── Nurse ──────────────────────────────────────────────────────────────────

class NursePatientListView(CareAPIView):
    """GET /api/nurse/patients/?q="""

    search_fields = ('name', 'diagnosis')

    def get(self, request):
        service = self.get_service(request)
        return self.list_response(request, service, service.nurses.list_patients(), serialize_patient)


class NurseAppointmentListView(CareAPIView):
    """GET /api/nurse/appointments/?q="""

    search_fields = ('patient_name', 'doctor_name', 'status')

    def get(self, request):
        service = self.get_service(request)
        return self.list_response(
            request, service, service.nurses.list_appointments(), serialize_appointment,
        )


class NurseOverrideRequestView(CareAPIView):
    """POST /api/nurse/override-requests/"""

    def post(self, request):
        body = OverrideRequestInput(data=request.data)
        body.is_valid(raise_exception=True)
        request_id = self.get_service(request).nurses.create_override_request(**body.validated_data)
        return Response({'id': request_id, 'status': 'pending'}, status=status.HTTP_201_CREATED)


# ── Patient ────────────────────────────────────────────────────────────────

class PatientDashboardView(CareAPIView):
    """GET /api/patient/dashboard/"""

    def get(self, request):
        service = self.get_service(request)
        return self.dashboard_response(service, service.dashboards.patient_dashboard())


class PatientPrescriptionListView(CareAPIView):
    """GET /api/patient/prescriptions/?q=  （只返回 pending / active）"""

    search_fields = ('medication_name', 'dosage', 'frequency')

    def get(self, request):
        service = self.get_service(request)
        return self.list_response(
            request, service, service.patients.list_active_prescriptions(), serialize_prescription,
        )


class PatientLabResultListView(CareAPIView):
    """GET /api/patient/lab-results/?q="""

    search_fields = ('test_name', 'status')

    def get(self, request):
        service = self.get_service(request)
        return self.list_response(
            request, service, service.patients.list_lab_results(), serialize_lab_result,
        )


# ── Responsible party ──────────────────────────────────────────────────────

class ResponsibleDashboardView(CareAPIView):
    """GET /api/responsible/dashboard/"""

    def get(self, request):
        service = self.get_service(request)
        return self.dashboard_response(service, service.dashboards.responsible_dashboard())


class ResponsiblePatientListView(CareAPIView):
    """GET /api/responsible/patients/?q="""

    search_fields = ('name', 'diagnosis')

    def get(self, request):
        service = self.get_service(request)
        return self.list_response(
            request, service, service.responsible.list_patients(), serialize_patient,
        )


# ── Group chats ────────────────────────────────────────────────────────────

class GroupChatListView(CareAPIView):
    """GET /api/group-chats/?q="""

    search_fields = ('name', 'description')

    def get(self, request):
        service = self.get_service(request)
        return self.list_response(
            request, service, service.social.list_group_chats(), serialize_group_chat,
        )


class GroupMessageView(CareAPIView):
    """
    GET  /api/group-chats/<group_id>/messages/  - 最早的在前
    POST /api/group-chats/<group_id>/messages/  - 发消息
    """

    search_fields = ('message', 'sender_name')

    def get(self, request, group_id):
        service = self.get_service(request)
        return self.list_response(
            request, service, service.social.list_group_messages(group_id), serialize_group_message,
        )

    def post(self, request, group_id):
        body = GroupMessageInput(data=request.data)
        body.is_valid(raise_exception=True)
        message_id = self.get_service(request).social.send_group_message(group_id, **body.validated_data)
        return Response({'id': message_id, 'group_id': group_id}, status=status.HTTP_201_CREATED)


class GroupJoinView(CareAPIView):
    """POST /api/group-chats/<group_id>/join/"""

    def post(self, request, group_id):
        self.get_service(request).social.join_group_chat(group_id)
        return Response({'group_id': group_id, 'joined': True})
