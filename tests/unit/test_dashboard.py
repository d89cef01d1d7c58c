"""
Unit tests for DashboardService.

1. 医生 dashboard：4 个患者 / 1 个待处理检验 / 7 天内 2 个处方
2. 全有或全无：任何一个计数失败 → 全 0，并记录到错误通道
3. 患者 / 负责人 dashboard 的计数口径
4. stats() 按角色分发；护士没有 dashboard
"""
import pytest
from datetime import timedelta
from unittest.mock import patch

from cancare.exceptions import ValidationError
from cancare.records.types import DoctorDashboard, PatientDashboard, ResponsibleDashboard, Role
from cancare.services.base import (
    APPOINTMENTS,
    LAB_RESULTS,
    LAB_TEST_REQUESTS,
    PATIENTS,
    PRESCRIPTIONS,
)
from cancare.store import StoreError
from tests.conftest import (
    NOW,
    AppointmentDocFactory,
    LabRequestDocFactory,
    LabResultDocFactory,
    PatientDocFactory,
    PrescriptionDocFactory,
    days_ago,
    seed,
)


@pytest.fixture
def doctor_data(store):
    for i in range(4):
        seed(store, PATIENTS, PatientDocFactory, doc_id=f'p{i}', assignedDoctorId='D')
    seed(store, PATIENTS, PatientDocFactory, doc_id='other', assignedDoctorId='E')
    seed(store, LAB_TEST_REQUESTS, LabRequestDocFactory, doctorId='D', status='pending')
    seed(store, LAB_TEST_REQUESTS, LabRequestDocFactory, doctorId='D', status='completed')
    seed(store, PRESCRIPTIONS, PrescriptionDocFactory, doctorId='D', createdAt=days_ago(2))
    seed(store, PRESCRIPTIONS, PrescriptionDocFactory, doctorId='D', createdAt=days_ago(2))
    seed(store, PRESCRIPTIONS, PrescriptionDocFactory, doctorId='D', createdAt=days_ago(10))
    return store


class TestDoctorDashboard:

    def test_counts(self, doctor_data, make_service):
        dashboard = make_service('D').dashboards.stats(Role.DOCTOR)
        assert dashboard == DoctorDashboard(active_patients=4, pending_lab_tests=1, recent_prescriptions=2)

    def test_recent_window_from_settings(self, doctor_data, make_service, settings):
        settings.RECENT_PRESCRIPTION_DAYS = 30
        assert make_service('D').dashboards.doctor_dashboard().recent_prescriptions == 3

    def test_one_failing_count_zeroes_everything(self, doctor_data, make_service):
        service = make_service('D')
        real_count = doctor_data.count
        calls = []

        def flaky_count(query):
            calls.append(query.collection)
            if query.collection == PRESCRIPTIONS:
                raise StoreError('deadline exceeded')
            return real_count(query)

        with patch.object(doctor_data, 'count', side_effect=flaky_count):
            dashboard = service.dashboards.doctor_dashboard()

        assert dashboard == DoctorDashboard.zero()
        assert PATIENTS in calls  # 前面的计数确实成功过
        assert service.degraded
        assert [e.operation for e in service.errors] == ['DashboardService.doctor_dashboard']

    def test_no_identity_returns_zero(self, doctor_data, make_service):
        service = make_service(None)
        assert service.dashboards.doctor_dashboard() == DoctorDashboard.zero()
        assert not service.degraded


class TestPatientDashboard:

    @pytest.fixture
    def patient_data(self, store):
        store.set(PATIENTS, 'pat-1', {'uid': 'user-1', 'name': 'Alice'})
        seed(store, APPOINTMENTS, AppointmentDocFactory, appointmentDate=NOW + timedelta(days=2))
        seed(store, APPOINTMENTS, AppointmentDocFactory, appointmentDate=NOW - timedelta(days=2))
        seed(store, PRESCRIPTIONS, PrescriptionDocFactory, status='pending')
        seed(store, PRESCRIPTIONS, PrescriptionDocFactory, status='active')
        seed(store, PRESCRIPTIONS, PrescriptionDocFactory, status='completed')
        seed(store, LAB_RESULTS, LabResultDocFactory)
        seed(store, LAB_RESULTS, LabResultDocFactory, doctorNotes='Reviewed')
        return store

    def test_counts_for_current_patient(self, patient_data, make_service):
        dashboard = make_service('user-1').dashboards.stats('patient')
        assert dashboard == PatientDashboard(upcoming_appointments=1, active_medications=2, pending_lab_results=1)

    def test_no_patient_profile_returns_zero(self, patient_data, make_service):
        assert make_service('stranger').dashboards.patient_dashboard() == PatientDashboard.zero()


class TestResponsibleDashboard:

    def test_counts_across_patients(self, store, make_service):
        seed(store, PATIENTS, PatientDocFactory, doc_id='pat-1', name='Alice', responsiblePartyId='resp-1')
        seed(store, PATIENTS, PatientDocFactory, doc_id='pat-2', name='Bob', responsiblePartyId='resp-1')
        seed(store, APPOINTMENTS, AppointmentDocFactory, patientId='pat-1')
        seed(store, APPOINTMENTS, AppointmentDocFactory, patientId='pat-2')
        seed(store, APPOINTMENTS, AppointmentDocFactory, patientId='pat-3')
        seed(store, PRESCRIPTIONS, PrescriptionDocFactory, patientId='pat-2')
        seed(store, LAB_RESULTS, LabResultDocFactory, patientId='pat-1')

        dashboard = make_service('resp-1').dashboards.stats(Role.RESPONSIBLE)

        assert dashboard == ResponsibleDashboard(
            total_patients=2, upcoming_appointments=2, active_medications=1, pending_lab_results=1,
        )

    def test_nobody_in_care(self, make_service):
        assert make_service('resp-1').dashboards.responsible_dashboard() == ResponsibleDashboard.zero()


class TestStatsDispatch:

    @pytest.mark.parametrize('role', [Role.NURSE, 'admin', Role.UNKNOWN])
    def test_roles_without_dashboard(self, make_service, role):
        with pytest.raises(ValidationError) as exc_info:
            make_service('u1').dashboards.stats(role)
        assert exc_info.value.code == 'NO_DASHBOARD_FOR_ROLE'
