"""
Dashboard 统计。

每个 dashboard 跑 3~4 个独立的计数查询，拼成一个平铺的计数记录。
全有或全无：任何一个查询失败，整个 dashboard 返回全 0（@fail_soft 的默认值），
不返回「一半真实、一半为 0」的结果。

「最近」窗口（默认 7 天）每次调用用注入的时钟现算，不缓存。
"""

from datetime import timedelta

from django.conf import settings

from ..exceptions import ValidationError
from ..records import mappers
from ..records.types import (
    ACTIVE_PRESCRIPTION_STATUSES,
    DoctorDashboard,
    LabStatus,
    PatientDashboard,
    ResponsibleDashboard,
    Role,
)
from ..store.types import Query
from .base import (
    APPOINTMENTS,
    LAB_RESULTS,
    LAB_TEST_REQUESTS,
    PATIENTS,
    PRESCRIPTIONS,
    BaseDataService,
    fail_soft,
)
from .patient import PatientService
from .responsible import ResponsibleService


class DashboardService(BaseDataService):

    @property
    def recent_window(self) -> timedelta:
        return timedelta(days=getattr(settings, "RECENT_PRESCRIPTION_DAYS", 7))

    def stats(self, role: Role | str, owner_id: str | None = None):
        """按角色分发。护士没有 dashboard。"""
        try:
            role = Role(role)
        except ValueError:
            role = Role.UNKNOWN
        if role is Role.DOCTOR:
            return self.doctor_dashboard(owner_id)
        if role is Role.PATIENT:
            return self.patient_dashboard(owner_id)
        if role is Role.RESPONSIBLE:
            return self.responsible_dashboard(owner_id)
        raise ValidationError(
            message=f"No dashboard for role {role.value!r}.",
            code="NO_DASHBOARD_FOR_ROLE",
            detail={"role": role.value},
        )

    @fail_soft(DoctorDashboard.zero)
    def doctor_dashboard(self, doctor_id: str | None = None) -> DoctorDashboard:
        doctor_id = self._resolve_owner(doctor_id)
        if not doctor_id:
            return DoctorDashboard.zero()

        since = self.clock() - self.recent_window
        return DoctorDashboard(
            active_patients=self._count(
                Query(PATIENTS).where("assignedDoctorId", "==", doctor_id)
            ),
            pending_lab_tests=self._count(
                Query(LAB_TEST_REQUESTS)
                .where("doctorId", "==", doctor_id)
                .where("status", "==", LabStatus.PENDING.value)
            ),
            recent_prescriptions=self._count(
                Query(PRESCRIPTIONS)
                .where("doctorId", "==", doctor_id)
                .where("createdAt", ">=", since)
            ),
        )

    @fail_soft(PatientDashboard.zero)
    def patient_dashboard(self, patient_id: str | None = None) -> PatientDashboard:
        patient_id = self._sibling(PatientService).resolve_patient_id(patient_id)
        if not patient_id:
            return PatientDashboard.zero()

        now = self.clock()
        lab_results = self._fetch(Query(LAB_RESULTS).where("patientId", "==", patient_id), mappers.decode_lab_result)
        return PatientDashboard(
            upcoming_appointments=self._count(
                Query(APPOINTMENTS)
                .where("patientId", "==", patient_id)
                .where("appointmentDate", ">=", now)
            ),
            active_medications=self._count(
                Query(PRESCRIPTIONS)
                .where("patientId", "==", patient_id)
                .where("status", "in", list(ACTIVE_PRESCRIPTION_STATUSES))
            ),
            pending_lab_results=sum(1 for result in lab_results if not result.is_completed),
        )

    @fail_soft(ResponsibleDashboard.zero)
    def responsible_dashboard(self, responsible_id: str | None = None) -> ResponsibleDashboard:
        patients = self._sibling(ResponsibleService).patients_in_care(responsible_id)
        if not patients:
            return ResponsibleDashboard.zero()

        now = self.clock()
        patient_ids = [patient.id for patient in patients]
        lab_results = self._fetch_in(Query(LAB_RESULTS), "patientId", patient_ids, mappers.decode_lab_result)
        return ResponsibleDashboard(
            total_patients=len(patients),
            upcoming_appointments=self._count_in(
                Query(APPOINTMENTS).where("appointmentDate", ">=", now), "patientId", patient_ids,
            ),
            active_medications=self._count_in(
                Query(PRESCRIPTIONS).where("status", "in", list(ACTIVE_PRESCRIPTION_STATUSES)),
                "patientId", patient_ids,
            ),
            pending_lab_results=sum(1 for result in lab_results if not result.is_completed),
        )
