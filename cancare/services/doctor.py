"""
Doctor-scoped reads and writes.

所有 list_xxx(doctor_id=None)：doctor_id 不传时取当前身份，都没有返回 []。
"""

import logging

from ..records import mappers
from ..records.types import (
    DoctorProfile,
    LabResult,
    LabResultSummary,
    LabStatus,
    LabTestRequest,
    MedicalRecord,
    Medication,
    OverrideStatus,
    Patient,
    PendingOverride,
)
from ..store.types import SERVER_TIMESTAMP, Query
from .base import (
    DOCTORS,
    LAB_RESULTS,
    LAB_TEST_REQUESTS,
    MEDICAL_RECORDS,
    MEDICATION_ORDERS,
    MEDICATIONS,
    NURSES,
    OVERRIDE_REQUESTS,
    PATIENTS,
    BaseDataService,
    fail_soft,
)

logger = logging.getLogger(__name__)

MEDICATION_CATALOG_LIMIT = 100


class DoctorService(BaseDataService):

    # ── Reads ──────────────────────────────────────────────────────────────

    @fail_soft()
    def get_profile(self, doctor_id: str | None = None) -> DoctorProfile | None:
        doctor_id = self._resolve_owner(doctor_id)
        if not doctor_id:
            return None
        return self._lookup_profile(DOCTORS, doctor_id, mappers.decode_doctor)

    @fail_soft(list)
    def list_patients(self, doctor_id: str | None = None) -> list[Patient]:
        doctor_id = self._resolve_owner(doctor_id)
        if not doctor_id:
            return []
        query = Query(PATIENTS).where("assignedDoctorId", "==", doctor_id)
        return self._fetch(query, mappers.decode_patient)

    @fail_soft(list)
    def list_pending_lab_requests(self, doctor_id: str | None = None) -> list[LabTestRequest]:
        doctor_id = self._resolve_owner(doctor_id)
        if not doctor_id:
            return []
        query = (
            Query(LAB_TEST_REQUESTS)
            .where("doctorId", "==", doctor_id)
            .where("status", "==", LabStatus.PENDING.value)
            .ordered("createdAt", descending=True)
        )
        return self._fetch_ordered(query, mappers.decode_lab_request)

    @fail_soft(list)
    def list_lab_results(self, doctor_id: str | None = None) -> list[LabResultSummary]:
        """检验结果，最新在前；每条附带患者姓名（查不到为 "Unknown"）。"""
        doctor_id = self._resolve_owner(doctor_id)
        if not doctor_id:
            return []
        query = Query(LAB_RESULTS).where("doctorId", "==", doctor_id).ordered("createdAt", descending=True)
        results: list[LabResult] = self._fetch_ordered(query, mappers.decode_lab_result)
        return self._resolve_each(
            results,
            lambda result: LabResultSummary(
                result=result,
                patient_name=self._display_name(PATIENTS, result.patient_id),
            ),
        )

    @fail_soft(list)
    def list_medical_records(self, doctor_id: str | None = None) -> list[MedicalRecord]:
        doctor_id = self._resolve_owner(doctor_id)
        if not doctor_id:
            return []
        query = Query(MEDICAL_RECORDS).where("doctorId", "==", doctor_id).ordered("createdAt", descending=True)
        return self._fetch_ordered(query, mappers.decode_medical_record)

    @fail_soft(list)
    def list_medications(self) -> list[Medication]:
        """药品目录（不按医生过滤），最多 MEDICATION_CATALOG_LIMIT 条。"""
        query = Query(MEDICATIONS).limited(MEDICATION_CATALOG_LIMIT)
        return self._fetch(query, mappers.decode_medication)

    @fail_soft(list)
    def list_pending_override_requests(self, doctor_id: str | None = None) -> list[PendingOverride]:
        doctor_id = self._resolve_owner(doctor_id)
        if not doctor_id:
            return []
        query = (
            Query(OVERRIDE_REQUESTS)
            .where("doctorId", "==", doctor_id)
            .where("status", "==", OverrideStatus.PENDING.value)
            .ordered("createdAt", descending=True)
        )
        requests = self._fetch_ordered(query, mappers.decode_override_request)
        return self._resolve_each(
            requests,
            lambda request: PendingOverride(
                request=request,
                nurse_name=self._display_name(NURSES, request.nurse_id),
            ),
        )

    # ── Writes ─────────────────────────────────────────────────────────────

    def create_lab_test_request(
        self,
        patient_id: str,
        patient_name: str,
        test_type: str,
        test: str,
        urgency: str = "normal",
        notes: str = "",
        doctor_id: str | None = None,
    ) -> str:
        doctor_id = self._require_actor(doctor_id, "create a lab test request")
        request_id = self.store.add(LAB_TEST_REQUESTS, {
            "doctorId": doctor_id,
            "patientId": patient_id,
            "patientName": patient_name,
            "testType": test_type,
            "test": test,
            "urgency": urgency or "normal",
            "notes": notes or "",
            "status": LabStatus.PENDING.value,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        })
        logger.info("[doctor] lab test request %s created by %s for patient %s",
                    request_id, doctor_id, patient_id)
        return request_id

    def add_notes_to_lab_result(self, result_id: str, notes: str, doctor_id: str | None = None) -> None:
        """写医生备注，同时显式把 status 置为 completed（不再只靠 doctorNotes 是否存在推断）。"""
        doctor_id = self._require_actor(doctor_id, "add notes to a lab result")
        self._update(LAB_RESULTS, result_id, {
            "doctorNotes": notes,
            "notesAddedBy": doctor_id,
            "notesAddedAt": SERVER_TIMESTAMP,
            "status": LabStatus.COMPLETED.value,
        })
        logger.info("[doctor] notes added to lab result %s by %s", result_id, doctor_id)

    def create_medication_order(
        self,
        medication_id: str,
        medication_name: str,
        doctor_id: str | None = None,
    ) -> str:
        doctor_id = self._require_actor(doctor_id, "create a medication order")
        order_id = self.store.add(MEDICATION_ORDERS, {
            "doctorId": doctor_id,
            "medicationId": medication_id,
            "medicationName": medication_name,
            "status": "pending",
            "createdAt": SERVER_TIMESTAMP,
        })
        logger.info("[doctor] medication order %s created by %s", order_id, doctor_id)
        return order_id

    def approve_override_request(
        self,
        request_id: str,
        doctor_id: str | None = None,
        expected_status: OverrideStatus | None = None,
    ) -> None:
        """
        批准 override 请求。

        默认不检查原状态（last-write-wins）。传 expected_status（通常是 PENDING）
        时变成 compare-and-set：状态不符抛 ConflictError，什么都不写。
        """
        doctor_id = self._require_actor(doctor_id, "approve an override request")
        self._transition_override(request_id, OverrideStatus.APPROVED, {
            "approvedBy": doctor_id,
            "approvedAt": SERVER_TIMESTAMP,
        }, expected_status)
        logger.info("[doctor] override request %s approved by %s", request_id, doctor_id)

    def reject_override_request(
        self,
        request_id: str,
        doctor_id: str | None = None,
        expected_status: OverrideStatus | None = None,
    ) -> None:
        doctor_id = self._require_actor(doctor_id, "reject an override request")
        self._transition_override(request_id, OverrideStatus.REJECTED, {
            "rejectedBy": doctor_id,
            "rejectedAt": SERVER_TIMESTAMP,
        }, expected_status)
        logger.info("[doctor] override request %s rejected by %s", request_id, doctor_id)

    def _transition_override(self, request_id, status, fields, expected_status):
        expect = {"status": OverrideStatus(expected_status).value} if expected_status is not None else None
        self._update(OVERRIDE_REQUESTS, request_id, {"status": status.value, **fields}, expect=expect)
