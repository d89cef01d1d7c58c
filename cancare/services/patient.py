"""
Patient-scoped reads and writes.

patient_id 不传时，先按当前身份找到患者档案（uid 字段 → 文档 id），
再用档案 id 查询；身份或档案缺失都返回安全默认值。
"""

import logging
from datetime import datetime

from ..exceptions import NotFoundError, ValidationError
from ..records import mappers
from ..records.types import (
    ACTIVE_PRESCRIPTION_STATUSES,
    Appointment,
    LabResult,
    MedicalRecord,
    Patient,
    Prescription,
    TransportationRequest,
)
from ..store.types import SERVER_TIMESTAMP, Query
from ..timestamps import parse_timestamp
from .base import (
    APPOINTMENTS,
    LAB_RESULTS,
    MEDICAL_RECORDS,
    PATIENTS,
    PRESCRIPTIONS,
    TRANSPORTATION_REQUESTS,
    BaseDataService,
    fail_soft,
)

logger = logging.getLogger(__name__)


class PatientService(BaseDataService):

    def find_patient(self, patient_id: str | None) -> Patient | None:
        uid = self._resolve_owner(patient_id)
        if not uid:
            return None
        return self._lookup_profile(PATIENTS, uid, mappers.decode_patient)

    def resolve_patient_id(self, patient_id: str | None = None) -> str | None:
        """显式 id 直接用；否则取当前用户的患者档案 id。不吞异常。"""
        if patient_id:
            return patient_id
        patient = self.find_patient(None)
        return patient.id if patient is not None else None

    # ── Reads ──────────────────────────────────────────────────────────────

    @fail_soft()
    def get_profile(self, patient_id: str | None = None) -> Patient | None:
        return self.find_patient(patient_id)

    @fail_soft(list)
    def list_medical_records(self, patient_id: str | None = None) -> list[MedicalRecord]:
        patient_id = self.resolve_patient_id(patient_id)
        if not patient_id:
            return []
        query = Query(MEDICAL_RECORDS).where("patientId", "==", patient_id).ordered("createdAt", descending=True)
        return self._fetch_ordered(query, mappers.decode_medical_record)

    @fail_soft(list)
    def list_lab_results(self, patient_id: str | None = None) -> list[LabResult]:
        patient_id = self.resolve_patient_id(patient_id)
        if not patient_id:
            return []
        query = Query(LAB_RESULTS).where("patientId", "==", patient_id).ordered("createdAt", descending=True)
        return self._fetch_ordered(query, mappers.decode_lab_result)

    @fail_soft(list)
    def list_prescriptions(self, patient_id: str | None = None) -> list[Prescription]:
        patient_id = self.resolve_patient_id(patient_id)
        if not patient_id:
            return []
        query = Query(PRESCRIPTIONS).where("patientId", "==", patient_id).ordered("createdAt", descending=True)
        return self._fetch_ordered(query, mappers.decode_prescription)

    @fail_soft(list)
    def list_active_prescriptions(self, patient_id: str | None = None) -> list[Prescription]:
        """status 为 pending 或 active 的处方。"""
        patient_id = self.resolve_patient_id(patient_id)
        if not patient_id:
            return []
        query = (
            Query(PRESCRIPTIONS)
            .where("patientId", "==", patient_id)
            .where("status", "in", list(ACTIVE_PRESCRIPTION_STATUSES))
            .ordered("createdAt", descending=True)
        )
        return self._fetch_ordered(query, mappers.decode_prescription)

    @fail_soft(list)
    def list_appointments(self, patient_id: str | None = None) -> list[Appointment]:
        patient_id = self.resolve_patient_id(patient_id)
        if not patient_id:
            return []
        query = Query(APPOINTMENTS).where("patientId", "==", patient_id).ordered("appointmentDate")
        return self._fetch_ordered(query, mappers.decode_appointment)

    @fail_soft(list)
    def list_transportation_requests(self, patient_id: str | None = None) -> list[TransportationRequest]:
        patient_id = self.resolve_patient_id(patient_id)
        if not patient_id:
            return []
        query = (
            Query(TRANSPORTATION_REQUESTS)
            .where("patientId", "==", patient_id)
            .ordered("createdAt", descending=True)
        )
        return self._fetch_ordered(query, mappers.decode_transportation_request)

    # ── Writes ─────────────────────────────────────────────────────────────

    def create_transportation_request(
        self,
        pickup_location: str,
        destination: str,
        requested_time: datetime | str,
        notes: str | None = None,
        patient_id: str | None = None,
    ) -> str:
        actor = self._require_actor(None, "request transportation")
        patient = self.find_patient(patient_id or actor)
        if patient is None:
            raise NotFoundError(
                message="No patient profile found for this request.",
                code="PATIENT_PROFILE_NOT_FOUND",
                detail={"patient_id": patient_id or actor},
            )
        return self.add_transportation_request(patient, pickup_location, destination, requested_time, notes)

    def add_transportation_request(
        self,
        patient: Patient,
        pickup_location: str,
        destination: str,
        requested_time: datetime | str,
        notes: str | None = None,
        responsible_party_id: str | None = None,
    ) -> str:
        when = parse_timestamp(requested_time)
        if when is None:
            raise ValidationError(
                message="requested_time must be a date-time.",
                code="INVALID_REQUESTED_TIME",
                detail={"requested_time": str(requested_time)},
            )

        data = {
            "patientId": patient.id,
            "patientName": patient.name,
            "pickupLocation": pickup_location,
            "destination": destination,
            "requestedTime": when,
            "status": "pending",
            "notes": notes,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        if responsible_party_id:
            data["responsiblePartyId"] = responsible_party_id

        request_id = self.store.add(TRANSPORTATION_REQUESTS, data)
        logger.info("[patient] transportation request %s created for patient %s", request_id, patient.id)
        return request_id

    def mark_medication_taken(self, prescription_id: str, taken_at: datetime | str | None = None) -> None:
        """记录服药时间；taken_at 不传时用当前时间。"""
        self._require_actor(None, "mark a medication as taken")
        when = parse_timestamp(taken_at) if taken_at is not None else self.clock()
        if when is None:
            raise ValidationError(
                message="taken_at must be a date-time.",
                code="INVALID_TAKEN_AT",
                detail={"taken_at": str(taken_at)},
            )
        self._update(PRESCRIPTIONS, prescription_id, {"lastTakenAt": when, "updatedAt": SERVER_TIMESTAMP})
