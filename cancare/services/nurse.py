import logging

from ..records import mappers
from ..records.types import Appointment, NurseProfile, OverrideStatus, Patient, Prescription
from ..store.types import SERVER_TIMESTAMP, Query
from .base import (
    APPOINTMENTS,
    MEDICATION_ORDERS,
    NURSES,
    OVERRIDE_REQUESTS,
    PATIENTS,
    PRESCRIPTIONS,
    BaseDataService,
    fail_soft,
)

logger = logging.getLogger(__name__)


class NurseService(BaseDataService):

    @fail_soft()
    def get_profile(self, nurse_id: str | None = None) -> NurseProfile | None:
        nurse_id = self._resolve_owner(nurse_id)
        if not nurse_id:
            return None
        return self._lookup_profile(NURSES, nurse_id, mappers.decode_nurse)

    @fail_soft(list)
    def list_patients(self, nurse_id: str | None = None) -> list[Patient]:
        nurse_id = self._resolve_owner(nurse_id)
        if not nurse_id:
            return []
        return self._fetch(Query(PATIENTS).where("assignedNurseId", "==", nurse_id), mappers.decode_patient)

    @fail_soft(list)
    def list_appointments(self, nurse_id: str | None = None) -> list[Appointment]:
        """按 scheduledTime 升序（最近的在前）。"""
        nurse_id = self._resolve_owner(nurse_id)
        if not nurse_id:
            return []
        query = Query(APPOINTMENTS).where("nurseId", "==", nurse_id).ordered("scheduledTime")
        return self._fetch_ordered(query, mappers.decode_appointment)

    @fail_soft(list)
    def list_medications(self, nurse_id: str | None = None) -> list[Prescription]:
        """护士负责的所有患者的处方。"""
        nurse_id = self._resolve_owner(nurse_id)
        if not nurse_id:
            return []
        patients = self._fetch(Query(PATIENTS).where("assignedNurseId", "==", nurse_id), mappers.decode_patient)
        patient_ids = [patient.id for patient in patients]
        if not patient_ids:
            return []
        return self._fetch_in(Query(PRESCRIPTIONS), "patientId", patient_ids, mappers.decode_prescription)

    # ── Writes ─────────────────────────────────────────────────────────────

    def create_override_request(
        self,
        doctor_id: str,
        patient_id: str,
        medication_name: str,
        current_dosage: str,
        requested_dosage: str,
        reason: str,
        nurse_id: str | None = None,
    ) -> str:
        nurse_id = self._require_actor(nurse_id, "create an override request")
        request_id = self.store.add(OVERRIDE_REQUESTS, {
            "nurseId": nurse_id,
            "doctorId": doctor_id,
            "patientId": patient_id,
            "medicationName": medication_name,
            "currentDosage": current_dosage,
            "requestedDosage": requested_dosage,
            "reason": reason,
            "status": OverrideStatus.PENDING.value,
            "createdAt": SERVER_TIMESTAMP,
        })
        logger.info("[nurse] override request %s filed by %s for doctor %s", request_id, nurse_id, doctor_id)
        return request_id

    def update_medication_order_status(self, order_id: str, status: str, nurse_id: str | None = None) -> None:
        nurse_id = self._require_actor(nurse_id, "update a medication order")
        self._update(MEDICATION_ORDERS, order_id, {"status": status, "updatedAt": SERVER_TIMESTAMP})
        logger.info("[nurse] medication order %s -> %s by %s", order_id, status, nurse_id)
