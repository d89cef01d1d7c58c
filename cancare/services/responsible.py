import logging
from datetime import datetime

from ..exceptions import NotFoundError
from ..records import mappers
from ..records.types import Patient
from ..store.types import Query
from .base import PATIENTS, BaseDataService, fail_soft
from .patient import PatientService

logger = logging.getLogger(__name__)


class ResponsibleService(BaseDataService):
    """负责人（家属 / 监护人）视角：自己照顾的患者，以及代患者发起的请求。"""

    def patients_in_care(self, responsible_id: str | None) -> list[Patient]:
        """不吞异常的版本，dashboard 聚合用。"""
        responsible_id = self._resolve_owner(responsible_id)
        if not responsible_id:
            return []
        query = Query(PATIENTS).where("responsiblePartyId", "==", responsible_id).ordered("name")
        return self._fetch_ordered(query, mappers.decode_patient)

    @fail_soft(list)
    def list_patients(self, responsible_id: str | None = None) -> list[Patient]:
        """按姓名升序。"""
        return self.patients_in_care(responsible_id)

    @fail_soft()
    def get_patient(self, patient_id: str) -> Patient | None:
        doc = self.store.get(PATIENTS, patient_id)
        return mappers.decode_patient(doc.data, doc.id) if doc is not None else None

    @property
    def patients(self) -> PatientService:
        """同一上下文下的 PatientService，按显式 patient_id 读单个患者的数据。"""
        return self._sibling(PatientService)

    def create_transportation_request_for_patient(
        self,
        patient_id: str,
        pickup_location: str,
        destination: str,
        requested_time: datetime | str,
        notes: str | None = None,
        responsible_id: str | None = None,
    ) -> str:
        responsible_id = self._require_actor(responsible_id, "request transportation for a patient")
        patients = self.patients
        patient = patients.find_patient(patient_id)
        if patient is None:
            raise NotFoundError(
                message=f"Patient {patient_id} does not exist.",
                code="PATIENT_PROFILE_NOT_FOUND",
                detail={"patient_id": patient_id},
            )
        request_id = patients.add_transportation_request(
            patient, pickup_location, destination, requested_time, notes,
            responsible_party_id=responsible_id,
        )
        logger.info("[responsible] %s requested transportation %s for patient %s",
                    responsible_id, request_id, patient_id)
        return request_id
