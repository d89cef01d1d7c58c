"""
Unit tests for the missing-index fallback across roles.

同一批种子数据分别写进「有索引」和「缺索引」的内存 store，
两条路径必须返回同一批记录、同一顺序：

1. 升序：护士 / 患者的预约、负责人的患者（按姓名）
2. 旧字段别名（只有 appointmentDate）和缺排序字段的记录 → 排最后
3. 同一字段混用 datetime / epoch 数字 / ISO 字符串 → 按时间排
4. fallback 不算读失败（degraded 为 False）
"""
import pytest
from datetime import timedelta

from cancare.identity import StaticIdentity
from cancare.services import CareDataService
from cancare.services.base import APPOINTMENTS, LAB_RESULTS, PATIENTS
from cancare.store.backends import InMemoryDocumentStore
from tests.conftest import (
    NOW,
    AppointmentDocFactory,
    LabResultDocFactory,
    PatientDocFactory,
    days_ago,
    fixed_clock,
    seed,
)


def read_both(collection, seed_data, read, user_id):
    """返回 (有索引时的 ids, 缺索引时的 ids, 缺索引那次的 service)。"""
    outcomes = []
    for missing in ((), (collection,)):
        store = InMemoryDocumentStore(clock=fixed_clock, missing_indexes=missing)
        seed_data(store)
        service = CareDataService(store, StaticIdentity(user_id), clock=fixed_clock, max_workers=1)
        outcomes.append((read(service), service))
    (indexed, _), (fallback, service) = outcomes
    return indexed, fallback, service


# -------------------------------------------------------------------
# Seeds
# -------------------------------------------------------------------

def seed_nurse_appointments(store):
    seed(store, APPOINTMENTS, AppointmentDocFactory, doc_id='a-legacy',
         appointmentDate=NOW + timedelta(hours=1))
    seed(store, APPOINTMENTS, AppointmentDocFactory, doc_id='a-iso',
         scheduledTime='2024-03-03T09:00:00Z')
    seed(store, APPOINTMENTS, AppointmentDocFactory, doc_id='a-new',
         scheduledTime=NOW + timedelta(days=1))
    seed(store, APPOINTMENTS, AppointmentDocFactory, doc_id='a-other', nurseId='nurse-2',
         scheduledTime=NOW)


def seed_patient_appointments(store):
    seed(store, APPOINTMENTS, AppointmentDocFactory, doc_id='p-late',
         appointmentDate=NOW + timedelta(days=5))
    seed(store, APPOINTMENTS, AppointmentDocFactory, doc_id='p-missing',
         appointmentDate=None, scheduledTime=NOW)
    # 2024-03-02 12:00 UTC，epoch 秒
    seed(store, APPOINTMENTS, AppointmentDocFactory, doc_id='p-early', appointmentDate=1709380800)


def seed_responsible_patients(store):
    seed(store, PATIENTS, PatientDocFactory, doc_id='p-zed', name='Zed', responsiblePartyId='resp-1')
    seed(store, PATIENTS, PatientDocFactory, doc_id='p-anon', name=None, responsiblePartyId='resp-1')
    seed(store, PATIENTS, PatientDocFactory, doc_id='p-ali', name='Ali', responsiblePartyId='resp-1')
    seed(store, PATIENTS, PatientDocFactory, doc_id='p-else', name='Bea', responsiblePartyId='resp-2')


def seed_mixed_lab_results(store):
    seed(store, LAB_RESULTS, LabResultDocFactory, doc_id='r-dt-old', createdAt=days_ago(3))
    # 2024-03-01 11:00 UTC
    seed(store, LAB_RESULTS, LabResultDocFactory, doc_id='r-epoch-new', createdAt=1709290800)
    seed(store, LAB_RESULTS, LabResultDocFactory, doc_id='r-iso-mid', createdAt='2024-02-29T00:00:00Z')
    seed(store, LAB_RESULTS, LabResultDocFactory, doc_id='r-none', createdAt=None)


CASES = [
    pytest.param(
        APPOINTMENTS, seed_nurse_appointments,
        lambda service: [a.id for a in service.nurses.list_appointments()],
        'nurse-1', ['a-new', 'a-iso', 'a-legacy'],
        id='nurse-appointments',
    ),
    pytest.param(
        APPOINTMENTS, seed_patient_appointments,
        lambda service: [a.id for a in service.patients.list_appointments('pat-1')],
        'user-1', ['p-early', 'p-late', 'p-missing'],
        id='patient-appointments',
    ),
    pytest.param(
        PATIENTS, seed_responsible_patients,
        lambda service: [p.id for p in service.responsible.list_patients()],
        'resp-1', ['p-ali', 'p-zed', 'p-anon'],
        id='responsible-patients',
    ),
    pytest.param(
        LAB_RESULTS, seed_mixed_lab_results,
        lambda service: [s.result.id for s in service.doctors.list_lab_results()],
        'doc-1', ['r-epoch-new', 'r-iso-mid', 'r-dt-old', 'r-none'],
        id='doctor-lab-results-mixed-encodings',
    ),
]


class TestFallbackParity:

    @pytest.mark.parametrize('collection, seed_data, read, user_id, expected', CASES)
    def test_same_records_same_order(self, collection, seed_data, read, user_id, expected):
        indexed, fallback, service = read_both(collection, seed_data, read, user_id)

        assert indexed == expected
        assert fallback == expected
        assert not service.degraded

    def test_legacy_alias_still_decoded(self):
        """只有 appointmentDate 的预约排最后，但时间照样解出来。"""
        store = InMemoryDocumentStore(clock=fixed_clock, missing_indexes={APPOINTMENTS})
        seed_nurse_appointments(store)
        service = CareDataService(store, StaticIdentity('nurse-1'), clock=fixed_clock, max_workers=1)

        legacy = service.nurses.list_appointments()[-1]

        assert legacy.id == 'a-legacy'
        assert legacy.scheduled_time == NOW + timedelta(hours=1)
