"""
Unit tests for the read-side error policy.

1. 没有身份：每个角色查询返回空默认值，不抛异常，也不算读失败
2. store 故障：读操作返回默认值，错误写进 ReadErrorLog（degraded）
3. 排序查询的非索引错误不触发 fallback
4. 二次查询失败只影响单条记录的显示名
"""
import pytest
from unittest.mock import patch

from cancare.records.types import DoctorDashboard, PatientDashboard, ResponsibleDashboard
from cancare.services import ReadErrorLog
from cancare.services.base import LAB_RESULTS, PATIENTS
from cancare.store import StoreError
from tests.conftest import LabResultDocFactory, PatientDocFactory, seed


ROLE_QUERIES = [
    ('doctors', 'get_profile', None),
    ('doctors', 'list_patients', []),
    ('doctors', 'list_pending_lab_requests', []),
    ('doctors', 'list_lab_results', []),
    ('doctors', 'list_medical_records', []),
    ('doctors', 'list_pending_override_requests', []),
    ('nurses', 'get_profile', None),
    ('nurses', 'list_patients', []),
    ('nurses', 'list_appointments', []),
    ('nurses', 'list_medications', []),
    ('patients', 'get_profile', None),
    ('patients', 'list_medical_records', []),
    ('patients', 'list_lab_results', []),
    ('patients', 'list_prescriptions', []),
    ('patients', 'list_active_prescriptions', []),
    ('patients', 'list_appointments', []),
    ('patients', 'list_transportation_requests', []),
    ('responsible', 'list_patients', []),
    ('users', 'get_profile', None),
    ('social', 'list_group_chats', []),
    ('dashboards', 'doctor_dashboard', DoctorDashboard.zero()),
    ('dashboards', 'patient_dashboard', PatientDashboard.zero()),
    ('dashboards', 'responsible_dashboard', ResponsibleDashboard.zero()),
]


class TestEmptyIdentity:

    @pytest.mark.parametrize('service_name, method, default', ROLE_QUERIES)
    def test_returns_default_without_raising(self, store, make_service, service_name, method, default):
        seed(store, PATIENTS, PatientDocFactory, doc_id='p1')
        service = make_service(None)

        result = getattr(getattr(service, service_name), method)()

        assert result == default
        assert not service.degraded


class TestStoreFailure:

    @pytest.mark.parametrize('service_name, method, default', ROLE_QUERIES)
    def test_failure_returns_default_and_records(self, store, make_service, service_name, method, default):
        service = make_service('someone')

        with patch.object(store, 'query', side_effect=StoreError('unavailable')), \
                patch.object(store, 'get', side_effect=StoreError('unavailable')), \
                patch.object(store, 'count', side_effect=StoreError('unavailable')):
            result = getattr(getattr(service, service_name), method)()

        assert result == default
        assert service.degraded
        error = list(service.errors)[-1]
        assert error.error_type == 'StoreError'
        assert error.message == 'unavailable'

    def test_defaults_are_fresh_objects(self, store, make_service):
        service = make_service('doc-1')
        with patch.object(store, 'query', side_effect=StoreError('unavailable')):
            first = service.doctors.list_patients()
            first.append('mutated')
            assert service.doctors.list_patients() == []

    def test_non_index_error_not_retried(self, store, make_service):
        service = make_service('doc-1')
        with patch.object(store, 'query', side_effect=StoreError('permission denied')) as query:
            assert service.doctors.list_lab_results() == []
        assert query.call_count == 1

    def test_errors_can_be_cleared(self, store, make_service):
        service = make_service('doc-1')
        with patch.object(store, 'query', side_effect=StoreError('unavailable')):
            service.doctors.list_patients()
        service.errors.clear()
        assert not service.degraded


class TestSecondaryLookupFailure:

    def test_name_falls_back_per_record(self, store, make_service):
        seed(store, LAB_RESULTS, LabResultDocFactory, doc_id='r1')
        service = make_service('doc-1')

        with patch.object(store, 'get', side_effect=StoreError('timeout')):
            summaries = service.doctors.list_lab_results()

        # 列表本身照常返回，只有显示名降级
        assert [(s.result.id, s.patient_name) for s in summaries] == [('r1', 'Unknown')]
        assert service.degraded


class TestReadErrorLog:

    def test_record_and_iterate(self):
        log = ReadErrorLog()
        assert not log

        log.record('DoctorService.list_patients', ValueError('bad'))

        assert len(log) == 1
        assert [(e.operation, e.error_type) for e in log] == [('DoctorService.list_patients', 'ValueError')]
