"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
工厂产出的是存储里的原始 dict（camelCase 字段），不是 typed record。
"""
import pytest
from datetime import datetime, timedelta, timezone

import factory
from django.apps import apps
from django.test import Client

from cancare.identity import StaticIdentity
from cancare.services import CareDataService
from cancare.store.backends import InMemoryDocumentStore


NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return NOW


def days_ago(days):
    return NOW - timedelta(days=days)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class UserDocFactory(factory.DictFactory):
    name = factory.Sequence(lambda n: f'User {n}')
    email = factory.Sequence(lambda n: f'user{n}@example.com')
    role = 'patient'


class DoctorDocFactory(factory.DictFactory):
    name = factory.Sequence(lambda n: f'Dr. House {n}')
    specialization = 'Oncology'


class NurseDocFactory(factory.DictFactory):
    name = factory.Sequence(lambda n: f'Nurse Joy {n}')
    department = 'Ward 3'


class PatientDocFactory(factory.DictFactory):
    name = factory.Sequence(lambda n: f'Patient {n}')
    dob = '1990-01-15'
    gender = 'female'
    assignedDoctorId = 'doc-1'
    assignedNurseId = 'nurse-1'


class LabRequestDocFactory(factory.DictFactory):
    doctorId = 'doc-1'
    patientId = 'pat-1'
    patientName = 'Alice Wang'
    testType = 'Blood'
    test = 'CBC'
    urgency = 'normal'
    status = 'pending'
    createdAt = factory.LazyFunction(lambda: days_ago(1))


class LabResultDocFactory(factory.DictFactory):
    doctorId = 'doc-1'
    patientId = 'pat-1'
    results = factory.LazyFunction(lambda: {'testType': 'CBC', 'wbc': 6.1})
    createdAt = factory.LazyFunction(lambda: days_ago(1))


class PrescriptionDocFactory(factory.DictFactory):
    doctorId = 'doc-1'
    patientId = 'pat-1'
    medicationName = 'Tamoxifen'
    dosage = '20mg'
    frequency = 'daily'
    status = 'active'
    createdAt = factory.LazyFunction(lambda: days_ago(1))


class OverrideRequestDocFactory(factory.DictFactory):
    nurseId = 'nurse-1'
    doctorId = 'doc-1'
    patientId = 'pat-1'
    medicationName = 'Morphine'
    currentDosage = '5mg'
    requestedDosage = '10mg'
    reason = 'Breakthrough pain'
    status = 'pending'
    createdAt = factory.LazyFunction(lambda: days_ago(1))


class AppointmentDocFactory(factory.DictFactory):
    patientId = 'pat-1'
    patientName = 'Alice Wang'
    doctorName = 'Dr. House'
    nurseId = 'nurse-1'
    appointmentDate = factory.LazyFunction(lambda: NOW + timedelta(days=2))
    status = 'scheduled'


class GroupChatDocFactory(factory.DictFactory):
    name = factory.Sequence(lambda n: f'Support group {n}')
    description = 'Weekly check-in'
    memberIds = factory.LazyFunction(lambda: ['doc-1'])
    updatedAt = factory.LazyFunction(lambda: days_ago(1))


class GroupMessageDocFactory(factory.DictFactory):
    groupChatId = 'group-1'
    senderId = 'doc-1'
    senderName = 'Dr. House'
    senderRole = 'doctor'
    message = factory.Sequence(lambda n: f'message {n}')
    createdAt = factory.LazyFunction(lambda: days_ago(1))


class PostDocFactory(factory.DictFactory):
    title = 'Coping with chemo'
    content = 'Tips that helped me'
    authorId = 'pat-1'
    authorName = 'Alice Wang'
    likes = 0
    likedBy = factory.LazyFunction(list)
    comments = factory.LazyFunction(list)
    createdAt = factory.LazyFunction(lambda: days_ago(1))


def seed(store, collection, factory_cls, doc_id=None, **overrides):
    """用工厂生成原始文档写进 store，返回文档 id。"""
    data = factory_cls(**overrides)
    if doc_id is None:
        return store.add(collection, data)
    store.set(collection, doc_id, data, merge=False)
    return doc_id


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    """空的内存 store，时钟固定在 NOW。"""
    return InMemoryDocumentStore(clock=fixed_clock)


@pytest.fixture
def make_service(store):
    """make_service('doc-1') → 以 doc-1 身份访问 store 的 CareDataService。"""

    def build(user_id=None, max_workers=1):
        return CareDataService(store, StaticIdentity(user_id), clock=fixed_clock, max_workers=max_workers)

    return build


@pytest.fixture
def api_client(store, monkeypatch):
    """Django test client；app config 上的 store 换成内存 store。"""
    monkeypatch.setattr(apps.get_app_config('cancare'), 'store', store)
    return Client()
