"""
Typed records — services 层唯一对外暴露的数据格式。

所有 mapper 的 decode_xxx() 必须返回这里的结构。
View / 调用方只消费这些 dataclass，永远不碰存储里的原始 dict。

状态字段用 str Enum；存储里出现未知取值时解成 UNKNOWN，
原始字符串保留在 raw_status / raw_role 里，不丢信息。
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from ..search import calculate_age


# ── Enums ──────────────────────────────────────────────────────────────────

class Role(str, Enum):
    DOCTOR = "doctor"
    NURSE = "nurse"
    PATIENT = "patient"
    RESPONSIBLE = "responsible"
    UNKNOWN = "unknown"


class LabStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    UNKNOWN = "unknown"


class PrescriptionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    UNKNOWN = "unknown"


class OverrideStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


ACTIVE_PRESCRIPTION_STATUSES = (PrescriptionStatus.PENDING.value, PrescriptionStatus.ACTIVE.value)


# ── Profiles ───────────────────────────────────────────────────────────────

@dataclass
class UserProfile:
    id: str
    role: Role = Role.UNKNOWN
    raw_role: str = ""
    name: str = ""
    email: str = ""
    phone: str = ""
    created_at: datetime | None = None


@dataclass
class DoctorProfile:
    id: str
    uid: str = ""
    name: str = "Unknown"
    email: str = ""
    phone: str = ""
    specialization: str = ""
    created_at: datetime | None = None


@dataclass
class NurseProfile:
    id: str
    uid: str = ""
    name: str = "Unknown"
    email: str = ""
    phone: str = ""
    department: str = ""
    created_at: datetime | None = None


@dataclass
class Patient:
    """
    患者档案。

    assigned_doctor_id / assigned_nurse_id 是弱引用，只用于查询，不保证对方存在。
    dob 统一成 "YYYY-MM-DD"，无法识别时为 None。
    """

    id: str
    name: str = "Unknown"
    email: str = ""
    phone: str = ""
    dob: str | None = None
    gender: str = ""
    blood_type: str = ""
    status: str = ""
    diagnosis: str | None = None
    assigned_doctor_id: str | None = None
    assigned_nurse_id: str | None = None
    responsible_party_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def age(self, today: date | None = None) -> int | None:
        return calculate_age(self.dob, today=today)


# ── Clinical records ───────────────────────────────────────────────────────

@dataclass
class LabTestRequest:
    id: str
    doctor_id: str | None = None
    patient_id: str | None = None
    patient_name: str = "Unknown"
    test_type: str = ""
    test: str = ""
    urgency: str = "normal"
    notes: str = ""
    status: LabStatus = LabStatus.PENDING
    raw_status: str = LabStatus.PENDING.value
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class LabResult:
    """
    检验结果。

    status 优先取文档里的显式 status；旧数据没有 status 时，
    doctorNotes 非空视为 completed，否则 pending。
    results 是检验项 → 数值的自由结构，原样保留。
    """

    id: str
    request_id: str | None = None
    doctor_id: str | None = None
    patient_id: str | None = None
    test_type: str = ""
    results: dict[str, Any] = field(default_factory=dict)
    doctor_notes: str | None = None
    notes_added_by: str | None = None
    notes_added_at: datetime | None = None
    status: LabStatus = LabStatus.PENDING
    raw_status: str = LabStatus.PENDING.value
    created_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status is LabStatus.COMPLETED

    @property
    def test_name(self) -> str:
        return self.test_type or self.request_id or ""


@dataclass
class Prescription:
    id: str
    doctor_id: str | None = None
    patient_id: str | None = None
    patient_name: str = ""
    medication_name: str = ""
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    notes: str = ""
    status: PrescriptionStatus = PrescriptionStatus.ACTIVE
    raw_status: str = PrescriptionStatus.ACTIVE.value
    last_taken_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status.value in ACTIVE_PRESCRIPTION_STATUSES


@dataclass
class MedicalRecord:
    id: str
    doctor_id: str | None = None
    patient_id: str | None = None
    category: str = ""
    description: str = ""
    attachments: list[Any] = field(default_factory=list)
    created_at: datetime | None = None


@dataclass
class OverrideRequest:
    id: str
    nurse_id: str | None = None
    doctor_id: str | None = None
    patient_id: str | None = None
    medication_name: str = ""
    current_dosage: str = ""
    requested_dosage: str = ""
    reason: str = ""
    status: OverrideStatus = OverrideStatus.PENDING
    raw_status: str = OverrideStatus.PENDING.value
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class Appointment:
    id: str
    patient_id: str | None = None
    patient_name: str = "Unknown"
    doctor_id: str | None = None
    doctor_name: str = "Unknown"
    nurse_id: str | None = None
    scheduled_time: datetime | None = None
    status: str = "scheduled"
    notes: str = ""


@dataclass
class TransportationRequest:
    id: str
    patient_id: str | None = None
    patient_name: str = ""
    responsible_party_id: str | None = None
    pickup_location: str = ""
    destination: str = ""
    requested_time: datetime | None = None
    status: str = "pending"
    notes: str = ""
    created_at: datetime | None = None


@dataclass
class Medication:
    id: str
    name: str = "Unknown"
    dosage: str = "No dosage info"
    category: str = "Unspecified"


# ── Social ─────────────────────────────────────────────────────────────────

@dataclass
class PostComment:
    text: str = ""
    author_id: str | None = None
    author_name: str = "Unknown"
    created_at: datetime | None = None


@dataclass
class Post:
    id: str
    title: str = ""
    content: str = ""
    author_id: str | None = None
    author_name: str = "Unknown"
    category: str = ""
    image: str | None = None
    likes: int = 0
    liked_by: list[str] = field(default_factory=list)
    comments: list[PostComment] = field(default_factory=list)
    created_at: datetime | None = None


@dataclass
class GroupChat:
    id: str
    name: str = ""
    description: str = ""
    member_ids: list[str] = field(default_factory=list)
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_member(self, user_id: str) -> bool:
        return user_id in self.member_ids


@dataclass
class GroupMessage:
    id: str
    group_chat_id: str = ""
    sender_id: str = ""
    sender_name: str = "User"
    sender_role: Role = Role.PATIENT
    message: str = ""
    created_at: datetime | None = None
    read_by: dict[str, bool] = field(default_factory=dict)

    def is_read_by(self, user_id: str) -> bool:
        return bool(self.read_by.get(user_id))


# ── Composites（带二次查询结果的记录） ─────────────────────────────────────

@dataclass
class LabResultSummary:
    result: LabResult
    patient_name: str = "Unknown"


@dataclass
class PendingOverride:
    request: OverrideRequest
    nurse_name: str = "Unknown"


# ── Dashboards ─────────────────────────────────────────────────────────────
#
# 全部字段默认 0；zero() 就是聚合失败时返回的安全默认值。

@dataclass
class DoctorDashboard:
    active_patients: int = 0
    pending_lab_tests: int = 0
    recent_prescriptions: int = 0

    @classmethod
    def zero(cls) -> "DoctorDashboard":
        return cls()


@dataclass
class PatientDashboard:
    upcoming_appointments: int = 0
    active_medications: int = 0
    pending_lab_results: int = 0

    @classmethod
    def zero(cls) -> "PatientDashboard":
        return cls()


@dataclass
class ResponsibleDashboard:
    total_patients: int = 0
    upcoming_appointments: int = 0
    active_medications: int = 0
    pending_lab_results: int = 0

    @classmethod
    def zero(cls) -> "ResponsibleDashboard":
        return cls()
