"""
Record mappers：存储原始 dict → typed record。

唯一的解码边界。约定：
  - 每个 decode_xxx(data, doc_id) 都不抛异常，缺字段 / 类型不对时用默认值
  - 历史字段别名在这里消化（doctorId → assignedDoctorId、content → message ...）
  - 时间字段统一走 parse_timestamp
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any

from ..timestamps import parse_timestamp
from .types import (
    Appointment,
    DoctorProfile,
    GroupChat,
    GroupMessage,
    LabResult,
    LabStatus,
    LabTestRequest,
    MedicalRecord,
    Medication,
    NurseProfile,
    OverrideRequest,
    OverrideStatus,
    Patient,
    Post,
    PostComment,
    Prescription,
    PrescriptionStatus,
    Role,
    TransportationRequest,
    UserProfile,
)


# ── 共用取值工具 ───────────────────────────────────────────────────────────

def _text(data: Mapping, *keys: str, default: str = "") -> str:
    """按顺序取第一个非空字符串字段；数字也接受（电话、剂量常被存成数字）。"""
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    return default


def _optional(data: Mapping, *keys: str) -> str | None:
    return _text(data, *keys) or None


def _mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if item is not None]


def as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _status(enum_cls: type[Enum], value: Any, default: Enum) -> tuple[Any, str]:
    """返回 (enum, 原始字符串)。未知取值 → UNKNOWN，原始值保留。"""
    if not isinstance(value, str) or not value.strip():
        return default, default.value
    raw = value.strip()
    try:
        return enum_cls(raw.lower()), raw
    except ValueError:
        return enum_cls.UNKNOWN, raw


def _dob(value: Any) -> str | None:
    parsed = parse_timestamp(value)
    return parsed.date().isoformat() if parsed is not None else None


# ── Profiles ───────────────────────────────────────────────────────────────

def decode_user(data: Mapping, doc_id: str) -> UserProfile:
    profile = _mapping(data.get("profile"))
    role, raw_role = _status(Role, data.get("activeRole") or data.get("role"), Role.UNKNOWN)
    return UserProfile(
        id=doc_id,
        role=role,
        raw_role=raw_role if raw_role != Role.UNKNOWN.value else "",
        name=_text(data, "name") or _text(profile, "name"),
        email=_text(data, "email"),
        phone=_text(data, "phone") or _text(profile, "phone"),
        created_at=parse_timestamp(data.get("createdAt")),
    )


def decode_doctor(data: Mapping, doc_id: str) -> DoctorProfile:
    return DoctorProfile(
        id=doc_id,
        uid=_text(data, "uid", default=doc_id),
        name=_text(data, "name", "fullName", default="Unknown"),
        email=_text(data, "email"),
        phone=_text(data, "phone"),
        specialization=_text(data, "specialization", "specialty"),
        created_at=parse_timestamp(data.get("createdAt")),
    )


def decode_nurse(data: Mapping, doc_id: str) -> NurseProfile:
    return NurseProfile(
        id=doc_id,
        uid=_text(data, "uid", default=doc_id),
        name=_text(data, "name", "fullName", default="Unknown"),
        email=_text(data, "email"),
        phone=_text(data, "phone"),
        department=_text(data, "department"),
        created_at=parse_timestamp(data.get("createdAt")),
    )


def decode_patient(data: Mapping, doc_id: str) -> Patient:
    web_data = _mapping(data.get("webData"))
    return Patient(
        id=doc_id,
        name=_text(data, "name", default="Unknown"),
        email=_text(data, "email"),
        phone=_text(data, "phone"),
        dob=_dob(data.get("dob")),
        gender=_text(data, "gender"),
        blood_type=_text(data, "bloodType"),
        status=_text(data, "status"),
        diagnosis=_optional(web_data, "diagnosis") or _optional(data, "diagnosis"),
        assigned_doctor_id=_optional(data, "assignedDoctorId", "doctorId"),
        assigned_nurse_id=_optional(data, "assignedNurseId", "nurseId"),
        responsible_party_id=_optional(data, "responsiblePartyId"),
        created_at=parse_timestamp(data.get("createdAt")),
        updated_at=parse_timestamp(data.get("updatedAt")),
    )


# ── Clinical records ───────────────────────────────────────────────────────

def decode_lab_request(data: Mapping, doc_id: str) -> LabTestRequest:
    status, raw_status = _status(LabStatus, data.get("status"), LabStatus.PENDING)
    return LabTestRequest(
        id=doc_id,
        doctor_id=_optional(data, "doctorId"),
        patient_id=_optional(data, "patientId"),
        patient_name=_text(data, "patientName", default="Unknown"),
        test_type=_text(data, "testType"),
        test=_text(data, "test"),
        urgency=_text(data, "urgency", default="normal"),
        notes=_text(data, "notes"),
        status=status,
        raw_status=raw_status,
        created_at=parse_timestamp(data.get("createdAt")),
        updated_at=parse_timestamp(data.get("updatedAt")),
    )


def decode_lab_result(data: Mapping, doc_id: str) -> LabResult:
    results = dict(_mapping(data.get("results")))
    notes = data.get("doctorNotes") if isinstance(data.get("doctorNotes"), str) else None

    status, raw_status = _status(LabStatus, data.get("status"), LabStatus.PENDING)
    # 旧数据只靠 doctorNotes 表示完成；有备注即 completed
    if notes and notes.strip() and status is not LabStatus.UNKNOWN:
        status, raw_status = LabStatus.COMPLETED, LabStatus.COMPLETED.value

    return LabResult(
        id=doc_id,
        request_id=_optional(data, "requestId"),
        doctor_id=_optional(data, "doctorId"),
        patient_id=_optional(data, "patientId"),
        test_type=_text(results, "testType") or _text(data, "testType", "testName"),
        results=results,
        doctor_notes=notes,
        notes_added_by=_optional(data, "notesAddedBy"),
        notes_added_at=parse_timestamp(data.get("notesAddedAt")),
        status=status,
        raw_status=raw_status,
        created_at=parse_timestamp(data.get("createdAt")),
    )


def decode_prescription(data: Mapping, doc_id: str) -> Prescription:
    status, raw_status = _status(PrescriptionStatus, data.get("status"), PrescriptionStatus.ACTIVE)
    return Prescription(
        id=doc_id,
        doctor_id=_optional(data, "doctorId"),
        patient_id=_optional(data, "patientId"),
        patient_name=_text(data, "patientName"),
        medication_name=_text(data, "medicationName", "medication"),
        dosage=_text(data, "dosage"),
        frequency=_text(data, "frequency"),
        duration=_text(data, "duration"),
        notes=_text(data, "notes"),
        status=status,
        raw_status=raw_status,
        last_taken_at=parse_timestamp(data.get("lastTakenAt")),
        created_at=parse_timestamp(data.get("createdAt")),
        updated_at=parse_timestamp(data.get("updatedAt")),
    )


def decode_medical_record(data: Mapping, doc_id: str) -> MedicalRecord:
    attachments = data.get("attachments")
    return MedicalRecord(
        id=doc_id,
        doctor_id=_optional(data, "doctorId"),
        patient_id=_optional(data, "patientId"),
        category=_text(data, "category"),
        description=_text(data, "description"),
        attachments=list(attachments) if isinstance(attachments, (list, tuple)) else [],
        created_at=parse_timestamp(data.get("createdAt")),
    )


def decode_override_request(data: Mapping, doc_id: str) -> OverrideRequest:
    status, raw_status = _status(OverrideStatus, data.get("status"), OverrideStatus.PENDING)
    return OverrideRequest(
        id=doc_id,
        nurse_id=_optional(data, "nurseId"),
        doctor_id=_optional(data, "doctorId"),
        patient_id=_optional(data, "patientId"),
        medication_name=_text(data, "medicationName", "medication"),
        current_dosage=_text(data, "currentDosage"),
        requested_dosage=_text(data, "requestedDosage"),
        reason=_text(data, "reason"),
        status=status,
        raw_status=raw_status,
        approved_by=_optional(data, "approvedBy"),
        approved_at=parse_timestamp(data.get("approvedAt")),
        rejected_by=_optional(data, "rejectedBy"),
        rejected_at=parse_timestamp(data.get("rejectedAt")),
        created_at=parse_timestamp(data.get("createdAt")),
    )


def decode_appointment(data: Mapping, doc_id: str) -> Appointment:
    scheduled = data.get("scheduledTime")
    if scheduled is None:
        scheduled = data.get("appointmentDate")
    return Appointment(
        id=doc_id,
        patient_id=_optional(data, "patientId"),
        patient_name=_text(data, "patientName", default="Unknown"),
        doctor_id=_optional(data, "doctorId"),
        doctor_name=_text(data, "doctorName", default="Unknown"),
        nurse_id=_optional(data, "nurseId"),
        scheduled_time=parse_timestamp(scheduled),
        status=_text(data, "status", default="scheduled"),
        notes=_text(data, "notes"),
    )


def decode_transportation_request(data: Mapping, doc_id: str) -> TransportationRequest:
    return TransportationRequest(
        id=doc_id,
        patient_id=_optional(data, "patientId"),
        patient_name=_text(data, "patientName"),
        responsible_party_id=_optional(data, "responsiblePartyId"),
        pickup_location=_text(data, "pickupLocation"),
        destination=_text(data, "destination"),
        requested_time=parse_timestamp(data.get("requestedTime")),
        status=_text(data, "status", default="pending"),
        notes=_text(data, "notes"),
        created_at=parse_timestamp(data.get("createdAt")),
    )


def decode_medication(data: Mapping, doc_id: str) -> Medication:
    return Medication(
        id=doc_id,
        name=_text(data, "name", default="Unknown"),
        dosage=_text(data, "dosage", default="No dosage info"),
        category=_text(data, "category", default="Unspecified"),
    )


# ── Social ─────────────────────────────────────────────────────────────────

def decode_comment(data: Any) -> PostComment:
    data = _mapping(data)
    return PostComment(
        text=_text(data, "text", "content"),
        author_id=_optional(data, "authorId"),
        author_name=_text(data, "authorName", default="Unknown"),
        created_at=parse_timestamp(data.get("createdAt")),
    )


def decode_post(data: Mapping, doc_id: str) -> Post:
    comments = data.get("comments")
    return Post(
        id=doc_id,
        title=_text(data, "title"),
        content=_text(data, "content"),
        author_id=_optional(data, "authorId"),
        author_name=_text(data, "authorName", default="Unknown"),
        category=_text(data, "category"),
        image=_optional(data, "image"),
        likes=as_int(data.get("likes")),
        liked_by=_string_list(data.get("likedBy")),
        comments=[decode_comment(c) for c in comments] if isinstance(comments, list) else [],
        created_at=parse_timestamp(data.get("createdAt")),
    )


def decode_group_chat(data: Mapping, doc_id: str) -> GroupChat:
    return GroupChat(
        id=doc_id,
        name=_text(data, "name"),
        description=_text(data, "description"),
        member_ids=_string_list(data.get("memberIds")),
        created_by=_optional(data, "createdBy"),
        created_at=parse_timestamp(data.get("createdAt")),
        updated_at=parse_timestamp(data.get("updatedAt")),
    )


def decode_group_message(data: Mapping, doc_id: str) -> GroupMessage:
    sender_role, _ = _status(Role, data.get("senderRole"), Role.PATIENT)
    read_by = {
        str(user_id): bool(seen)
        for user_id, seen in _mapping(data.get("readBy")).items()
    }
    return GroupMessage(
        id=doc_id,
        group_chat_id=_text(data, "groupChatId", "groupId"),
        sender_id=_text(data, "senderId"),
        sender_name=_text(data, "senderName", default="User"),
        sender_role=sender_role,
        message=_text(data, "message", "content"),
        created_at=parse_timestamp(data.get("createdAt")),
        read_by=read_by,
    )
