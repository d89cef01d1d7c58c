"""
Response serializers — typed record → JSON-able dict。
Request serializers — DRF Serializer，只做请求体字段校验。

校验失败由 is_valid(raise_exception=True) 抛 DRF ValidationError，
exception_handler 统一转成 validation_error 格式。
"""

from rest_framework import serializers

from .records.types import OverrideStatus, Role


def _iso(value):
    return value.isoformat() if value is not None else None


# ── Responses ──────────────────────────────────────────────────────────────

def serialize_patient(patient):
    """列表用的患者摘要。"""
    return {
        'id': patient.id,
        'name': patient.name,
        'diagnosis': patient.diagnosis or 'No diagnosis',
        'age': patient.age(),
        'gender': patient.gender,
        'assigned_doctor_id': patient.assigned_doctor_id,
        'assigned_nurse_id': patient.assigned_nurse_id,
    }


def serialize_lab_request(request):
    return {
        'id': request.id,
        'patient_id': request.patient_id,
        'patient_name': request.patient_name,
        'test_type': request.test_type,
        'test': request.test,
        'urgency': request.urgency,
        'notes': request.notes,
        'status': request.raw_status,
        'created_at': _iso(request.created_at),
    }


def serialize_lab_result(result, patient_name=None):
    response = {
        'id': result.id,
        'test_name': result.test_name,
        'patient_id': result.patient_id,
        'status': result.status.value,
        'is_completed': result.is_completed,
        'doctor_notes': result.doctor_notes,
        'results': result.results,
        'created_at': _iso(result.created_at),
    }
    if patient_name is not None:
        response['patient_name'] = patient_name
    return response


def serialize_lab_result_summary(summary):
    return serialize_lab_result(summary.result, patient_name=summary.patient_name)


def serialize_pending_override(pending):
    request = pending.request
    return {
        'id': request.id,
        'nurse_id': request.nurse_id,
        'nurse_name': pending.nurse_name,
        'patient_id': request.patient_id,
        'medication_name': request.medication_name,
        'current_dosage': request.current_dosage,
        'requested_dosage': request.requested_dosage,
        'reason': request.reason,
        'status': request.raw_status,
        'created_at': _iso(request.created_at),
    }


def serialize_prescription(prescription):
    return {
        'id': prescription.id,
        'medication_name': prescription.medication_name,
        'dosage': prescription.dosage,
        'frequency': prescription.frequency,
        'duration': prescription.duration,
        'status': prescription.raw_status,
        'is_active': prescription.is_active,
        'last_taken_at': _iso(prescription.last_taken_at),
        'created_at': _iso(prescription.created_at),
    }


def serialize_appointment(appointment):
    return {
        'id': appointment.id,
        'patient_id': appointment.patient_id,
        'patient_name': appointment.patient_name,
        'doctor_name': appointment.doctor_name,
        'scheduled_time': _iso(appointment.scheduled_time),
        'status': appointment.status,
        'notes': appointment.notes,
    }


def serialize_group_chat(chat):
    return {
        'id': chat.id,
        'name': chat.name,
        'description': chat.description,
        'member_count': len(chat.member_ids),
        'updated_at': _iso(chat.updated_at),
    }


def serialize_group_message(message):
    return {
        'id': message.id,
        'sender_id': message.sender_id,
        'sender_name': message.sender_name,
        'sender_role': message.sender_role.value,
        'message': message.message,
        'read_by': sorted(uid for uid, seen in message.read_by.items() if seen),
        'created_at': _iso(message.created_at),
    }


def serialize_dashboard(dashboard):
    """dashboard dataclass 的字段本身就是平铺的计数。"""
    return dict(vars(dashboard))


# ── Request bodies ─────────────────────────────────────────────────────────

class LabTestRequestInput(serializers.Serializer):
    patient_id = serializers.CharField()
    patient_name = serializers.CharField()
    test_type = serializers.CharField()
    test = serializers.CharField()
    urgency = serializers.CharField(required=False, default='normal')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class LabNotesInput(serializers.Serializer):
    notes = serializers.CharField()


class OverrideDecisionInput(serializers.Serializer):
    # 传了就做 compare-and-set；不传就是 last-write-wins
    expected_status = serializers.ChoiceField(
        choices=[s.value for s in OverrideStatus if s is not OverrideStatus.UNKNOWN],
        required=False,
    )


class OverrideRequestInput(serializers.Serializer):
    doctor_id = serializers.CharField()
    patient_id = serializers.CharField()
    medication_name = serializers.CharField()
    current_dosage = serializers.CharField()
    requested_dosage = serializers.CharField()
    reason = serializers.CharField()


class GroupMessageInput(serializers.Serializer):
    message = serializers.CharField()
    sender_name = serializers.CharField(required=False)
    sender_role = serializers.ChoiceField(
        choices=[r.value for r in Role if r is not Role.UNKNOWN],
        required=False,
    )
