"""
Patient self-registration and the patient list used by doctors.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status

from clinic.records import Patient
from clinic.serializers.patient import PatientRegisterSerializer
from clinic.services.registration import register_patient
from clinic.stores import get_stores


def _patient_payload(p: Patient) -> dict:
    return {
        'id': p.id,
        'fullName': p.full_name,
        'dateOfBirth': p.date_of_birth,
        'contactNumber': p.contact_number,
        'reasonForVisit': p.reason_for_visit,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }


@api_view(['POST'])
@permission_classes([AllowAny])
def patient_register(request):
    """Register a walk-in patient and put them at the back of the queue.

    Returns the issued queue number together with the new patient and
    queue entry identifiers.
    """
    s = PatientRegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    registration = register_patient(get_stores(), **s.to_fields())
    return Response({
        'ok': True,
        'queueNumber': registration.entry.queue_number,
        'patientId': registration.patient.id,
        'entryId': registration.entry.id,
        'estimatedWait': registration.entry.estimated_wait_time,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([AllowAny])
def list_patients(request):
    patients = get_stores().patients.list()
    return Response({'ok': True, 'data': [_patient_payload(p) for p in patients]})


@api_view(['GET'])
@permission_classes([AllowAny])
def patient_detail(request, patient_id: str):
    patient = get_stores().patients.get(patient_id)
    return Response({'ok': True, 'data': _patient_payload(patient)})
