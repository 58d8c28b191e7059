"""
Prescription authoring (doctor) and the pharmacy worklist.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status

from clinic.serializers.prescription import (
    PrescriptionCreateSerializer,
    PrescriptionIdSerializer,
    PrescriptionListQuerySerializer,
)
from clinic.services import prescriptions as rx_service
from clinic.services.audit import log_action
from clinic.services.projections import prescription_row
from clinic.stores import get_stores


@api_view(['GET'])
@permission_classes([AllowAny])
def list_prescriptions(request):
    q = PrescriptionListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    data = rx_service.list_prescriptions(get_stores(), q.validated_data.get('status'))
    return Response({'ok': True, 'data': data})


@api_view(['POST'])
@permission_classes([AllowAny])
def create_prescription(request):
    """Write a pending prescription.

    Medicine lines without a name are dropped; lines naming a catalog
    medicine get blank dosage, frequency and duration filled from it.
    """
    s = PrescriptionCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    stores = get_stores()
    vd = s.validated_data
    prescription = rx_service.create_prescription(
        stores,
        patient_id=vd['patientId'],
        diagnosis=vd['diagnosis'],
        notes=vd.get('doctorNotes', ''),
        lines=s.medicine_lines(),
    )
    patient = stores.patients.get(prescription.patient_id)
    return Response({'ok': True, 'data': prescription_row(prescription, patient)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([AllowAny])
def pharmacy_worklist(request):
    return Response({'ok': True, 'data': rx_service.pharmacy_worklist(get_stores())})


@api_view(['POST'])
@permission_classes([AllowAny])
def dispense(request):
    s = PrescriptionIdSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    prescription = rx_service.dispense(get_stores(), s.validated_data['id'])
    log_action(action='prescription_dispense', object_type='prescription', object_id=prescription.id)
    return Response({'ok': True, 'id': prescription.id, 'status': prescription.status})
