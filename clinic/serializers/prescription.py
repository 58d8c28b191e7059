import html

import bleach
from rest_framework import serializers

from clinic.records import PRESCRIPTION_STATUSES, MedicineLine


def _clean(v):
    # bleach escapes "&" and friends; store the plain text
    return html.unescape(bleach.clean((v or '').strip(), strip=True))


class MedicineLineSerializer(serializers.Serializer):
    # Blank names are accepted here and dropped by the service
    medicineName = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    dosage = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    frequency = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    duration = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')

    def validate(self, attrs):
        return {k: _clean(v) for k, v in attrs.items()}


class PrescriptionCreateSerializer(serializers.Serializer):
    patientId = serializers.CharField(max_length=64)
    diagnosis = serializers.CharField(max_length=2000)
    doctorNotes = serializers.CharField(max_length=4000, required=False, allow_blank=True, default='')
    medicines = MedicineLineSerializer(many=True, required=False, default=list)

    def validate_diagnosis(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('Diagnosis is required')
        return v

    def validate_doctorNotes(self, v):
        return _clean(v)

    def medicine_lines(self) -> list[MedicineLine]:
        return [
            MedicineLine(
                medicine_name=m.get('medicineName', ''),
                dosage=m.get('dosage', ''),
                frequency=m.get('frequency', ''),
                duration=m.get('duration', ''),
            )
            for m in self.validated_data.get('medicines') or []
        ]


class PrescriptionListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=list(PRESCRIPTION_STATUSES), required=False)


class PrescriptionIdSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=64)
