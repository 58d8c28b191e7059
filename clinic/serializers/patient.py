import html

import bleach
from rest_framework import serializers


def _clean(v):
    # bleach escapes "&" and friends; store the plain text
    return html.unescape(bleach.clean((v or '').strip(), strip=True))


class PatientRegisterSerializer(serializers.Serializer):
    fullName = serializers.CharField(max_length=255)
    dateOfBirth = serializers.CharField(max_length=32)
    contactNumber = serializers.CharField(max_length=32)
    reasonForVisit = serializers.CharField(max_length=2000)

    def validate_fullName(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('Full name is required')
        return v

    def validate_dateOfBirth(self, v):
        return _clean(v)

    def validate_contactNumber(self, v):
        return _clean(v)

    def validate_reasonForVisit(self, v):
        return _clean(v)

    def to_fields(self) -> dict:
        vd = self.validated_data
        return {
            'full_name': vd['fullName'],
            'date_of_birth': vd['dateOfBirth'],
            'contact_number': vd['contactNumber'],
            'reason_for_visit': vd['reasonForVisit'],
        }
