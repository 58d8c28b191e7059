from rest_framework import serializers


class MedicineListQuerySerializer(serializers.Serializer):
    category = serializers.CharField(max_length=100, required=False, allow_blank=True)
    q = serializers.CharField(max_length=100, required=False, allow_blank=True)


class OrderLineSerializer(serializers.Serializer):
    medicineId = serializers.CharField(max_length=64)
    quantity = serializers.IntegerField(min_value=1, max_value=999)


class OrderCreateSerializer(serializers.Serializer):
    # Empty carts are rejected by the order service with its own message
    lines = OrderLineSerializer(many=True)
    patientId = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)

    def cart(self) -> list[dict]:
        return [
            {'medicine_id': line['medicineId'], 'quantity': line['quantity']}
            for line in self.validated_data['lines']
        ]


class OrderIdSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=64)
