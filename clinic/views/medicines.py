"""
Medicine catalog and patient self-service orders.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status

from clinic.records import Medicine, MedicineOrder
from clinic.serializers.medicine import MedicineListQuerySerializer, OrderCreateSerializer, OrderIdSerializer
from clinic.services import orders as order_service
from clinic.stores import get_stores


def _medicine_payload(m: Medicine) -> dict:
    return {
        'id': m.id,
        'name': m.name,
        'category': m.category,
        'price': str(m.price),
        'inStock': m.in_stock,
        'stock': m.stock,
        'description': m.description,
        'dosage': m.dosage,
        'frequency': m.frequency,
        'duration': m.duration,
    }


def _order_payload(o: MedicineOrder) -> dict:
    return {
        'id': o.id,
        'orderNumber': o.order_number,
        'total': str(o.total),
        'status': o.status,
        'patientId': o.patient_id,
        'items': [
            {
                'medicineId': line.medicine_id,
                'medicineName': line.medicine_name,
                'unitPrice': str(line.unit_price),
                'quantity': line.quantity,
                'subtotal': str(line.subtotal),
            }
            for line in o.lines
        ],
        'createdAt': o.created_at.isoformat() if o.created_at else None,
        'collectedAt': o.collected_at.isoformat() if o.collected_at else None,
    }


@api_view(['GET'])
@permission_classes([AllowAny])
def list_medicines(request):
    q = MedicineListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items = order_service.filter_catalog(
        get_stores().medicines.list(),
        category=q.validated_data.get('category'),
        query=q.validated_data.get('q'),
    )
    return Response({'ok': True, 'data': [_medicine_payload(m) for m in items]})


@api_view(['GET'])
@permission_classes([AllowAny])
def medicine_categories(request):
    return Response({'ok': True, 'data': order_service.categories(get_stores().medicines.list())})


@api_view(['POST'])
@permission_classes([AllowAny])
def create_order(request):
    s = OrderCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    order = order_service.place_order(get_stores(), s.cart(), patient_id=s.validated_data.get('patientId'))
    return Response({
        'ok': True,
        'orderNumber': order.order_number,
        'total': str(order.total),
        'data': _order_payload(order),
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([AllowAny])
def collect_order(request):
    s = OrderIdSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    order = order_service.collect(get_stores(), s.validated_data['id'])
    return Response({'ok': True, 'data': _order_payload(order)})
