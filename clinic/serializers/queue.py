from rest_framework import serializers

from clinic.records import QUEUE_STATUSES


class QueueEntryIdSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=64)


class QueueStatusSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=64)
    status = serializers.ChoiceField(choices=list(QUEUE_STATUSES))


class QueueReorderSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.CharField(max_length=64), allow_empty=False)


class QueueMoveSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=64)
    direction = serializers.ChoiceField(choices=['up', 'down'])
