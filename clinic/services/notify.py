from django.utils import timezone
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

UPDATES_GROUP = 'clinic.updates'


def broadcast_change(kind: str, **extra) -> None:
    """Tell every board subscriber that the stores changed.

    Subscribers re-fetch and re-project; the event itself carries no data.
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    event = {'type': 'clinic.changed', 'kind': kind, 'ts': timezone.now().isoformat(), **extra}
    async_to_sync(channel_layer.group_send)(UPDATES_GROUP, event)
