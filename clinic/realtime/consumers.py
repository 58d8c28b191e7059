import json

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from clinic.services.notify import UPDATES_GROUP
from clinic.services.queue import board_snapshot
from clinic.stores import get_stores


def _board():
    return board_snapshot(get_stores())


class QueueBoardConsumer(AsyncWebsocketConsumer):
    """Pushes the whole queue board on connect and after every change."""
    GROUP = UPDATES_GROUP

    async def connect(self):
        await self.channel_layer.group_add(self.GROUP, self.channel_name)
        await self.accept()
        await self.send_board('connected')

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.GROUP, self.channel_name)

    async def clinic_changed(self, event):
        # event: {"type": "clinic.changed", "kind": "...", "ts": "..."}
        await self.send_board(event.get('kind', 'changed'))

    async def send_board(self, reason: str):
        board = await database_sync_to_async(_board)()
        await self.send(json.dumps({'type': 'queue.board', 'reason': reason, 'data': board}))
