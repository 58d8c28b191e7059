"""
Relay Firebase change events to WebSocket subscribers.

Writes that bypass this API (another client writing to the tree
directly) do not go through the services layer, so nobody broadcasts
them.  This command listens on the database's event stream and turns
every ``put``/``patch`` into a ``clinic.changed`` event.  It reconnects
when the stream drops.
"""
import time

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from clinic.exceptions import StoreError
from clinic.services.notify import broadcast_change
from clinic.stores.firebase import FirebaseTree

WATCHED = ('queue', 'patients', 'prescriptions', 'medicine_orders')


class Command(BaseCommand):
    help = "Stream Firebase changes and rebroadcast them to queue board subscribers."

    def add_arguments(self, parser):
        parser.add_argument('--reconnect-delay', type=float, default=5.0)
        parser.add_argument('--once', action='store_true', help='exit when the stream closes instead of reconnecting')

    def handle(self, *args, **opts):
        if settings.CLINIC_BACKEND != 'tree':
            raise CommandError("relay_tree_events needs CLINIC_BACKEND=tree")
        tree = FirebaseTree(settings.FIREBASE_DATABASE_URL, auth=settings.FIREBASE_AUTH,
                            timeout=settings.FIREBASE_TIMEOUT)
        while True:
            try:
                relayed = self.relay(tree)
                self.stdout.write(f"stream closed after {relayed} events")
            except StoreError as e:
                self.stderr.write(f"stream error: {e}")
            if opts['once']:
                return
            time.sleep(opts['reconnect_delay'])

    def relay(self, tree: FirebaseTree) -> int:
        relayed = 0
        for event in tree.stream(''):
            collection = event.path.strip('/').split('/', 1)[0]
            # The first event carries the whole tree at path "/"
            if collection and collection not in WATCHED:
                continue
            broadcast_change('tree_' + event.event, path=event.path)
            relayed += 1
        return relayed
