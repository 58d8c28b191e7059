import logging
from dataclasses import dataclass

from clinic.records import PATIENT_REQUIRED_FIELDS, QUEUE_COUNTER, Patient, QueueEntry
from clinic.services.notify import broadcast_change
from clinic.stores.base import Stores, require_fields

logger = logging.getLogger(__name__)


@dataclass
class Registration:
    patient: Patient
    entry: QueueEntry


def register_patient(stores: Stores, **fields) -> Registration:
    """Issue a queue number, write the patient, then the queue entry.

    Required fields are checked before anything is written.  On the
    relational backend the three writes share one transaction; on the
    tree backend a failure after the first write leaves it in place.
    """
    cleaned = require_fields(fields, PATIENT_REQUIRED_FIELDS)
    with stores.atomic():
        number = stores.issuer.issue_sequence_number(QUEUE_COUNTER)
        patient = stores.patients.create(**cleaned)
        entry = stores.queue.create(patient.id, number)
    logger.info('registered patient %s as queue number %s', patient.id, number)
    broadcast_change('registered', entryId=entry.id)
    return Registration(patient=patient, entry=entry)
