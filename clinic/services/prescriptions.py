import logging
from typing import Iterable, Optional, Sequence

from clinic.exceptions import MissingField
from clinic.records import DISPENSED, PENDING, Medicine, MedicineLine, Prescription
from clinic.services import projections
from clinic.services.notify import broadcast_change
from clinic.stores.base import Stores

logger = logging.getLogger(__name__)

PREFILL_FIELDS = ('dosage', 'frequency', 'duration')


def clean_lines(lines: Iterable[MedicineLine], catalog: Sequence[Medicine] = ()) -> list[MedicineLine]:
    """Drop lines without a medicine name and fill blanks from the catalog.

    A catalog medicine matches a line when the names agree ignoring case
    and surrounding whitespace.
    """
    by_name = {m.name.strip().lower(): m for m in catalog}
    cleaned = []
    for line in lines:
        name = (line.medicine_name or '').strip()
        if not name:
            continue
        values = {f: (getattr(line, f) or '').strip() for f in PREFILL_FIELDS}
        medicine = by_name.get(name.lower())
        if medicine is not None:
            for f in PREFILL_FIELDS:
                if not values[f]:
                    values[f] = getattr(medicine, f) or ''
        cleaned.append(MedicineLine(medicine_name=name, **values))
    return cleaned


def _needs_catalog(lines: Sequence[MedicineLine]) -> bool:
    return any(
        (line.medicine_name or '').strip() and not all((getattr(line, f) or '').strip() for f in PREFILL_FIELDS)
        for line in lines
    )


def create_prescription(stores: Stores, *, patient_id: str, diagnosis: str, notes: Optional[str] = '',
                        lines: Sequence[MedicineLine] = ()) -> Prescription:
    diagnosis = (diagnosis or '').strip()
    if not diagnosis:
        raise MissingField('diagnosis')
    if not (patient_id or '').strip():
        raise MissingField('patient_id')
    catalog = stores.medicines.list() if _needs_catalog(lines) else []
    prescription = stores.prescriptions.create(
        patient_id, diagnosis, (notes or '').strip(), clean_lines(lines, catalog)
    )
    logger.info('prescription %s written for patient %s (%d lines)',
                prescription.id, patient_id, len(prescription.medicines))
    broadcast_change('prescription_created', prescriptionId=prescription.id)
    return prescription


def dispense(stores: Stores, prescription_id: str) -> Prescription:
    """Mark dispensed; repeating it on a dispensed prescription is harmless."""
    prescription = stores.prescriptions.set_status(prescription_id, DISPENSED)
    logger.info('prescription %s dispensed', prescription_id)
    broadcast_change('prescription_dispensed', prescriptionId=prescription_id)
    return prescription


def list_prescriptions(stores: Stores, status: Optional[str] = None) -> list[dict]:
    items = stores.prescriptions.list_by_status(status) if status else stores.prescriptions.list_all()
    patients = stores.patients.get_many(p.patient_id for p in items)
    return [projections.prescription_row(p, patients.get(p.patient_id)) for p in items]


def pharmacy_worklist(stores: Stores) -> list[dict]:
    pending = stores.prescriptions.list_by_status(PENDING)
    patients = stores.patients.get_many(p.patient_id for p in pending)
    return projections.pharmacy_worklist(pending, patients)
