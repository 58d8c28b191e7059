# clinic/management/commands/seed_medicines.py
from decimal import Decimal

from django.core.management.base import BaseCommand

from clinic.stores import get_stores

CATALOG = [
    # name, category, price, in_stock, description, dosage, frequency, duration
    ("Paracetamol 500mg", "Pain Relief", "5", True, "For fever and mild pain", "500mg", "3 times daily", "3 days"),
    ("Ibuprofen 400mg", "Pain Relief", "8", True, "Anti-inflammatory pain relief", "400mg", "2 times daily", "5 days"),
    ("Amoxicillin 250mg", "Antibiotic", "15", True, "Broad-spectrum antibiotic", "250mg", "3 times daily", "7 days"),
    ("Cetirizine 10mg", "Allergy", "6", True, "Antihistamine for allergies", "10mg", "once daily", "5 days"),
    ("Omeprazole 20mg", "Digestive", "12", True, "Reduces stomach acid", "20mg", "once daily before breakfast", "14 days"),
    ("Loratadine 10mg", "Allergy", "7", False, "24-hour allergy relief", "10mg", "once daily", "5 days"),
    ("Vitamin C 1000mg", "Supplement", "10", True, "Immune system support", "1000mg", "once daily", "30 days"),
    ("Cough Syrup", "Cold & Flu", "9", True, "Relieves cough and throat irritation", "10ml", "3 times daily", "5 days"),
]


class Command(BaseCommand):
    help = "Load the demo medicine catalog into the configured backend (idempotent by name)."

    def add_arguments(self, parser):
        parser.add_argument('--stock', type=int, default=100, help='stock count for in-stock medicines')

    def handle(self, *args, **opts):
        catalog = get_stores().medicines
        existing = {m.name.lower() for m in catalog.list()}
        created = 0
        for name, category, price, in_stock, description, dosage, frequency, duration in CATALOG:
            if name.lower() in existing:
                self.stdout.write(f"skip: {name}")
                continue
            catalog.create(
                name=name, category=category, price=Decimal(price), in_stock=in_stock,
                stock=opts['stock'] if in_stock else 0, description=description,
                dosage=dosage, frequency=frequency, duration=duration,
            )
            created += 1
            self.stdout.write(self.style.SUCCESS(f"ok: {name}"))
        self.stdout.write(self.style.SUCCESS(f"{created} medicines added, {len(CATALOG) - created} already present."))
