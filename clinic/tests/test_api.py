"""
Integration tests for the clinic API on the relational backend.

These tests drive the endpoints the front-end uses: registration, the
public queue board, the admin dashboard and queue actions, prescriptions
and the pharmacy worklist, and the medicine catalog with orders.  They
use Django REST Framework's APIClient within the APITestCase base class.

To run the tests:

```
pytest -q clinic/tests
```
"""
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from clinic.models import AuditEvent, Medicine, Patient, QueueEntry


def registration(name="Alice Tan", **overrides):
    data = {
        "fullName": name,
        "dateOfBirth": "1990-04-12",
        "contactNumber": "0812-1111-2222",
        "reasonForVisit": "Fever for two days",
    }
    data.update(overrides)
    return data


class ClinicAPITests(APITestCase):
    def setUp(self) -> None:
        self.client = APIClient()

    def register(self, name="Alice Tan", **overrides):
        resp = self.client.post(reverse("patient_register"), registration(name, **overrides), format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.data)
        return resp.data

    def board(self):
        resp = self.client.get(reverse("queue_board"))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        return resp.data["data"]

    # ------------------------------------------------------------------
    # Registration and queue board
    # ------------------------------------------------------------------
    def test_registration_issues_increasing_queue_numbers(self):
        first = self.register("Alice Tan")
        second = self.register("Budi Santoso")
        self.assertEqual(second["queueNumber"], first["queueNumber"] + 1)
        self.assertEqual(Patient.objects.count(), 2)
        self.assertEqual(QueueEntry.objects.count(), 2)
        entry = QueueEntry.objects.get(pk=second["entryId"])
        self.assertEqual(entry.patient_id, second["patientId"])
        self.assertEqual(entry.status, "waiting")
        self.assertEqual(entry.estimated_wait_time, second["queueNumber"] * 15)

    def test_registration_with_missing_field_writes_nothing(self):
        resp = self.client.post(reverse("patient_register"), registration(contactNumber=""), format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(resp.data["ok"])
        self.assertIn("contactNumber", resp.data["error"]["message"])
        self.assertEqual(Patient.objects.count(), 0)
        self.assertEqual(QueueEntry.objects.count(), 0)

    def test_registration_strips_markup(self):
        data = self.register("<b>Alice</b> Tan")
        self.assertEqual(Patient.objects.get(pk=data["patientId"]).full_name, "Alice Tan")

    def test_ampersands_are_stored_as_typed(self):
        Medicine.objects.create(id="m-cold", name="Cold & Flu Relief", category="Cold & Flu",
                                price=Decimal("12"), dosage="10ml", frequency="3 times daily", duration="5 days")
        alice = self.register(reasonForVisit="cough & fever")
        self.assertEqual(Patient.objects.get(pk=alice["patientId"]).reason_for_visit, "cough & fever")

        resp = self.client.post("/api/prescriptions/create", {
            "patientId": alice["patientId"],
            "diagnosis": "Cold & cough",
            "medicines": [{"medicineName": "Cold & Flu Relief"}],
        }, format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.data)
        line = resp.data["data"]["medicines"][0]
        self.assertEqual(line["medicineName"], "Cold & Flu Relief")
        self.assertEqual(line["dosage"], "10ml")
        self.assertEqual(resp.data["data"]["diagnosis"], "Cold & cough")

    def test_board_after_approving_alice(self):
        alice = self.register("Alice Tan")
        budi = self.register("Budi Santoso")

        resp = self.client.post("/api/admin/queue/approve", {"id": alice["entryId"]}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["status"], "being_examined")

        board = self.board()
        examined = [row for row in board if row["statusLabel"] == "Being Examined"]
        self.assertEqual(len(examined), 1)
        self.assertEqual(examined[0]["initials"], "A.T.")
        self.assertIsNone(examined[0]["estimatedWait"])
        waiting = [row for row in board if row["status"] == "waiting"]
        self.assertEqual([row["id"] for row in waiting], [budi["entryId"]])
        self.assertEqual(waiting[0]["estimatedWait"], budi["queueNumber"] * 15)

    def test_board_reports_refresh_interval(self):
        resp = self.client.get(reverse("queue_board"))
        self.assertEqual(resp.data["refreshSeconds"], 30)
        self.assertEqual(resp.data["data"], [])

    def test_done_and_cancel_leave_the_board(self):
        a = self.register("Alice Tan")
        b = self.register("Budi Santoso")
        self.client.post("/api/admin/queue/done", {"id": a["entryId"]}, format="json")
        self.client.post("/api/admin/queue/cancel", {"id": b["entryId"]}, format="json")

        self.assertEqual(self.board(), [])
        self.assertEqual(QueueEntry.objects.get(pk=a["entryId"]).status, "done")
        self.assertFalse(QueueEntry.objects.filter(pk=b["entryId"]).exists())
        self.assertTrue(AuditEvent.objects.filter(action="queue_cancel", object_id=b["entryId"]).exists())

    def test_update_status_rejects_unknown_status(self):
        a = self.register()
        resp = self.client.post("/api/admin/queue/update-status", {"id": a["entryId"], "status": "lost"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_status_for_unknown_entry_is_404(self):
        resp = self.client.post("/api/admin/queue/update-status", {"id": "nope", "status": "done"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["error"]["code"], "not_found")

    def test_reorder_and_move(self):
        a = self.register("Alice Tan")
        b = self.register("Budi Santoso")
        c = self.register("Citra Dewi")

        resp = self.client.post("/api/admin/queue/reorder", {"ids": [c["entryId"], a["entryId"], b["entryId"]]}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual([row["id"] for row in self.board()], [c["entryId"], a["entryId"], b["entryId"]])
        self.assertEqual([row["queueNumber"] for row in self.board()], [1, 2, 3])

        resp = self.client.post("/api/admin/queue/move", {"id": c["entryId"], "direction": "down"}, format="json")
        self.assertTrue(resp.data["moved"])
        self.assertEqual([row["id"] for row in resp.data["data"]], [a["entryId"], c["entryId"], b["entryId"]])

        resp = self.client.post("/api/admin/queue/move", {"id": a["entryId"], "direction": "up"}, format="json")
        self.assertFalse(resp.data["moved"])

    def test_reorder_with_duplicate_ids_is_rejected(self):
        a = self.register()
        resp = self.client.post("/api/admin/queue/reorder", {"ids": [a["entryId"], a["entryId"]]}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    # ------------------------------------------------------------------
    # Admin login and dashboard
    # ------------------------------------------------------------------
    def test_admin_login_is_audited(self):
        ok = self.client.post(reverse("login_view"), {"username": "admin", "password": "admin"}, format="json")
        self.assertEqual(ok.status_code, status.HTTP_200_OK)
        self.assertTrue(ok.data["ok"])

        bad = self.client.post(reverse("login_view"), {"username": "admin", "password": "wrong"}, format="json")
        self.assertEqual(bad.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(bad.data["ok"])

        results = list(AuditEvent.objects.filter(action="admin_login").order_by("id").values_list("detail", flat=True))
        self.assertEqual([d["result"] for d in results], ["success", "failed"])

    def test_dashboard_counts_and_clear_view(self):
        a = self.register("Alice Tan")
        self.register("Budi Santoso")
        self.client.post("/api/admin/queue/approve", {"id": a["entryId"]}, format="json")

        resp = self.client.get(reverse("admin_dashboard"))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        data = resp.data["data"]
        self.assertEqual(data["counts"], {"waiting": 1, "beingExamined": 1, "done": 0, "total": 2})
        self.assertEqual(data["queue"][0]["patientName"], "Alice Tan")

        self.client.post("/api/admin/dashboard/clear-view")
        self.assertEqual(self.client.get(reverse("admin_dashboard")).data["data"]["queue"], [])
        # clearing the view deletes nothing
        self.assertEqual(len(self.board()), 2)

        c = self.register("Citra Dewi")
        queue = self.client.get(reverse("admin_dashboard")).data["data"]["queue"]
        self.assertEqual([row["id"] for row in queue], [c["entryId"]])

        self.client.post("/api/admin/dashboard/restore-view")
        self.assertEqual(self.client.get(reverse("admin_dashboard")).data["data"]["counts"]["total"], 3)

    # ------------------------------------------------------------------
    # Prescriptions and pharmacy
    # ------------------------------------------------------------------
    def test_prescription_flow_through_pharmacy(self):
        call_command("seed_medicines", stdout=StringIO())
        alice = self.register("Alice Tan")
        resp = self.client.post("/api/prescriptions/create", {
            "patientId": alice["patientId"],
            "diagnosis": "Influenza",
            "doctorNotes": "Rest and fluids",
            "medicines": [
                {"medicineName": "Paracetamol 500mg"},
                {"medicineName": "", "dosage": "ignored"},
                {"medicineName": "Ginger tea", "dosage": "1 cup"},
            ],
        }, format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.data)
        rx = resp.data["data"]
        self.assertEqual([m["medicineName"] for m in rx["medicines"]], ["Paracetamol 500mg", "Ginger tea"])
        self.assertEqual(rx["medicines"][0]["dosage"], "500mg")
        self.assertEqual(rx["status"], "pending")

        worklist = self.client.get("/api/pharmacy/worklist").data["data"]
        self.assertEqual([w["id"] for w in worklist], [rx["id"]])
        self.assertEqual(worklist[0]["patientName"], "Alice Tan")
        self.assertEqual(worklist[0]["contactNumber"], "0812-1111-2222")

        resp = self.client.post("/api/pharmacy/dispense", {"id": rx["id"]}, format="json")
        self.assertEqual(resp.data["status"], "dispensed")
        self.assertEqual(self.client.get("/api/pharmacy/worklist").data["data"], [])
        dispensed = self.client.get("/api/prescriptions?status=dispensed").data["data"]
        self.assertEqual([p["id"] for p in dispensed], [rx["id"]])

    def test_prescription_without_medicines_is_kept(self):
        alice = self.register()
        resp = self.client.post("/api/prescriptions/create", {"patientId": alice["patientId"], "diagnosis": "Check-up"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data["data"]["medicines"], [])
        self.assertEqual(len(self.client.get("/api/prescriptions?status=pending").data["data"]), 1)

    def test_prescription_for_unknown_patient_is_404(self):
        resp = self.client.post("/api/prescriptions/create", {"patientId": "ghost", "diagnosis": "Flu"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_patient_list_and_detail(self):
        alice = self.register()
        listing = self.client.get("/api/patients").data["data"]
        self.assertEqual([p["id"] for p in listing], [alice["patientId"]])
        detail = self.client.get(f"/api/patients/{alice['patientId']}")
        self.assertEqual(detail.data["data"]["reasonForVisit"], "Fever for two days")
        self.assertEqual(self.client.get("/api/patients/ghost").status_code, status.HTTP_404_NOT_FOUND)

    # ------------------------------------------------------------------
    # Medicine catalog and orders
    # ------------------------------------------------------------------
    def test_catalog_search_and_categories(self):
        call_command("seed_medicines", stdout=StringIO())
        # seeding twice adds nothing
        call_command("seed_medicines", stdout=StringIO())
        self.assertEqual(Medicine.objects.count(), 8)

        cats = self.client.get("/api/medicines/categories").data["data"]
        self.assertEqual(cats[0], "All")
        self.assertIn("Cold & Flu", cats)

        allergy = self.client.get("/api/medicines", {"category": "Allergy"}).data["data"]
        self.assertEqual({m["name"] for m in allergy}, {"Cetirizine 10mg", "Loratadine 10mg"})
        found = self.client.get("/api/medicines", {"q": "stomach"}).data["data"]
        self.assertEqual([m["name"] for m in found], ["Omeprazole 20mg"])

    def test_order_snapshot_total_and_collect(self):
        call_command("seed_medicines", stdout=StringIO())
        para = Medicine.objects.get(name="Paracetamol 500mg")
        ibu = Medicine.objects.get(name="Ibuprofen 400mg")

        resp = self.client.post("/api/medicines/orders", {"lines": [
            {"medicineId": para.id, "quantity": 2},
            {"medicineId": ibu.id, "quantity": 1},
        ]}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.data)
        self.assertEqual(Decimal(resp.data["total"]), Decimal("18"))
        first_number = resp.data["orderNumber"]

        # later price changes do not touch the stored order
        Medicine.objects.filter(pk=para.id).update(price=Decimal("50"))
        second = self.client.post("/api/medicines/orders", {"lines": [{"medicineId": ibu.id, "quantity": 1}]}, format="json")
        self.assertEqual(second.data["orderNumber"], first_number + 1)

        collected = self.client.post("/api/medicines/orders/collect", {"id": resp.data["data"]["id"]}, format="json")
        self.assertEqual(collected.data["data"]["status"], "collected")
        self.assertIsNotNone(collected.data["data"]["collectedAt"])
        self.assertEqual(Decimal(collected.data["data"]["total"]), Decimal("18"))

    def test_order_validation(self):
        call_command("seed_medicines", stdout=StringIO())
        empty = self.client.post("/api/medicines/orders", {"lines": []}, format="json")
        self.assertEqual(empty.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(empty.data["error"]["message"]["lines"][0], "Please add medicines to your cart")

        lora = Medicine.objects.get(name="Loratadine 10mg")
        out = self.client.post("/api/medicines/orders", {"lines": [{"medicineId": lora.id, "quantity": 1}]}, format="json")
        self.assertEqual(out.status_code, status.HTTP_400_BAD_REQUEST)

        zero = self.client.post("/api/medicines/orders", {"lines": [{"medicineId": lora.id, "quantity": 0}]}, format="json")
        self.assertEqual(zero.status_code, status.HTTP_400_BAD_REQUEST)

    def test_healthz(self):
        resp = self.client.get(reverse("healthz"))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.json()["backend"], "relational")


def test_sequence_outage_is_reported_as_503(monkeypatch, db):
    from clinic.exceptions import SequenceUnavailable
    from clinic.stores.relational import RelationalSequenceIssuer

    def unavailable(self, counter_name):
        raise SequenceUnavailable(f"could not issue {counter_name}: database is locked")
    monkeypatch.setattr(RelationalSequenceIssuer, "issue_sequence_number", unavailable)

    client = APIClient()
    resp = client.post("/api/patients/register", registration(), format="json")
    assert resp.status_code == 503
    assert resp.data["error"]["code"] == "sequence_unavailable"
    assert Patient.objects.count() == 0


def test_store_failure_is_reported_as_502(monkeypatch, db):
    from clinic.exceptions import StoreError
    from clinic.stores.relational import RelationalQueueStore

    def broken(self):
        raise StoreError("connection reset")
    monkeypatch.setattr(RelationalQueueStore, "list_active", broken)

    resp = APIClient().get("/api/queue/board")
    assert resp.status_code == 502
    assert resp.data == {"ok": False, "error": {"code": "store_error", "message": "connection reset"}}


def test_lookup_failure_is_reported_as_502(monkeypatch, db):
    from django.db import DatabaseError

    def broken(*args, **kwargs):
        raise DatabaseError("connection lost")
    monkeypatch.setattr(QueueEntry.objects, "filter", broken)

    resp = APIClient().post("/api/admin/queue/approve", {"id": "any-entry"}, format="json")
    assert resp.status_code == 502
    assert resp.data["error"]["code"] == "store_error"
    assert "connection lost" in resp.data["error"]["message"]
