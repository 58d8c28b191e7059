"""
URL mappings for the clinic API.

Paths carry no trailing slash, matching the front-end's endpoint table.
"""
from django.urls import path, include

from .views import health
from .views import medicines
from .views import patients
from .views import prescriptions
from .views import queue
from .views.auth import login_view
from .views.dashboard import admin_dashboard, clear_view, restore_view

urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz, name='healthz'),
    path('api/auth/login', login_view, name='login_view'),
    # Registration and patients
    path('api/patients/register', patients.patient_register, name='patient_register'),
    path('api/patients', patients.list_patients),
    path('api/patients/<str:patient_id>', patients.patient_detail),
    # Queue board and admin queue actions
    path('api/queue/board', queue.queue_board, name='queue_board'),
    path('api/admin/dashboard', admin_dashboard, name='admin_dashboard'),
    path('api/admin/dashboard/clear-view', clear_view),
    path('api/admin/dashboard/restore-view', restore_view),
    path('api/admin/queue/update-status', queue.update_status),
    path('api/admin/queue/approve', queue.approve_entry),
    path('api/admin/queue/done', queue.done_entry),
    path('api/admin/queue/cancel', queue.cancel_entry),
    path('api/admin/queue/reorder', queue.reorder_queue),
    path('api/admin/queue/move', queue.move_entry),
    # Prescriptions and pharmacy
    path('api/prescriptions', prescriptions.list_prescriptions),
    path('api/prescriptions/create', prescriptions.create_prescription),
    path('api/pharmacy/worklist', prescriptions.pharmacy_worklist),
    path('api/pharmacy/dispense', prescriptions.dispense),
    # Medicine catalog and orders
    path('api/medicines', medicines.list_medicines),
    path('api/medicines/categories', medicines.medicine_categories),
    path('api/medicines/orders', medicines.create_order),
    path('api/medicines/orders/collect', medicines.collect_order),
]
