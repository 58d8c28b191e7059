"""
Django admin registrations for the relational backend's tables.

Only useful when ``CLINIC_BACKEND=relational``; the tree backend keeps
its data in Firebase and only the audit log lives here.
"""

from django.contrib import admin

from .models import (
    AuditEvent,
    Medicine,
    MedicineOrder,
    Patient,
    Prescription,
    QueueEntry,
    SequenceCounter,
)


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'full_name', 'contact_number', 'created_at')
    search_fields = ('id', 'full_name', 'contact_number')


@admin.register(QueueEntry)
class QueueEntryAdmin(admin.ModelAdmin):
    list_display = ('queue_number', 'patient', 'status', 'estimated_wait_time', 'created_at')
    list_filter = ('status',)


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'diagnosis', 'status', 'created_at')
    list_filter = ('status',)


@admin.register(Medicine)
class MedicineAdmin(admin.ModelAdmin):
    list_display = ('name', 'category', 'price', 'in_stock', 'stock')
    list_filter = ('category', 'in_stock')
    search_fields = ('name', 'description')


@admin.register(MedicineOrder)
class MedicineOrderAdmin(admin.ModelAdmin):
    list_display = ('order_number', 'total', 'status', 'patient', 'created_at')
    list_filter = ('status',)


admin.site.register(SequenceCounter)


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'actor', 'object_type', 'object_id', 'created_at')
    list_filter = ('action',)
