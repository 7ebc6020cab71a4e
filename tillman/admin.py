"""
Tillman Admin — read-only views for production debugging.

- Location: list + edit
- InventoryRecord: read-only (subject, location, quantity, reserved, available)
  with a "replay ledger" action
- StockMovement: read-only audit trail
- Sale: read-only with lines and payment log inline
"""

import logging

from django.contrib import admin, messages
from django.utils.translation import gettext_lazy as _

from tillman.models import InventoryRecord, Location, Payment, Sale, SaleLine, StockMovement
from tillman.services.ledger import StockLedger

logger = logging.getLogger(__name__)


class ReadOnlyAdminMixin:
    """Stock and sales only change through the services."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =========================================================================
# LOCATION ADMIN
# =========================================================================

@admin.register(Location)
class LocationAdmin(admin.ModelAdmin):
    """Location admin — editable."""

    list_display = ['code', 'name', 'tenant_id', 'is_active', 'is_default']
    list_filter = ['tenant_id', 'is_active']
    search_fields = ['code', 'name']
    readonly_fields = ['created_at', 'updated_at']


# =========================================================================
# INVENTORY RECORD ADMIN (read-only)
# =========================================================================

@admin.register(InventoryRecord)
class InventoryRecordAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['subject_id', 'location', 'quantity', 'reserved_quantity',
                    'available_display', 'reorder_point', 'is_active', 'last_counted_at']
    list_filter = ['tenant_id', 'location', 'is_active']
    search_fields = ['subject_id']
    readonly_fields = ['tenant_id', 'subject_id', 'location', 'quantity', 'reserved_quantity',
                       'reorder_point', 'reorder_quantity', 'max_stock_level', 'unit_cost',
                       'last_counted_at', 'is_active', 'version', 'metadata',
                       'created_at', 'updated_at']
    actions = ['replay_ledger']

    @admin.display(description=_('Available'))
    def available_display(self, obj):
        return obj.available_quantity

    @admin.action(description=_('Replay ledger for selected records'))
    def replay_ledger(self, request, queryset):
        broken = []
        for record in queryset:
            result = StockLedger.replay(record.pk, record.tenant_id)
            if not result.consistent:
                broken.append(f"{record.subject_id}@{record.location_id}")

        if broken:
            logger.warning("replay_ledger: %d inconsistent record(s)", len(broken))
            self.message_user(
                request,
                _('Ledger mismatch: {records}').format(records=', '.join(broken)),
                level=messages.ERROR,
            )
        else:
            self.message_user(
                request,
                _('{count} record(s) consistent with their ledger.').format(count=queryset.count()),
            )


# =========================================================================
# MOVEMENT ADMIN (read-only audit trail)
# =========================================================================

@admin.register(StockMovement)
class StockMovementAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Immutable audit trail."""

    list_display = ['timestamp', 'record', 'movement_type', 'delta',
                    'before_quantity', 'after_quantity', 'reason_code', 'reference', 'actor']
    list_filter = ['movement_type', 'is_correction', 'timestamp']
    search_fields = ['reference', 'reason_code', 'record__subject_id']
    readonly_fields = ['record', 'tenant_id', 'movement_type', 'delta', 'before_quantity',
                       'after_quantity', 'reason_code', 'reason_text', 'reference',
                       'is_correction', 'actor', 'metadata', 'timestamp']
    date_hierarchy = 'timestamp'


# =========================================================================
# SALE ADMIN (read-only)
# =========================================================================

class SaleLineInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = SaleLine
    extra = 0
    readonly_fields = ['position', 'subject_id', 'quantity', 'unit_price', 'line_discount', 'line_total']


class PaymentInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = Payment
    extra = 0
    readonly_fields = ['sequence', 'kind', 'method', 'amount', 'tendered_amount',
                       'card_last4', 'card_brand', 'check_number', 'reference',
                       'created_at', 'removed_at']


@admin.register(Sale)
class SaleAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['number', 'location', 'status', 'total', 'actor', 'created_at', 'completed_at']
    list_filter = ['status', 'location', 'tenant_id']
    search_fields = ['number', 'lines__subject_id']
    readonly_fields = ['tenant_id', 'number', 'location', 'status', 'actor',
                       'subtotal', 'discount_amount', 'tax_amount', 'total',
                       'tendered_amount', 'change_amount', 'void_reason', 'abort_reason',
                       'notes', 'metadata', 'created_at', 'updated_at',
                       'completed_at', 'voided_at', 'aborted_at']
    inlines = [SaleLineInline, PaymentInline]
    date_hierarchy = 'created_at'
