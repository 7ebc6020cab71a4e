"""
Initial migration for Tillman models.
"""

from decimal import Decimal
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    """Create Tillman models: Location, InventoryRecord, StockMovement, Sale, SaleLine, Payment."""

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Location',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('code', models.SlugField(help_text='Unique per tenant (e.g. main, warehouse)', verbose_name='Code')),
                ('name', models.CharField(max_length=100, verbose_name='Name')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
                ('is_default', models.BooleanField(default=False, help_text='Used when a call does not name a location.', verbose_name='Default location')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='Metadata')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Location',
                'verbose_name_plural': 'Locations',
                'ordering': ['tenant_id', 'code'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant_id', 'code'), name='unique_location_code_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='InventoryRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('subject_id', models.CharField(help_text='Product or variant identifier', max_length=64, verbose_name='Subject')),
                ('quantity', models.IntegerField(default=0, verbose_name='Quantity on hand')),
                ('reserved_quantity', models.IntegerField(default=0, verbose_name='Reserved')),
                ('reorder_point', models.IntegerField(blank=True, help_text='Restock recommended when available drops to this value', null=True, verbose_name='Reorder point')),
                ('reorder_quantity', models.IntegerField(blank=True, null=True, verbose_name='Reorder quantity')),
                ('max_stock_level', models.IntegerField(blank=True, null=True, verbose_name='Max stock level')),
                ('unit_cost', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, verbose_name='Location cost price')),
                ('last_counted_at', models.DateTimeField(blank=True, null=True, verbose_name='Last counted at')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
                ('version', models.PositiveIntegerField(default=0, editable=False)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('location', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='records', to='tillman.location', verbose_name='Location')),
            ],
            options={
                'verbose_name': 'Inventory record',
                'verbose_name_plural': 'Inventory records',
                'ordering': ['subject_id', 'location_id'],
                'indexes': [
                    models.Index(fields=['tenant_id', 'subject_id'], name='tillman_rec_tenant_subj_idx'),
                    models.Index(fields=['location', 'is_active'], name='tillman_rec_loc_active_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('subject_id', 'location'), name='unique_record_subject_location'),
                    models.CheckConstraint(condition=models.Q(('quantity__gte', 0)), name='record_quantity_non_negative'),
                    models.CheckConstraint(condition=models.Q(('reserved_quantity__gte', 0), ('reserved_quantity__lte', models.F('quantity'))), name='record_reserved_within_quantity'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockMovement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64)),
                ('movement_type', models.CharField(choices=[('adjustment', 'Adjustment'), ('transfer-out', 'Transfer out'), ('transfer-in', 'Transfer in'), ('sale', 'Sale'), ('purchase-receipt', 'Purchase receipt'), ('return', 'Return'), ('damage', 'Damage'), ('expired', 'Expired')], db_index=True, max_length=20, verbose_name='Type')),
                ('delta', models.IntegerField(help_text='Positive = in, Negative = out', verbose_name='Delta')),
                ('before_quantity', models.IntegerField(verbose_name='Before')),
                ('after_quantity', models.IntegerField(verbose_name='After')),
                ('reason_code', models.CharField(help_text='Required. E.g. "count", "damaged", "sale"', max_length=50, verbose_name='Reason code')),
                ('reason_text', models.CharField(blank=True, default='', max_length=255, verbose_name='Reason')),
                ('reference', models.CharField(blank=True, db_index=True, default='', help_text='Sale number, transfer id or purchase order id', max_length=64, verbose_name='External reference')),
                ('is_correction', models.BooleanField(default=False, help_text='Reconciliation count that set quantity directly', verbose_name='Correction')),
                ('actor', models.CharField(blank=True, default='', max_length=64, verbose_name='Actor')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='Metadata')),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name='Timestamp')),
                ('record', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='tillman.inventoryrecord', verbose_name='Inventory record')),
            ],
            options={
                'verbose_name': 'Stock movement',
                'verbose_name_plural': 'Stock movements',
                'ordering': ['timestamp', 'pk'],
                'indexes': [
                    models.Index(fields=['record', 'timestamp'], name='tillman_mov_record_ts_idx'),
                    models.Index(fields=['tenant_id', 'timestamp'], name='tillman_mov_tenant_ts_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('after_quantity', models.F('before_quantity') + models.F('delta'))), name='movement_after_equals_before_plus_delta'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Sale',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64)),
                ('number', models.CharField(help_text='SALE-YYYYMMDD-NNNN', max_length=40, verbose_name='Sale number')),
                ('status', models.CharField(choices=[('draft', 'Draft'), ('priced', 'Priced'), ('stock_reserved', 'Stock reserved'), ('payments_collected', 'Payments collected'), ('completed', 'Completed'), ('aborted', 'Aborted'), ('voided', 'Voided')], db_index=True, default='stock_reserved', max_length=20, verbose_name='Status')),
                ('actor', models.CharField(blank=True, default='', max_length=64, verbose_name='Sales person')),
                ('subtotal', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Subtotal')),
                ('discount_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Order discount')),
                ('tax_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Tax')),
                ('total', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Total')),
                ('tendered_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('change_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('void_reason', models.CharField(blank=True, default='', max_length=255)),
                ('abort_reason', models.CharField(blank=True, default='', max_length=255)),
                ('notes', models.TextField(blank=True, default='')),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('voided_at', models.DateTimeField(blank=True, null=True)),
                ('aborted_at', models.DateTimeField(blank=True, null=True)),
                ('location', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='sales', to='tillman.location', verbose_name='Location')),
            ],
            options={
                'verbose_name': 'Sale',
                'verbose_name_plural': 'Sales',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['tenant_id', 'status'], name='tillman_sale_tenant_st_idx'),
                    models.Index(fields=['location', 'created_at'], name='tillman_sale_loc_created_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant_id', 'number'), name='unique_sale_number_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SaleLine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('position', models.PositiveIntegerField(default=0)),
                ('subject_id', models.CharField(max_length=64, verbose_name='Subject')),
                ('quantity', models.PositiveIntegerField(verbose_name='Quantity')),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Unit price')),
                ('line_discount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Line discount')),
                ('line_total', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Line total')),
                ('sale', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lines', to='tillman.sale')),
            ],
            options={
                'verbose_name': 'Sale line',
                'verbose_name_plural': 'Sale lines',
                'ordering': ['sale', 'position'],
            },
        ),
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sequence', models.PositiveIntegerField()),
                ('kind', models.CharField(choices=[('payment', 'Payment'), ('refund', 'Refund')], default='payment', max_length=10)),
                ('method', models.CharField(choices=[('cash', 'Cash'), ('card', 'Card'), ('check', 'Check'), ('gift_card', 'Gift card'), ('store_credit', 'Store credit'), ('other', 'Other')], max_length=20)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('tendered_amount', models.DecimalField(blank=True, decimal_places=2, help_text='Cash handed over; change = tendered - amount', max_digits=12, null=True)),
                ('card_last4', models.CharField(blank=True, default='', max_length=4)),
                ('card_brand', models.CharField(blank=True, default='', max_length=20)),
                ('check_number', models.CharField(blank=True, default='', max_length=30)),
                ('reference', models.CharField(blank=True, default='', max_length=64)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('removed_at', models.DateTimeField(blank=True, null=True)),
                ('sale', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='payments', to='tillman.sale')),
            ],
            options={
                'verbose_name': 'Payment',
                'verbose_name_plural': 'Payments',
                'ordering': ['sale', 'sequence'],
                'constraints': [
                    models.UniqueConstraint(fields=('sale', 'sequence'), name='unique_payment_sequence_per_sale'),
                ],
            },
        ),
    ]
