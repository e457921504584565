import decimal
import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

import sales.models


MONEY_MIN = [django.core.validators.MinValueValidator(decimal.Decimal('0.00'))]
SALE_TYPES = [('RETAIL', 'Retail'), ('WHOLESALE', 'Wholesale')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('inventory', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Sale',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('receipt_number', models.CharField(blank=True, db_index=True, max_length=100, null=True, unique=True)),
                ('customer_id', models.CharField(blank=True, db_index=True, max_length=100, null=True)),
                ('customer_name', models.CharField(blank=True, max_length=255, null=True)),
                ('staff_id', models.CharField(max_length=150)),
                ('sub_total', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), help_text='Sum of line items before discount', max_digits=12)),
                ('discount_amount', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=12, validators=MONEY_MIN)),
                ('total_amount', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), help_text='Amount due before any payment', max_digits=12, validators=MONEY_MIN)),
                ('cash_tendered', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=12)),
                ('paid_amount_cash', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=12)),
                ('paid_amount_cheque', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=12)),
                ('paid_amount_bank_transfer', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=12)),
                ('cheque_details', models.JSONField(blank=True, default=dict)),
                ('bank_transfer_details', models.JSONField(blank=True, default=dict)),
                ('change_given', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), help_text='Cash handed back at checkout', max_digits=12)),
                ('total_amount_paid', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), help_text='Sum of all retained payments', max_digits=12, validators=MONEY_MIN)),
                ('credit_settled', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), help_text='Return credit applied against the outstanding balance', max_digits=12, validators=MONEY_MIN)),
                ('exchange_charges', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), help_text='Exchanged value not covered by return credit', max_digits=12, validators=MONEY_MIN)),
                ('outstanding_balance', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=12, validators=MONEY_MIN)),
                ('initial_outstanding_balance', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), help_text='Balance right after checkout, kept for reporting', max_digits=12)),
                ('payment_summary', models.CharField(blank=True, max_length=500)),
                ('version', models.PositiveIntegerField(default=1)),
                ('notes', models.TextField(blank=True, null=True)),
                ('sale_date', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'sales',
                'ordering': ['-sale_date'],
                'indexes': [
                    models.Index(fields=['customer_id', 'sale_date'], name='sales_customer_date_idx'),
                    models.Index(fields=['outstanding_balance'], name='sales_outstanding_idx'),
                    models.Index(fields=['staff_id', 'sale_date'], name='sales_staff_date_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SaleItem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('line_number', models.PositiveIntegerField(default=0)),
                ('sale_type', models.CharField(choices=SALE_TYPES, default='RETAIL', max_length=20)),
                ('quantity', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('applied_price', models.DecimalField(decimal_places=2, max_digits=12, validators=MONEY_MIN)),
                ('returned_quantity', models.PositiveIntegerField(default=0)),
                ('is_offer_item', models.BooleanField(default=False)),
                ('product_name', models.CharField(blank=True, max_length=255)),
                ('product_sku', models.CharField(blank=True, max_length=100)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='sale_items', to='inventory.product')),
                ('sale', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='sales.sale')),
            ],
            options={
                'db_table': 'sales_items',
                'ordering': ['line_number'],
                'indexes': [
                    models.Index(fields=['sale', 'product'], name='sales_items_sale_prod_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('returned_quantity__lte', models.F('quantity'))), name='sale_item_returned_lte_quantity'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReturnTransaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('reference', models.CharField(max_length=50, unique=True)),
                ('return_date', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('staff_id', models.CharField(max_length=150)),
                ('customer_id', models.CharField(blank=True, max_length=100, null=True)),
                ('customer_name', models.CharField(blank=True, max_length=255, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('apply_credit_to_outstanding', models.BooleanField(default=True)),
                ('return_total_value', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=12)),
                ('exchange_total_value', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=12)),
                ('settle_outstanding_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('refund_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('amount_paid', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('payment_summary', models.CharField(blank=True, max_length=500, null=True)),
                ('change_given', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('cheque_details', models.JSONField(blank=True, default=dict)),
                ('bank_transfer_details', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('original_sale', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='returns', to='sales.sale')),
            ],
            options={
                'db_table': 'return_transactions',
                'ordering': ['-return_date'],
                'indexes': [
                    models.Index(fields=['original_sale', 'return_date'], name='returns_sale_date_idx'),
                ],
            },
            bases=(sales.models.ImmutableRecordMixin, models.Model),
        ),
        migrations.CreateModel(
            name='ReturnedItem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('sale_type', models.CharField(choices=SALE_TYPES, default='RETAIL', max_length=20)),
                ('quantity', models.PositiveIntegerField()),
                ('applied_price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('is_resellable', models.BooleanField(default=True)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='returned_lines', to='inventory.product')),
                ('return_transaction', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='returned_items', to='sales.returntransaction')),
                ('sale_item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='returns', to='sales.saleitem')),
            ],
            options={
                'db_table': 'return_transaction_returned_items',
            },
        ),
        migrations.CreateModel(
            name='ExchangedItem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('sale_type', models.CharField(choices=SALE_TYPES, default='RETAIL', max_length=20)),
                ('quantity', models.PositiveIntegerField()),
                ('applied_price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='exchanged_lines', to='inventory.product')),
                ('return_transaction', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='exchanged_items', to='sales.returntransaction')),
            ],
            options={
                'db_table': 'return_transaction_exchanged_items',
            },
        ),
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('position', models.PositiveIntegerField()),
                ('amount', models.DecimalField(decimal_places=2, help_text='Amount tendered', max_digits=12, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0.01'))])),
                ('change_given', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=12)),
                ('method', models.CharField(choices=[('CASH', 'Cash'), ('CHEQUE', 'Cheque'), ('BANK_TRANSFER', 'Bank Transfer'), ('RETURN_CREDIT', 'Return Credit')], max_length=20)),
                ('date', models.DateTimeField(default=django.utils.timezone.now)),
                ('staff_id', models.CharField(max_length=150)),
                ('notes', models.TextField(blank=True, null=True)),
                ('details', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('return_transaction', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='sales.returntransaction')),
                ('sale', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='additional_payments', to='sales.sale')),
            ],
            options={
                'db_table': 'sale_payments',
                'ordering': ['sale', 'position'],
                'indexes': [
                    models.Index(fields=['method', 'date'], name='payments_method_date_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('sale', 'position'), name='unique_sale_payment_position'),
                ],
            },
            bases=(sales.models.ImmutableRecordMixin, models.Model),
        ),
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('event_type', models.CharField(choices=[('sale.created', 'Sale Created'), ('payment.applied', 'Payment Applied'), ('return.processed', 'Return Processed'), ('stock.adjustment_failed', 'Stock Adjustment Failed'), ('ledger.integrity_failed', 'Ledger Integrity Failed'), ('ledger.repaired', 'Ledger Repaired')], db_index=True, max_length=50)),
                ('staff_id', models.CharField(blank=True, max_length=150, null=True)),
                ('event_data', models.JSONField(blank=True, default=dict, help_text='JSON data about the event')),
                ('description', models.TextField(blank=True, null=True)),
                ('timestamp', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('payment', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to='sales.payment')),
                ('return_transaction', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to='sales.returntransaction')),
                ('sale', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to='sales.sale')),
            ],
            options={
                'db_table': 'sales_audit_logs',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['event_type', 'timestamp'], name='audit_event_time_idx'),
                    models.Index(fields=['sale', 'timestamp'], name='audit_sale_time_idx'),
                ],
            },
            bases=(sales.models.ImmutableRecordMixin, models.Model),
        ),
    ]
