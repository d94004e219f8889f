import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('pos', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Supplier',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('contact_person', models.CharField(blank=True, default='', max_length=100)),
                ('phone', models.CharField(blank=True, default='', max_length=50)),
                ('email', models.EmailField(blank=True, default='', max_length=254)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Material',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('sku', models.CharField(blank=True, max_length=50, null=True, unique=True)),
                ('stock_unit', models.CharField(default='kg', max_length=20)),
                ('recipe_unit', models.CharField(default='kg', max_length=20)),
                ('conversion_rate', models.DecimalField(decimal_places=6, default=1, help_text='Multiply a quantity in recipe units by this factor to get stock units', max_digits=15)),
                ('quantity', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('minimum_stock_level', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('maximum_stock_level', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('reorder_point', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('reorder_quantity', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('purchase_price', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('is_perishable', models.BooleanField(default=False)),
                ('shelf_life_days', models.PositiveIntegerField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='MaterialReceipt',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('receipt_code', models.CharField(max_length=50, unique=True)),
                ('quantity_received', models.DecimalField(decimal_places=4, max_digits=15)),
                ('unit_cost', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('received_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('expiry_date', models.DateField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='receipts', to='stock.material')),
                ('received_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='material_receipts', to=settings.AUTH_USER_MODEL)),
                ('supplier', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='receipts', to='stock.supplier')),
            ],
            options={
                'ordering': ['-received_at'],
            },
        ),
        migrations.CreateModel(
            name='StockBatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('batch_number', models.CharField(max_length=100, unique=True)),
                ('quantity', models.DecimalField(decimal_places=4, max_digits=15)),
                ('remaining_quantity', models.DecimalField(decimal_places=4, max_digits=15)),
                ('unit_cost', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('received_date', models.DateField(db_index=True, default=django.utils.timezone.localdate)),
                ('expiry_date', models.DateField(blank=True, db_index=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='batches', to='stock.material')),
                ('material_receipt', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='batch', to='stock.materialreceipt')),
                ('supplier', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='batches', to='stock.supplier')),
            ],
            options={
                'verbose_name_plural': 'stock batches',
                'ordering': ['received_date', 'id'],
                'indexes': [models.Index(fields=['material', 'received_date', 'id'], name='stock_batch_fifo_idx')],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('remaining_quantity__gte', 0)), name='stock_batch_remaining_not_negative'),
                    models.CheckConstraint(condition=models.Q(('remaining_quantity__lte', models.F('quantity'))), name='stock_batch_remaining_within_quantity'),
                ],
            },
        ),
        migrations.CreateModel(
            name='InventoryTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('transaction_type', models.CharField(choices=[('receipt', 'Receipt'), ('consumption', 'Consumption'), ('adjustment', 'Adjustment')], db_index=True, max_length=20)),
                ('quantity', models.DecimalField(decimal_places=4, max_digits=15)),
                ('unit_cost', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('total_cost', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('remaining_quantity', models.DecimalField(blank=True, decimal_places=4, max_digits=15, null=True)),
                ('reference_type', models.CharField(blank=True, default='', max_length=50)),
                ('reference_id', models.PositiveBigIntegerField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='stock.material')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='inventory_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['material', 'created_at'], name='stock_txn_material_idx'),
                    models.Index(fields=['transaction_type', 'created_at'], name='stock_txn_type_idx'),
                    models.Index(fields=['reference_type', 'reference_id'], name='stock_txn_reference_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockAlert',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('alert_type', models.CharField(choices=[('low_stock', 'Low Stock'), ('out_of_stock', 'Out of Stock'), ('overstock', 'Overstock'), ('expiry_warning', 'Expiry Warning'), ('expiry_critical', 'Expiry Critical')], db_index=True, max_length=20)),
                ('threshold_value', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('current_value', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('message', models.TextField(blank=True, default='')),
                ('is_resolved', models.BooleanField(db_index=True, default=False)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='alerts', to='stock.material')),
                ('resolved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='resolved_stock_alerts', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('is_resolved', False)), fields=('material', 'alert_type'), name='uq_stock_alert_unresolved_material_type'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Recipe',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('serving_size', models.PositiveIntegerField(default=1)),
                ('instructions', models.TextField(blank=True, default='')),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('product', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='recipe', to='pos.product')),
            ],
            options={
                'ordering': ['name'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('serving_size__gte', 1)), name='recipe_serving_size_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RecipeMaterial',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=4, max_digits=15)),
                ('sort_order', models.PositiveIntegerField(default=0)),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='recipe_materials', to='stock.material')),
                ('recipe', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='recipe_materials', to='stock.recipe')),
            ],
            options={
                'ordering': ['sort_order', 'id'],
                'unique_together': {('recipe', 'material')},
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('quantity__gt', 0)), name='recipe_material_quantity_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RecipeCostCalculation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('calculation_date', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('total_cost', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('cost_per_serving', models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ('calculation_method', models.CharField(choices=[('fifo', 'FIFO'), ('purchase_price', 'Purchase Price'), ('average_cost', 'Average Cost')], default='fifo', max_length=20)),
                ('cost_breakdown', models.JSONField(blank=True, default=list)),
                ('calculated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='recipe_cost_calculations', to=settings.AUTH_USER_MODEL)),
                ('recipe', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='cost_calculations', to='stock.recipe')),
            ],
            options={
                'ordering': ['-calculation_date', '-id'],
                'get_latest_by': ['calculation_date', 'id'],
            },
        ),
        migrations.CreateModel(
            name='StockSettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('stock_enabled', models.BooleanField(default=True)),
                ('auto_deduct_on_completion', models.BooleanField(default=True)),
                ('refresh_recipe_costs_on_completion', models.BooleanField(default=True)),
                ('low_stock_alert_enabled', models.BooleanField(default=True)),
                ('expiry_alert_enabled', models.BooleanField(default=True)),
                ('expiry_warning_days', models.PositiveIntegerField(default=7)),
                ('expiry_critical_days', models.PositiveIntegerField(default=2)),
                ('recipe_cost_max_age_days', models.PositiveIntegerField(default=7)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'stock settings',
                'verbose_name_plural': 'stock settings',
            },
        ),
    ]
