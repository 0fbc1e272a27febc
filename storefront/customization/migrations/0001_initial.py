# Generated manually for embroidery customization

import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='EmbroideryOption',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.SlugField(help_text='Stable identifier, e.g. coverage-75', max_length=100, unique=True)),
                ('name', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('image', models.TextField(blank=True)),
                ('stitches', models.PositiveIntegerField(default=0)),
                ('estimated_time', models.CharField(default='0 days', max_length=50)),
                ('category', models.CharField(choices=[('coverage', 'Coverage'), ('threads', 'Threads'), ('material', 'Material'), ('border', 'Border'), ('backing', 'Backing'), ('upgrades', 'Upgrades'), ('cutting', 'Cutting')], db_index=True, max_length=20)),
                ('level', models.CharField(choices=[('basic', 'Basic'), ('standard', 'Standard'), ('premium', 'Premium'), ('luxury', 'Luxury')], default='basic', max_length=20)),
                ('is_popular', models.BooleanField(default=False)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('incompatible', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'embroidery_options',
                'ordering': ['category', 'price', 'name'],
            },
        ),
        migrations.CreateModel(
            name='MaterialCost',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, unique=True)),
                ('cost', models.DecimalField(decimal_places=2, max_digits=10)),
                ('width', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('length', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('waste_factor', models.DecimalField(decimal_places=2, default=Decimal('1.00'), max_digits=5)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'material_costs',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='CustomEmbroideryOrder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('design_name', models.CharField(max_length=255)),
                ('design_file', models.TextField()),
                ('design_preview', models.TextField(blank=True)),
                ('dimensions', models.JSONField(default=dict)),
                ('selected_styles', models.JSONField(default=dict)),
                ('material_costs', models.JSONField(default=dict)),
                ('options_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('total_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('in_production', 'In Production'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], db_index=True, default='pending', max_length=20)),
                ('notes', models.TextField(blank=True)),
                ('estimated_completion_date', models.DateField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='custom_embroidery_orders', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'custom_embroidery_orders',
                'ordering': ['-created_at'],
            },
        ),
    ]
