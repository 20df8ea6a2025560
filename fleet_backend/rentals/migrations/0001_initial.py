from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('cars', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Rental',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('start_time', models.DateTimeField()),
                ('end_time', models.DateTimeField(blank=True, null=True)),
                ('customer_name', models.CharField(max_length=150)),
                ('customer_phone', models.CharField(max_length=30)),
                ('customer_occupation', models.CharField(blank=True, default='Student', max_length=100)),
                ('total_rent', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('manual_total_rent', models.DecimalField(blank=True, decimal_places=2, help_text='When set, overrides the calculated base rent', max_digits=10, null=True)),
                ('deduction_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('deduction_reason', models.CharField(blank=True, default='', max_length=255)),
                ('ghata_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Loss / damage cost, subtracted', max_digits=10)),
                ('ghata_reason', models.CharField(blank=True, default='', max_length=255)),
                ('chot', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Bonus / surplus, added', max_digits=10)),
                ('advance', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Paid upfront; not part of the base rent', max_digits=10)),
                ('final_amount_collected', models.DecimalField(decimal_places=2, default=Decimal('0.00'), editable=False, max_digits=10)),
                ('is_settled', models.BooleanField(db_index=True, default=False)),
                ('status', models.CharField(choices=[('Active', 'Active'), ('Completed', 'Completed')], db_index=True, default='Active', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('car', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='rentals', to='cars.car')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='rentals', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', '-created_at'], name='rental_status_created_idx'),
                    models.Index(fields=['is_settled', '-created_at'], name='rental_settled_created_idx'),
                    models.Index(fields=['car', 'status'], name='rental_car_status_idx'),
                    models.Index(fields=['start_time'], name='rental_start_time_idx'),
                    models.Index(fields=['end_time'], name='rental_end_time_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'Active')), fields=('car',), name='one_active_rental_per_car'),
                ],
            },
        ),
    ]
