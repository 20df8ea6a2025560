from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q

from cars.models import Car


class Rental(models.Model):
    ACTIVE = 'Active'
    COMPLETED = 'Completed'

    STATUS_CHOICES = [
        (ACTIVE, 'Active'),
        (COMPLETED, 'Completed'),
    ]

    car = models.ForeignKey(Car, on_delete=models.PROTECT, related_name='rentals')
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='rentals')
    start_time = models.DateTimeField()
    end_time = models.DateTimeField(null=True, blank=True)

    customer_name = models.CharField(max_length=150)
    customer_phone = models.CharField(max_length=30)
    customer_occupation = models.CharField(max_length=100, default='Student', blank=True)

    total_rent = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    manual_total_rent = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True,
                                            help_text="When set, overrides the calculated base rent")
    deduction_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    deduction_reason = models.CharField(max_length=255, blank=True, default='')
    ghata_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'),
                                       help_text="Loss / damage cost, subtracted")
    ghata_reason = models.CharField(max_length=255, blank=True, default='')
    chot = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'),
                               help_text="Bonus / surplus, added")
    advance = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'),
                                  help_text="Paid upfront; not part of the base rent")
    final_amount_collected = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'),
                                                 editable=False)

    is_settled = models.BooleanField(default=False, db_index=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=ACTIVE, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['car'],
                condition=Q(status='Active'),
                name='one_active_rental_per_car',
            ),
        ]
        indexes = [
            models.Index(fields=['status', '-created_at'], name='rental_status_created_idx'),
            models.Index(fields=['is_settled', '-created_at'], name='rental_settled_created_idx'),
            models.Index(fields=['car', 'status'], name='rental_car_status_idx'),
            models.Index(fields=['start_time'], name='rental_start_time_idx'),
            models.Index(fields=['end_time'], name='rental_end_time_idx'),
        ]

    def __str__(self):
        return f"Rental #{self.id} - Car {self.car_id} - {self.customer_name} - Status {self.status}"

    def apply_settlement(self):
        """Derive final_amount_collected from the current rent and adjustments."""
        from .services import compute_final_amount
        self.final_amount_collected = compute_final_amount(
            self.total_rent,
            self.manual_total_rent,
            self.deduction_amount,
            self.chot,
            self.ghata_amount,
        )
        return self.final_amount_collected

    def save(self, *args, **kwargs):
        # never trust a stored settlement; derive it on every write
        self.apply_settlement()
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'final_amount_collected' not in update_fields:
            kwargs['update_fields'] = list(update_fields) + ['final_amount_collected']
        super().save(*args, **kwargs)

    @property
    def duration(self):
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def remaining_amount(self):
        return self.final_amount_collected - self.advance
