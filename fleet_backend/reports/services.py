"""Revenue roll-ups over stored rentals.

A rental's money counts as collected once it has an end time, so the rental
report windows on ``end_time`` and, with no window at all, leaves out rentals
that are still running. The monthly stats are the exception: they group by
the booking month (``start_time``).
"""
import logging
import re
from datetime import datetime, timedelta
from decimal import Decimal

from django.db.models import Count, Q, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone

from fleet_backend.exceptions import ValidationError
from fleet_backend.validators import parse_day
from rentals.models import Rental

logger = logging.getLogger(__name__)

MONTH_PATTERN = re.compile(r'^(\d{4})-(\d{2})$')
ZERO = Decimal('0.00')
TOP_CARS = 10
RECENT_MONTHS = 12


def _midnight(day):
    return timezone.make_aware(datetime(day.year, day.month, day.day))


def month_window(month):
    """[first instant of the month, first instant of the next month)."""
    match = MONTH_PATTERN.match(str(month).strip())
    if not match:
        raise ValidationError("month must look like YYYY-MM.")
    year, number = int(match.group(1)), int(match.group(2))
    if not 1 <= number <= 12:
        raise ValidationError("month must look like YYYY-MM.")
    try:
        start = timezone.make_aware(datetime(year, number, 1))
        if number == 12:
            end = timezone.make_aware(datetime(year + 1, 1, 1))
        else:
            end = timezone.make_aware(datetime(year, number + 1, 1))
    except (ValueError, OverflowError):
        raise ValidationError("month is out of range.")
    return start, end


def date_window(start_date, end_date):
    """Whole days, end date included."""
    first = parse_day(start_date, 'start_date')
    last = parse_day(end_date, 'end_date')
    if last < first:
        raise ValidationError("end_date cannot be before start_date.")
    try:
        return _midnight(first), _midnight(last + timedelta(days=1))
    except (ValueError, OverflowError):
        raise ValidationError("end_date is out of range.")


def _scoped(owner):
    queryset = Rental.objects.all()
    if owner is not None:
        queryset = queryset.filter(owner=owner)
    return queryset


def rental_report(owner=None, car_id=None, month=None, start_date=None, end_date=None, include_active=False):
    queryset = _scoped(owner)

    if car_id not in (None, ''):
        try:
            queryset = queryset.filter(car_id=int(car_id))
        except (TypeError, ValueError):
            raise ValidationError("car_id must be a number.")

    # explicit dates beat month; no window means "returned rentals only"
    window = None
    if start_date and end_date:
        window = date_window(start_date, end_date)
    elif month:
        window = month_window(month)

    field = 'start_time' if include_active else 'end_time'
    if window is not None:
        queryset = queryset.filter(**{f'{field}__gte': window[0], f'{field}__lt': window[1]})
    elif not include_active:
        queryset = queryset.filter(end_time__isnull=False)

    totals = queryset.aggregate(
        total_collected=Sum('final_amount_collected'),
        count=Count('id'),
        active_count=Count('id', filter=Q(status=Rental.ACTIVE)),
        completed_count=Count('id', filter=Q(status=Rental.COMPLETED)),
    )
    rentals = list(queryset.select_related('car').order_by('-start_time'))

    logger.debug("Rental report for owner=%s car=%s window=%s: %s rentals",
                 getattr(owner, 'pk', None), car_id, window, totals['count'])
    return {
        'rentals': rentals,
        'total_collected': totals['total_collected'] or ZERO,
        'count': totals['count'],
        'active_count': totals['active_count'],
        'completed_count': totals['completed_count'],
    }


def stats_report(owner=None):
    queryset = _scoped(owner)

    per_car = [
        {
            'car_id': row['car_id'],
            'brand': row['car__brand'],
            'model': row['car__model'],
            'plate_number': row['car__plate_number'],
            'total_collected': row['total_collected'] or ZERO,
            'count': row['count'],
        }
        for row in queryset
        .values('car_id', 'car__brand', 'car__model', 'car__plate_number')
        .annotate(total_collected=Sum('final_amount_collected'), count=Count('id'))
        .order_by('-total_collected', 'car_id')[:TOP_CARS]
    ]

    monthly = [
        {
            'month': row['month'].strftime('%Y-%m'),
            'total_collected': row['total_collected'] or ZERO,
            'count': row['count'],
        }
        for row in queryset
        .annotate(month=TruncMonth('start_time'))
        .values('month')
        .annotate(total_collected=Sum('final_amount_collected'), count=Count('id'))
        .order_by('-month')[:RECENT_MONTHS]
    ]

    overall = queryset.aggregate(
        total_collected=Sum('final_amount_collected'),
        count=Count('id'),
        active_count=Count('id', filter=Q(status=Rental.ACTIVE)),
        completed_count=Count('id', filter=Q(status=Rental.COMPLETED)),
        pending_settlement=Count('id', filter=Q(is_settled=False)),
        total_deductions=Sum('deduction_amount'),
        total_chot=Sum('chot'),
        total_ghata=Sum('ghata_amount'),
    )
    for key in ('total_collected', 'total_deductions', 'total_chot', 'total_ghata'):
        overall[key] = overall[key] or ZERO

    return {'per_car': per_car, 'monthly': monthly, 'overall': overall}
