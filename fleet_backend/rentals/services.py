import logging
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from cars.models import Car
from cars.services import get_car
from fleet_backend.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from fleet_backend.validators import parse_timestamp, to_amount
from .models import Rental

logger = logging.getLogger(__name__)

ONE_HOUR = timedelta(hours=1)
ONE_DAY = timedelta(days=1)
CENTS = Decimal('0.01')


# Whole hours in a span, any started hour counts as a full one
# span: timedelta
# return: int
def _billable_hours(span):
    hours, rest = divmod(span, ONE_HOUR)
    return hours + (1 if rest else 0)


# Base rent for a start/end pair
# start, end: datetimes (end=None means the rental is still running, nothing is charged yet)
# hourly_rate, daily_rate: non-negative numbers
# return: Decimal
# under 24h -> ceil(hours) * hourly; otherwise full days * daily + ceil(leftover hours) * hourly,
# so exactly 24h is one day and zero hours
def compute_base_rent(start, end, hourly_rate, daily_rate):
    hourly_rate = to_amount(hourly_rate, 'hourly_rate')
    daily_rate = to_amount(daily_rate, 'daily_rate')
    start = parse_timestamp(start, 'start_time')
    if end is None:
        return Decimal('0.00')
    end = parse_timestamp(end, 'end_time')
    if end <= start:
        raise ValidationError("End time must be after start time.")

    span = end - start
    if span < ONE_DAY:
        total = _billable_hours(span) * hourly_rate
    else:
        days, leftover = divmod(span, ONE_DAY)
        total = days * daily_rate + _billable_hours(leftover) * hourly_rate
    return total.quantize(CENTS, rounding=ROUND_HALF_UP)


# Amount finally collected for a rental
# base_rent: calculated base rent
# manual_override: operator supplied rent, replaces base_rent when given
# deduction_amount, loss_ghata: subtracted
# bonus_chot: added (it is a surplus, not a discount)
# return: Decimal, never negative
def compute_final_amount(base_rent, manual_override, deduction_amount, bonus_chot, loss_ghata):
    if manual_override is not None and manual_override != '':
        effective_base = to_amount(manual_override, 'manual_total_rent')
    else:
        effective_base = to_amount(base_rent, 'total_rent', default=0)
    deduction_amount = to_amount(deduction_amount, 'deduction_amount', default=0)
    bonus_chot = to_amount(bonus_chot, 'chot', default=0)
    loss_ghata = to_amount(loss_ghata, 'ghata_amount', default=0)

    final = effective_base - deduction_amount - loss_ghata + bonus_chot
    return max(Decimal('0.00'), final).quantize(CENTS, rounding=ROUND_HALF_UP)


def _required_text(data, key, label):
    value = data.get(key)
    value = value.strip() if isinstance(value, str) else value
    if not value:
        raise ValidationError(f"{label} is required.")
    return value


def _optional_text(value, default=''):
    if value is None:
        return default
    return str(value).strip() or default


def _optional_amount(data, key):
    value = data.get(key)
    if value is None or value == '':
        return None
    return to_amount(value, key)


def _to_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def get_rental(rental_id, owner=None):
    queryset = Rental.objects.select_related('car')
    if owner is not None:
        queryset = queryset.filter(owner=owner)
    try:
        return queryset.get(pk=rental_id)
    except (Rental.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Rental not found.")


class RentalLifecycle:
    """Creates, edits and removes rentals while keeping the car status in step.

    A car is claimed with a conditional update (``status = Available`` ->
    ``Rented``) in the same transaction as the rental write, so two bookings
    racing for one car cannot both succeed. The partial unique constraint on
    ``Rental`` (one Active rental per car) backs this at the database level.
    """

    ADJUSTMENT_FIELDS = ('deduction_amount', 'ghata_amount', 'chot', 'advance')
    TEXT_FIELDS = ('deduction_reason', 'ghata_reason', 'customer_occupation')

    @staticmethod
    def _claim_car(car_id):
        claimed = Car.objects.filter(pk=car_id, status=Car.AVAILABLE).update(
            status=Car.RENTED, updated_at=timezone.now()
        )
        if not claimed:
            raise ConflictError("Car is not available.")

    @staticmethod
    def _set_car_status(car_id, car_status):
        Car.objects.filter(pk=car_id).update(status=car_status, updated_at=timezone.now())

    @staticmethod
    def create(owner, data):
        car = get_car(data.get('car_id'), owner=owner)
        customer_name = _required_text(data, 'customer_name', 'Customer name')
        customer_phone = _required_text(data, 'customer_phone', 'Customer phone')
        start = parse_timestamp(data.get('start_time'), 'start_time')
        end = None
        if data.get('end_time') not in (None, ''):
            end = parse_timestamp(data.get('end_time'), 'end_time')
            if end <= start:
                raise ValidationError("End time must be after start time.")

        if car.status != Car.AVAILABLE:
            raise ConflictError("Car is not available.")

        manual_total_rent = _optional_amount(data, 'manual_total_rent')
        if manual_total_rent is not None:
            total_rent = manual_total_rent
        else:
            total_rent = compute_base_rent(start, end, car.hourly_rate, car.daily_rate)

        rental = Rental(
            car=car,
            owner=owner,
            start_time=start,
            end_time=end,
            customer_name=customer_name,
            customer_phone=customer_phone,
            customer_occupation=_optional_text(data.get('customer_occupation'), 'Student'),
            total_rent=total_rent,
            manual_total_rent=manual_total_rent,
            deduction_amount=to_amount(data.get('deduction_amount'), 'deduction_amount', default=0),
            deduction_reason=_optional_text(data.get('deduction_reason')),
            ghata_amount=to_amount(data.get('ghata_amount'), 'ghata_amount', default=0),
            ghata_reason=_optional_text(data.get('ghata_reason')),
            chot=to_amount(data.get('chot'), 'chot', default=0),
            advance=to_amount(data.get('advance'), 'advance', default=0),
            is_settled=_to_bool(data.get('is_settled', False)),
            status=Rental.ACTIVE,
        )

        try:
            with transaction.atomic():
                RentalLifecycle._claim_car(car.pk)
                rental.save()
        except IntegrityError as exc:
            raise ConflictError("Car already has an active rental.") from exc
        except DatabaseError as exc:
            raise PersistenceError(f"Could not save rental: {exc}") from exc

        car.status = Car.RENTED
        logger.info("Rental %s created for car %s (total_rent=%s, final=%s)",
                    rental.pk, car.pk, rental.total_rent, rental.final_amount_collected)
        return rental

    @staticmethod
    def update(rental, data):
        try:
            with transaction.atomic():
                rental = RentalLifecycle._locked(rental)
                previous_status = rental.status
                RentalLifecycle._apply_changes(rental, data)

                if rental.status == Rental.ACTIVE and previous_status != Rental.ACTIVE:
                    RentalLifecycle._claim_car(rental.car_id)
                elif rental.status == Rental.ACTIVE:
                    RentalLifecycle._set_car_status(rental.car_id, Car.RENTED)
                elif previous_status == Rental.ACTIVE:
                    RentalLifecycle._set_car_status(rental.car_id, Car.AVAILABLE)

                rental.save()
        except IntegrityError as exc:
            raise ConflictError("Car already has an active rental.") from exc
        except DatabaseError as exc:
            raise PersistenceError(f"Could not update rental: {exc}") from exc

        if rental.status != previous_status:
            logger.info("Rental %s moved %s -> %s", rental.pk, previous_status, rental.status)
        logger.info("Rental %s updated (total_rent=%s, final=%s)",
                    rental.pk, rental.total_rent, rental.final_amount_collected)
        return rental

    @staticmethod
    def _apply_changes(rental, data):
        if data.get('start_time') not in (None, ''):
            rental.start_time = parse_timestamp(data['start_time'], 'start_time')
        if 'end_time' in data:
            end = data['end_time']
            rental.end_time = parse_timestamp(end, 'end_time') if end not in (None, '') else None
        if rental.end_time is not None and rental.end_time <= rental.start_time:
            raise ValidationError("End time must be after start time.")

        if 'customer_name' in data:
            rental.customer_name = _required_text(data, 'customer_name', 'Customer name')
        if 'customer_phone' in data:
            rental.customer_phone = _required_text(data, 'customer_phone', 'Customer phone')
        for field in RentalLifecycle.TEXT_FIELDS:
            if field in data:
                setattr(rental, field, _optional_text(data[field]))
        for field in RentalLifecycle.ADJUSTMENT_FIELDS:
            if field in data:
                setattr(rental, field, to_amount(data[field], field, default=0))
        if 'is_settled' in data:
            rental.is_settled = _to_bool(data['is_settled'])

        if 'manual_total_rent' in data:
            rental.manual_total_rent = _optional_amount(data, 'manual_total_rent')
        if {'start_time', 'end_time', 'manual_total_rent'} & set(data):
            if rental.manual_total_rent is not None:
                rental.total_rent = rental.manual_total_rent
            else:
                # rates are read now, not remembered from booking time
                car = Car.objects.get(pk=rental.car_id)
                rental.total_rent = compute_base_rent(
                    rental.start_time, rental.end_time, car.hourly_rate, car.daily_rate
                )

        if data.get('status') not in (None, ''):
            if data['status'] not in (Rental.ACTIVE, Rental.COMPLETED):
                raise ValidationError("Status must be Active or Completed.")
            rental.status = data['status']
        elif 'end_time' in data:
            rental.status = Rental.COMPLETED if rental.end_time else Rental.ACTIVE
        # a null end time means the rental is still running
        if rental.status == Rental.COMPLETED and rental.end_time is None:
            raise ValidationError("A completed rental needs an end time.")

    @staticmethod
    def complete(rental, end_time=None):
        """Return the car: stamp the end time (now by default) and close the rental."""
        return RentalLifecycle.update(rental, {
            'end_time': end_time or timezone.now(),
            'status': Rental.COMPLETED,
        })

    @staticmethod
    def settle(rental, settled=True):
        return RentalLifecycle.update(rental, {'is_settled': settled})

    @staticmethod
    def delete(rental):
        try:
            with transaction.atomic():
                rental = RentalLifecycle._locked(rental)
                if rental.status == Rental.ACTIVE:
                    RentalLifecycle._set_car_status(rental.car_id, Car.AVAILABLE)
                rental_id = rental.pk
                rental.delete()
        except DatabaseError as exc:
            raise PersistenceError(f"Could not delete rental: {exc}") from exc

        logger.info("Rental %s deleted", rental_id)
        return rental_id

    @staticmethod
    def _locked(rental):
        try:
            return Rental.objects.select_for_update().get(pk=rental.pk)
        except Rental.DoesNotExist:
            raise NotFoundError("Rental not found.")
