import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone

from fleet_backend.exceptions import NotFoundError, PersistenceError, ValidationError
from fleet_backend.validators import parse_timestamp, to_amount
from .models import Car, MaintenanceRecord

logger = logging.getLogger(__name__)


def get_car(car_id, owner=None):
    """Fetch a car by id (optionally restricted to an owner) or raise NotFoundError."""
    queryset = Car.objects.all()
    if owner is not None:
        queryset = queryset.filter(owner=owner)
    try:
        return queryset.get(pk=car_id)
    except (Car.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Car not found.")


def get_car_by_plate(plate_number, owner=None):
    queryset = Car.objects.filter(plate_number=Car.normalize_plate(plate_number))
    if owner is not None:
        queryset = queryset.filter(owner=owner)
    car = queryset.first()
    if car is None:
        raise NotFoundError("Car not found.")
    return car


def _clean_km(value):
    if value is None or value == '':
        return None
    try:
        km = int(value)
    except (TypeError, ValueError):
        raise ValidationError("km must be a whole number.")
    if km < 0:
        raise ValidationError("km cannot be negative.")
    return km


def _clean_description(value):
    description = (value or '').strip()
    if not description:
        raise ValidationError("Description is required.")
    return description


class MaintenanceLedger:
    """Service history of a car and its last-serviced summary fields.

    ``last_serviced_at`` / ``last_serviced_km`` are never edited directly; every
    ledger operation derives them again from the history it just changed.
    """

    SUMMARY_FIELDS = ['last_serviced_at', 'last_serviced_km', 'updated_at']

    @staticmethod
    def _lock(car):
        return Car.objects.select_for_update().get(pk=car.pk)

    @staticmethod
    def recompute_summary(car):
        """Full rescan: latest date wins, km comes from the latest entry that has one.

        An empty history clears ``last_serviced_at`` but keeps the last known km,
        odometer readings do not reset.
        """
        entries = list(car.maintenance_history.order_by('date', 'created_at'))
        if not entries:
            car.last_serviced_at = None
            return car
        car.last_serviced_at = entries[-1].date
        with_km = [entry for entry in entries if entry.odometer_km is not None]
        if with_km:
            car.last_serviced_km = with_km[-1].odometer_km
        return car

    @staticmethod
    def add_entry(car, description, amount, date=None, km=None):
        description = _clean_description(description)
        amount = to_amount(amount, 'amount')
        date = parse_timestamp(date, 'date') if date not in (None, '') else timezone.now()
        km = _clean_km(km)

        try:
            with transaction.atomic():
                car = MaintenanceLedger._lock(car)
                entry = MaintenanceRecord.objects.create(
                    car=car,
                    description=description,
                    amount=amount,
                    date=date,
                    odometer_km=km,
                )
                # newest entry becomes the summary; an older one may only fill a missing km
                if car.last_serviced_at is None or date >= car.last_serviced_at:
                    car.last_serviced_at = date
                    if km is not None:
                        car.last_serviced_km = km
                elif car.last_serviced_km is None and km is not None:
                    car.last_serviced_km = km
                car.save(update_fields=MaintenanceLedger.SUMMARY_FIELDS)
        except DatabaseError as exc:
            raise PersistenceError(f"Could not save maintenance entry: {exc}") from exc

        logger.info("Maintenance entry %s added to car %s", entry.pk, car.pk)
        return entry

    @staticmethod
    def update_entry(car, entry_id, **fields):
        changes = {}
        if 'description' in fields:
            changes['description'] = _clean_description(fields['description'])
        if 'amount' in fields:
            changes['amount'] = to_amount(fields['amount'], 'amount')
        if 'date' in fields:
            changes['date'] = parse_timestamp(fields['date'], 'date')
        if 'km' in fields:
            changes['odometer_km'] = _clean_km(fields['km'])

        try:
            with transaction.atomic():
                car = MaintenanceLedger._lock(car)
                entry = MaintenanceLedger._get_entry(car, entry_id)
                for attr, value in changes.items():
                    setattr(entry, attr, value)
                entry.save()
                MaintenanceLedger.recompute_summary(car)
                car.save(update_fields=MaintenanceLedger.SUMMARY_FIELDS)
        except DatabaseError as exc:
            raise PersistenceError(f"Could not update maintenance entry: {exc}") from exc

        logger.info("Maintenance entry %s on car %s updated (%s)", entry.pk, car.pk, ', '.join(changes) or 'no changes')
        return entry

    @staticmethod
    def remove_entry(car, entry_id):
        try:
            with transaction.atomic():
                car = MaintenanceLedger._lock(car)
                entry = MaintenanceLedger._get_entry(car, entry_id)
                entry.delete()
                MaintenanceLedger.recompute_summary(car)
                car.save(update_fields=MaintenanceLedger.SUMMARY_FIELDS)
        except DatabaseError as exc:
            raise PersistenceError(f"Could not remove maintenance entry: {exc}") from exc

        logger.info("Maintenance entry %s removed from car %s", entry_id, car.pk)
        return car

    @staticmethod
    def _get_entry(car, entry_id):
        try:
            return car.maintenance_history.get(pk=entry_id)
        except (MaintenanceRecord.DoesNotExist, ValueError, TypeError, DjangoValidationError):
            raise NotFoundError("Maintenance entry not found.")

