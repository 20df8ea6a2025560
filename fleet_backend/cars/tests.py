import uuid
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from fleet_backend.exceptions import NotFoundError, ValidationError
from rentals.models import Rental
from .models import Car, MaintenanceRecord
from .services import MaintenanceLedger, get_car, get_car_by_plate

User = get_user_model()

JAN_10 = datetime(2024, 1, 10, 10, 0, tzinfo=dt_timezone.utc)
FEB_01 = datetime(2024, 2, 1, 10, 0, tzinfo=dt_timezone.utc)
MAR_05 = datetime(2024, 3, 5, 10, 0, tzinfo=dt_timezone.utc)


class CarTestBase(TestCase):

    def setUp(self):
        self.owner = User.objects.create_user(username='operator', password='testpass')
        self.car = Car.objects.create(
            owner=self.owner, brand='Hyundai', model='Creta', plate_number=' dl3c ab 0001 ',
            hourly_rate=Decimal('120'), daily_rate=Decimal('1500'),
        )

    def refresh_car(self):
        self.car.refresh_from_db()
        return self.car


class CarLookupTest(CarTestBase):

    def test_plate_is_normalized_on_save(self):
        self.assertEqual(self.car.plate_number, 'DL3C AB 0001')

    def test_lookup_by_plate_ignores_case_and_padding(self):
        self.assertEqual(get_car_by_plate('dl3c ab 0001 ', owner=self.owner), self.car)

    def test_lookup_is_scoped_to_owner(self):
        stranger = User.objects.create_user(username='stranger', password='testpass')
        with self.assertRaises(NotFoundError):
            get_car(self.car.pk, owner=stranger)
        with self.assertRaises(NotFoundError):
            get_car_by_plate('DL3C AB 0001', owner=stranger)
        with self.assertRaises(NotFoundError):
            get_car('not-an-id')


class MaintenanceLedgerTest(CarTestBase):

    def test_first_entry_sets_summary(self):
        MaintenanceLedger.add_entry(self.car, 'Oil change', 1500, date=FEB_01, km=12000)
        car = self.refresh_car()
        self.assertEqual(car.last_serviced_at, FEB_01)
        self.assertEqual(car.last_serviced_km, 12000)

    def test_older_entry_does_not_move_summary(self):
        MaintenanceLedger.add_entry(self.car, 'Oil change', 1500, date=FEB_01, km=12000)
        MaintenanceLedger.add_entry(self.car, 'Wiper blades', 300, date=JAN_10, km=11000)
        car = self.refresh_car()
        self.assertEqual(car.last_serviced_at, FEB_01)
        self.assertEqual(car.last_serviced_km, 12000)
        self.assertEqual(car.maintenance_history.count(), 2)

    def test_newer_entry_moves_summary(self):
        MaintenanceLedger.add_entry(self.car, 'Oil change', 1500, date=FEB_01, km=12000)
        MaintenanceLedger.add_entry(self.car, 'Brake pads', 2400, date=MAR_05, km=13500)
        car = self.refresh_car()
        self.assertEqual(car.last_serviced_at, MAR_05)
        self.assertEqual(car.last_serviced_km, 13500)

    def test_newer_entry_without_km_keeps_known_km(self):
        MaintenanceLedger.add_entry(self.car, 'Oil change', 1500, date=FEB_01, km=12000)
        MaintenanceLedger.add_entry(self.car, 'Wash', 200, date=MAR_05)
        car = self.refresh_car()
        self.assertEqual(car.last_serviced_at, MAR_05)
        self.assertEqual(car.last_serviced_km, 12000)

    def test_older_entry_fills_missing_km(self):
        MaintenanceLedger.add_entry(self.car, 'Wash', 200, date=MAR_05)
        MaintenanceLedger.add_entry(self.car, 'Oil change', 1500, date=FEB_01, km=12000)
        car = self.refresh_car()
        self.assertEqual(car.last_serviced_at, MAR_05)
        self.assertEqual(car.last_serviced_km, 12000)

    def test_entry_without_date_is_dated_now(self):
        entry = MaintenanceLedger.add_entry(self.car, 'Tyre rotation', 400)
        self.assertIsNotNone(entry.date)
        self.assertEqual(self.refresh_car().last_serviced_at, entry.date)

    def test_invalid_entries_are_rejected(self):
        with self.assertRaises(ValidationError):
            MaintenanceLedger.add_entry(self.car, '', 100)
        with self.assertRaises(ValidationError):
            MaintenanceLedger.add_entry(self.car, 'Oil change', -5)
        with self.assertRaises(ValidationError):
            MaintenanceLedger.add_entry(self.car, 'Oil change', 100, km=-1)
        with self.assertRaises(ValidationError):
            MaintenanceLedger.add_entry(self.car, 'Oil change', 100, date='yesterday')
        self.assertFalse(MaintenanceRecord.objects.exists())

    def test_update_moving_latest_entry_back_rescans(self):
        MaintenanceLedger.add_entry(self.car, 'Oil change', 1500, date=FEB_01, km=12000)
        latest = MaintenanceLedger.add_entry(self.car, 'Brake pads', 2400, date=MAR_05, km=13500)

        MaintenanceLedger.update_entry(self.car, latest.pk, date=JAN_10)
        car = self.refresh_car()
        self.assertEqual(car.last_serviced_at, FEB_01)
        self.assertEqual(car.last_serviced_km, 12000)

    def test_update_changes_fields(self):
        entry = MaintenanceLedger.add_entry(self.car, 'Oil change', 1500, date=FEB_01)
        entry = MaintenanceLedger.update_entry(self.car, entry.pk, description='Full service', amount='3200', km=15000)
        self.assertEqual(entry.description, 'Full service')
        self.assertEqual(entry.amount, Decimal('3200'))
        self.assertEqual(self.refresh_car().last_serviced_km, 15000)

    def test_unknown_entry_is_not_found(self):
        with self.assertRaises(NotFoundError):
            MaintenanceLedger.update_entry(self.car, uuid.uuid4(), description='x')
        with self.assertRaises(NotFoundError):
            MaintenanceLedger.remove_entry(self.car, 'garbage')

    def test_entry_of_another_car_is_not_found(self):
        other = Car.objects.create(owner=self.owner, brand='Kia', model='Seltos', plate_number='DL1X0002',
                                   hourly_rate=100, daily_rate=1200)
        entry = MaintenanceLedger.add_entry(other, 'Oil change', 1500, date=FEB_01)
        with self.assertRaises(NotFoundError):
            MaintenanceLedger.remove_entry(self.car, entry.pk)

    def test_remove_rescans_history(self):
        MaintenanceLedger.add_entry(self.car, 'Oil change', 1500, date=FEB_01, km=12000)
        latest = MaintenanceLedger.add_entry(self.car, 'Brake pads', 2400, date=MAR_05, km=13500)

        MaintenanceLedger.remove_entry(self.car, latest.pk)
        car = self.refresh_car()
        self.assertEqual(car.last_serviced_at, FEB_01)
        self.assertEqual(car.last_serviced_km, 12000)

    def test_removing_last_entry_clears_date_keeps_km(self):
        entry = MaintenanceLedger.add_entry(self.car, 'Oil change', 1500, date=FEB_01, km=12000)
        MaintenanceLedger.remove_entry(self.car, entry.pk)
        car = self.refresh_car()
        self.assertIsNone(car.last_serviced_at)
        self.assertEqual(car.last_serviced_km, 12000)


class CarAPITest(CarTestBase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(user=self.owner)

    def car_payload(self, **overrides):
        data = {
            'brand': 'Maruti',
            'model': 'Swift',
            'plate_number': 'mh12ab1234',
            'hourly_rate': '100.00',
            'daily_rate': '1000.00',
            'fuel_type': Car.PETROL,
        }
        data.update(overrides)
        return data

    def test_create_car(self):
        response = self.client.post(reverse('car-list'), self.car_payload(), format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['plate_number'], 'MH12AB1234')
        self.assertEqual(response.data['status'], Car.AVAILABLE)
        self.assertEqual(response.data['owner'], self.owner.pk)

    def test_duplicate_plate_is_rejected(self):
        self.client.post(reverse('car-list'), self.car_payload(), format='json')
        response = self.client.post(reverse('car-list'), self.car_payload(plate_number=' MH12AB1234'), format='json')
        self.assertEqual(response.status_code, 400)

    def test_negative_rate_and_unknown_document_are_rejected(self):
        response = self.client.post(reverse('car-list'), self.car_payload(hourly_rate='-1'), format='json')
        self.assertEqual(response.status_code, 400)
        response = self.client.post(reverse('car-list'),
                                    self.car_payload(documents={'passport': 'docs/p.pdf'}), format='json')
        self.assertEqual(response.status_code, 400)

    def test_list_only_shows_own_cars(self):
        stranger = User.objects.create_user(username='stranger', password='testpass')
        Car.objects.create(owner=stranger, brand='Tata', model='Nexon', plate_number='KA01XY9999',
                           hourly_rate=80, daily_rate=800)
        response = self.client.get(reverse('car-list'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([car['plate_number'] for car in response.data], ['DL3C AB 0001'])

    def test_by_plate(self):
        response = self.client.get(reverse('car-by-plate', kwargs={'plate_number': 'dl3c ab 0001'}))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['id'], self.car.pk)
        response = self.client.get(reverse('car-by-plate', kwargs={'plate_number': 'NOPE'}))
        self.assertEqual(response.status_code, 404)

    def test_maintenance_endpoints(self):
        response = self.client.post(reverse('car-add-maintenance', args=[self.car.pk]), {
            'description': 'Oil change', 'amount': '1500', 'date': FEB_01.isoformat(), 'km': 12000,
        }, format='json')
        self.assertEqual(response.status_code, 201)
        entry_id = response.data['entry']['id']
        self.assertEqual(response.data['car']['last_serviced_km'], 12000)

        response = self.client.patch(reverse('car-maintenance-entry', kwargs={'pk': self.car.pk, 'entry_id': entry_id}),
                                     {'km': 12500}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['entry']['km'], 12500)

        response = self.client.delete(reverse('car-maintenance-entry', kwargs={'pk': self.car.pk, 'entry_id': entry_id}))
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data['last_serviced_at'])
        self.assertEqual(response.data['maintenance_history'], [])

    def test_maintenance_validation_is_400(self):
        response = self.client.post(reverse('car-add-maintenance', args=[self.car.pk]),
                                    {'description': '', 'amount': '10'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('error', response.data)

    def test_status_cannot_leave_rented_while_rental_active(self):
        self.car.status = Car.RENTED
        self.car.save()
        Rental.objects.create(car=self.car, owner=self.owner, start_time=JAN_10,
                              customer_name='Asha', customer_phone='9000000000')
        response = self.client.patch(reverse('car-detail', args=[self.car.pk]),
                                     {'status': Car.AVAILABLE}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.refresh_car().status, Car.RENTED)

    def test_car_with_rentals_cannot_be_deleted(self):
        Rental.objects.create(car=self.car, owner=self.owner, start_time=JAN_10, end_time=FEB_01,
                              customer_name='Asha', customer_phone='9000000000', status=Rental.COMPLETED)
        response = self.client.delete(reverse('car-detail', args=[self.car.pk]))
        self.assertEqual(response.status_code, 409)
        self.assertTrue(Car.objects.filter(pk=self.car.pk).exists())

    def test_unauthenticated_requests_are_rejected(self):
        self.client.force_authenticate(user=None)
        response = self.client.get(reverse('car-list'))
        self.assertEqual(response.status_code, 401)
