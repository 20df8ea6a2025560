from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from cars.models import Car
from fleet_backend.exceptions import ConflictError, NotFoundError, ValidationError
from .models import Rental
from .services import RentalLifecycle, compute_base_rent, compute_final_amount

User = get_user_model()

T0 = datetime(2024, 3, 10, 9, 0, tzinfo=dt_timezone.utc)


def hours(value):
    return T0 + timedelta(hours=value)


class ComputeBaseRentTest(SimpleTestCase):
    """Hourly under a day, daily + leftover hours beyond."""

    def test_under_a_day_rounds_hours_up(self):
        self.assertEqual(compute_base_rent(T0, hours(1.5), 100, 1000), Decimal('200.00'))
        self.assertEqual(compute_base_rent(T0, T0 + timedelta(minutes=1), 100, 1000), Decimal('100.00'))
        self.assertEqual(compute_base_rent(T0, hours(23), 100, 1000), Decimal('2300.00'))

    def test_exactly_one_day_has_no_leftover_hour(self):
        self.assertEqual(compute_base_rent(T0, hours(24), 100, 1000), Decimal('1000.00'))

    def test_twenty_five_hours(self):
        self.assertEqual(compute_base_rent(T0, hours(25), 100, 1000), Decimal('1100.00'))

    def test_twenty_six_hours(self):
        self.assertEqual(compute_base_rent(T0, hours(26), 100, 1000), Decimal('1200.00'))

    def test_partial_leftover_hour_counts_in_full(self):
        self.assertEqual(compute_base_rent(T0, hours(49.5), 100, 1000), Decimal('2200.00'))

    def test_ongoing_rental_costs_nothing_yet(self):
        self.assertEqual(compute_base_rent(T0, None, 100, 1000), Decimal('0.00'))

    def test_end_not_after_start_is_rejected(self):
        with self.assertRaises(ValidationError):
            compute_base_rent(T0, T0, 100, 1000)
        with self.assertRaises(ValidationError):
            compute_base_rent(T0, hours(-2), 100, 1000)

    def test_non_numeric_rate_is_rejected(self):
        with self.assertRaises(ValidationError):
            compute_base_rent(T0, hours(2), 'abc', 1000)
        with self.assertRaises(ValidationError):
            compute_base_rent(T0, hours(2), 100, -5)

    def test_accepts_iso_strings(self):
        self.assertEqual(
            compute_base_rent('2024-03-10T09:00:00Z', '2024-03-11T11:00:00Z', '100', '1000'),
            Decimal('1200.00'),
        )

    def test_same_inputs_same_output(self):
        first = compute_base_rent(T0, hours(30.25), 75, 900)
        second = compute_base_rent(T0, hours(30.25), 75, 900)
        self.assertEqual(first, second)

    def test_hourly_rule_holds_for_spans_under_a_day(self):
        for minutes in (1, 59, 60, 61, 119, 600, 1439):
            expected = -(-minutes // 60) * Decimal('40')
            self.assertEqual(compute_base_rent(T0, T0 + timedelta(minutes=minutes), 40, 500), expected)


class ComputeFinalAmountTest(SimpleTestCase):

    def test_example_settlement(self):
        self.assertEqual(compute_final_amount(1200, None, 200, 50, 0), Decimal('1050.00'))

    def test_chot_is_added_not_subtracted(self):
        """Chot is a bonus; it must raise the collected amount."""
        without_chot = compute_final_amount(1000, None, 0, 0, 0)
        with_chot = compute_final_amount(1000, None, 0, 150, 0)
        self.assertEqual(with_chot - without_chot, Decimal('150.00'))

    def test_deduction_and_ghata_are_subtracted(self):
        self.assertEqual(compute_final_amount(1000, None, 100, 0, 250), Decimal('650.00'))

    def test_manual_override_replaces_base(self):
        self.assertEqual(compute_final_amount(1200, 500, 100, 0, 0), Decimal('400.00'))
        self.assertEqual(compute_final_amount(1200, 0, 0, 30, 0), Decimal('30.00'))

    def test_empty_manual_override_is_ignored(self):
        self.assertEqual(compute_final_amount(1200, '', 0, 0, 0), Decimal('1200.00'))

    def test_clamped_at_zero(self):
        self.assertEqual(compute_final_amount(100, None, 500, 0, 0), Decimal('0.00'))
        self.assertEqual(compute_final_amount(0, None, 0, 0, 10), Decimal('0.00'))

    def test_never_negative(self):
        values = [0, 1, 50, 999.99, 10000]
        for base in values:
            for deduction in values:
                for loss in values:
                    self.assertGreaterEqual(compute_final_amount(base, None, deduction, 5, loss), 0)

    def test_bad_numbers_are_rejected(self):
        with self.assertRaises(ValidationError):
            compute_final_amount(1000, None, 'ten', 0, 0)
        with self.assertRaises(ValidationError):
            compute_final_amount(1000, None, 0, -1, 0)


class RentalLifecycleTestBase(TestCase):

    def setUp(self):
        self.owner = User.objects.create_user(username='operator', password='testpass')
        self.car = Car.objects.create(
            owner=self.owner, brand='Maruti', model='Swift', plate_number='mh12ab1234',
            hourly_rate=Decimal('100'), daily_rate=Decimal('1000'),
        )

    def booking(self, **overrides):
        data = {
            'car_id': self.car.pk,
            'start_time': T0.isoformat(),
            'customer_name': 'Ravi Kumar',
            'customer_phone': '9876543210',
        }
        data.update(overrides)
        return data

    def refresh_car(self):
        self.car.refresh_from_db()
        return self.car


class RentalCreateTest(RentalLifecycleTestBase):

    def test_create_marks_rental_active_and_car_rented(self):
        rental = RentalLifecycle.create(self.owner, self.booking())
        self.assertEqual(rental.status, Rental.ACTIVE)
        self.assertEqual(self.refresh_car().status, Car.RENTED)
        self.assertEqual(rental.total_rent, Decimal('0.00'))
        self.assertEqual(rental.customer_occupation, 'Student')

    def test_create_with_end_time_computes_rent_and_settlement(self):
        rental = RentalLifecycle.create(self.owner, self.booking(
            end_time=hours(26).isoformat(), deduction_amount=200, chot=50, ghata_amount=0,
        ))
        rental.refresh_from_db()
        self.assertEqual(rental.total_rent, Decimal('1200.00'))
        self.assertEqual(rental.final_amount_collected, Decimal('1050.00'))
        self.assertEqual(rental.status, Rental.ACTIVE)
        self.assertEqual(self.refresh_car().status, Car.RENTED)

    def test_manual_total_rent_wins_over_rates(self):
        rental = RentalLifecycle.create(self.owner, self.booking(
            end_time=hours(26).isoformat(), manual_total_rent='800',
        ))
        self.assertEqual(rental.total_rent, Decimal('800'))
        self.assertEqual(rental.final_amount_collected, Decimal('800.00'))

    def test_car_not_available_is_a_conflict(self):
        self.car.status = Car.MAINTENANCE
        self.car.save()
        with self.assertRaises(ConflictError):
            RentalLifecycle.create(self.owner, self.booking())
        self.assertFalse(Rental.objects.exists())
        self.assertEqual(self.refresh_car().status, Car.MAINTENANCE)

    def test_second_booking_for_rented_car_is_a_conflict(self):
        RentalLifecycle.create(self.owner, self.booking())
        with self.assertRaises(ConflictError):
            RentalLifecycle.create(self.owner, self.booking(customer_name='Someone Else'))
        self.assertEqual(Rental.objects.filter(car=self.car, status=Rental.ACTIVE).count(), 1)

    def test_stale_car_instance_cannot_double_book(self):
        """The availability check is the conditional update, not the in-memory status."""
        RentalLifecycle.create(self.owner, self.booking())
        Car.objects.filter(pk=self.car.pk).update(status=Car.AVAILABLE)
        with self.assertRaises(ConflictError):
            RentalLifecycle.create(self.owner, self.booking(customer_name='Racer'))
        self.assertEqual(Rental.objects.filter(car=self.car).count(), 1)

    def test_missing_customer_fields_are_rejected(self):
        with self.assertRaises(ValidationError):
            RentalLifecycle.create(self.owner, self.booking(customer_name=''))
        with self.assertRaises(ValidationError):
            RentalLifecycle.create(self.owner, self.booking(customer_phone=None))
        self.assertFalse(Rental.objects.exists())
        self.assertEqual(self.refresh_car().status, Car.AVAILABLE)

    def test_bad_times_are_rejected_without_side_effects(self):
        with self.assertRaises(ValidationError):
            RentalLifecycle.create(self.owner, self.booking(end_time=T0.isoformat()))
        with self.assertRaises(ValidationError):
            RentalLifecycle.create(self.owner, self.booking(start_time='not a date'))
        self.assertFalse(Rental.objects.exists())
        self.assertEqual(self.refresh_car().status, Car.AVAILABLE)

    def test_other_operators_car_is_not_found(self):
        stranger = User.objects.create_user(username='stranger', password='testpass')
        with self.assertRaises(NotFoundError):
            RentalLifecycle.create(stranger, self.booking())
        with self.assertRaises(NotFoundError):
            RentalLifecycle.create(self.owner, self.booking(car_id=999999))


class RentalUpdateTest(RentalLifecycleTestBase):

    def test_returning_recalculates_and_frees_car(self):
        rental = RentalLifecycle.create(self.owner, self.booking(chot=50))
        rental = RentalLifecycle.update(rental, {'end_time': hours(26).isoformat()})
        self.assertEqual(rental.status, Rental.COMPLETED)
        self.assertEqual(rental.total_rent, Decimal('1200.00'))
        self.assertEqual(rental.final_amount_collected, Decimal('1250.00'))
        self.assertEqual(self.refresh_car().status, Car.AVAILABLE)

    def test_recalculation_uses_current_rates(self):
        rental = RentalLifecycle.create(self.owner, self.booking())
        Car.objects.filter(pk=self.car.pk).update(hourly_rate=Decimal('150'))
        rental = RentalLifecycle.update(rental, {'end_time': hours(3).isoformat()})
        self.assertEqual(rental.total_rent, Decimal('450.00'))

    def test_adjustment_only_edit_keeps_base_rent(self):
        rental = RentalLifecycle.create(self.owner, self.booking(end_time=hours(2).isoformat()))
        Car.objects.filter(pk=self.car.pk).update(hourly_rate=Decimal('999'))
        rental = RentalLifecycle.update(rental, {'deduction_amount': 50, 'ghata_amount': 20, 'ghata_reason': 'scratch'})
        self.assertEqual(rental.total_rent, Decimal('200.00'))
        self.assertEqual(rental.final_amount_collected, Decimal('130.00'))
        self.assertEqual(rental.ghata_reason, 'scratch')

    def test_manual_override_governs_later_edits(self):
        rental = RentalLifecycle.create(self.owner, self.booking(manual_total_rent=800))
        rental = RentalLifecycle.update(rental, {'end_time': hours(26).isoformat()})
        self.assertEqual(rental.total_rent, Decimal('800.00'))

        rental = RentalLifecycle.update(rental, {'manual_total_rent': None})
        self.assertIsNone(rental.manual_total_rent)
        self.assertEqual(rental.total_rent, Decimal('1200.00'))

    def test_explicit_active_status_keeps_car_rented(self):
        rental = RentalLifecycle.create(self.owner, self.booking())
        rental = RentalLifecycle.update(rental, {'status': Rental.ACTIVE, 'customer_phone': '9000000000'})
        self.assertEqual(rental.customer_phone, '9000000000')
        self.assertEqual(self.refresh_car().status, Car.RENTED)

    def test_clearing_end_time_reactivates_when_car_is_free(self):
        rental = RentalLifecycle.create(self.owner, self.booking())
        rental = RentalLifecycle.complete(rental, hours(5))
        self.assertEqual(self.refresh_car().status, Car.AVAILABLE)

        rental = RentalLifecycle.update(rental, {'end_time': None})
        self.assertEqual(rental.status, Rental.ACTIVE)
        self.assertEqual(rental.total_rent, Decimal('0.00'))
        self.assertEqual(self.refresh_car().status, Car.RENTED)

    def test_reactivation_conflicts_with_newer_booking(self):
        first = RentalLifecycle.create(self.owner, self.booking())
        first = RentalLifecycle.complete(first, hours(5))
        RentalLifecycle.create(self.owner, self.booking(start_time=hours(6).isoformat(), customer_name='Next'))

        with self.assertRaises(ConflictError):
            RentalLifecycle.update(first, {'status': Rental.ACTIVE})
        first.refresh_from_db()
        self.assertEqual(first.status, Rental.COMPLETED)
        self.assertEqual(self.refresh_car().status, Car.RENTED)

    def test_editing_completed_rental_leaves_car_alone(self):
        first = RentalLifecycle.create(self.owner, self.booking())
        first = RentalLifecycle.complete(first, hours(5))
        RentalLifecycle.create(self.owner, self.booking(start_time=hours(6).isoformat(), customer_name='Next'))

        RentalLifecycle.update(first, {'chot': 25})
        self.assertEqual(self.refresh_car().status, Car.RENTED)

    def test_invalid_update_changes_nothing(self):
        rental = RentalLifecycle.create(self.owner, self.booking(end_time=hours(4).isoformat()))
        with self.assertRaises(ValidationError):
            RentalLifecycle.update(rental, {'end_time': hours(-1).isoformat(), 'chot': 500})
        with self.assertRaises(ValidationError):
            RentalLifecycle.update(rental, {'status': 'Cancelled'})
        with self.assertRaises(ValidationError):
            RentalLifecycle.update(rental, {'customer_name': '  '})
        rental.refresh_from_db()
        self.assertEqual(rental.chot, Decimal('0.00'))
        self.assertEqual(rental.end_time, hours(4))

    def test_completing_without_end_time_is_rejected(self):
        """A rental with no end time is still running; it cannot be Completed."""
        rental = RentalLifecycle.create(self.owner, self.booking())
        with self.assertRaises(ValidationError):
            RentalLifecycle.update(rental, {'status': Rental.COMPLETED})
        with self.assertRaises(ValidationError):
            RentalLifecycle.update(rental, {'status': Rental.COMPLETED, 'end_time': None})
        rental.refresh_from_db()
        self.assertEqual(rental.status, Rental.ACTIVE)
        self.assertIsNone(rental.end_time)
        self.assertEqual(self.refresh_car().status, Car.RENTED)

    def test_non_string_text_fields_are_coerced(self):
        rental = RentalLifecycle.create(self.owner, self.booking(customer_occupation=5, ghata_reason=None))
        self.assertEqual(rental.customer_occupation, '5')
        self.assertEqual(rental.ghata_reason, '')
        rental = RentalLifecycle.update(rental, {'deduction_reason': 42, 'customer_occupation': None})
        self.assertEqual(rental.deduction_reason, '42')
        self.assertEqual(rental.customer_occupation, '')

    def test_settle_flag_is_independent_of_status(self):
        rental = RentalLifecycle.create(self.owner, self.booking())
        rental = RentalLifecycle.settle(rental)
        self.assertTrue(rental.is_settled)
        self.assertEqual(rental.status, Rental.ACTIVE)
        rental = RentalLifecycle.settle(rental, 'false')
        self.assertFalse(rental.is_settled)

    def test_final_amount_cannot_be_written_directly(self):
        rental = RentalLifecycle.create(self.owner, self.booking(end_time=hours(2).isoformat()))
        rental.final_amount_collected = Decimal('99999')
        rental.save()
        rental.refresh_from_db()
        self.assertEqual(rental.final_amount_collected, Decimal('200.00'))


class RentalDeleteTest(RentalLifecycleTestBase):

    def test_deleting_active_rental_frees_car(self):
        rental = RentalLifecycle.create(self.owner, self.booking())
        RentalLifecycle.delete(rental)
        self.assertFalse(Rental.objects.exists())
        self.assertEqual(self.refresh_car().status, Car.AVAILABLE)

    def test_deleting_completed_rental_leaves_car_status(self):
        first = RentalLifecycle.create(self.owner, self.booking())
        first = RentalLifecycle.complete(first, hours(5))
        RentalLifecycle.create(self.owner, self.booking(start_time=hours(6).isoformat(), customer_name='Next'))

        RentalLifecycle.delete(first)
        self.assertEqual(self.refresh_car().status, Car.RENTED)

    def test_deleting_twice_is_not_found(self):
        rental = RentalLifecycle.create(self.owner, self.booking())
        RentalLifecycle.delete(rental)
        with self.assertRaises(NotFoundError):
            RentalLifecycle.delete(rental)


class RecalculateSettlementsCommandTest(RentalLifecycleTestBase):

    def test_fixes_stale_amounts(self):
        rental = RentalLifecycle.create(self.owner, self.booking(end_time=hours(26).isoformat(), chot=50))
        # simulate a row written when chot was subtracted
        Rental.objects.filter(pk=rental.pk).update(final_amount_collected=Decimal('1150.00'))

        out = StringIO()
        call_command('recalculate_settlements', '--dry-run', stdout=out)
        rental.refresh_from_db()
        self.assertEqual(rental.final_amount_collected, Decimal('1150.00'))
        self.assertIn('Would update 1', out.getvalue())

        out = StringIO()
        call_command('recalculate_settlements', stdout=out)
        rental.refresh_from_db()
        self.assertEqual(rental.final_amount_collected, Decimal('1250.00'))
        self.assertIn('Updated 1', out.getvalue())


class RentalAPITest(RentalLifecycleTestBase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(user=self.owner)

    def test_create_accepts_form_field_names(self):
        response = self.client.post(reverse('rental-list'), {
            'carId': self.car.pk,
            'startTime': T0.isoformat(),
            'endTime': hours(26).isoformat(),
            'customerName': 'Ravi Kumar',
            'customerPhone': '9876543210',
            'deductionAmount': 200,
            'chot': 50,
            'ghataAmount': 0,
            'manualTotalRent': '',
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['total_rent'], '1200.00')
        self.assertEqual(response.data['final_amount_collected'], '1050.00')
        self.assertEqual(response.data['duration_days'], 1)
        self.assertEqual(response.data['remaining_hours'], 2)
        self.assertEqual(self.refresh_car().status, Car.RENTED)

    def test_conflict_and_validation_status_codes(self):
        url = reverse('rental-list')
        self.assertEqual(self.client.post(url, self.booking(), format='json').status_code, 201)
        response = self.client.post(url, self.booking(), format='json')
        self.assertEqual(response.status_code, 409)
        self.assertIn('error', response.data)
        response = self.client.post(url, self.booking(customer_name=''), format='json')
        self.assertIn(response.status_code, (400, 409))

    def test_missing_fields_are_400(self):
        response = self.client.post(reverse('rental-list'), {'car_id': self.car.pk}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_complete_and_settle_actions(self):
        rental = RentalLifecycle.create(self.owner, self.booking())
        response = self.client.post(reverse('rental-complete', args=[rental.pk]),
                                    {'end_time': hours(2).isoformat()}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], Rental.COMPLETED)
        self.assertEqual(response.data['total_rent'], '200.00')
        self.assertEqual(self.refresh_car().status, Car.AVAILABLE)

        response = self.client.post(reverse('rental-settle', args=[rental.pk]), {}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['is_settled'])

    def test_patch_and_delete(self):
        rental = RentalLifecycle.create(self.owner, self.booking())
        response = self.client.patch(reverse('rental-detail', args=[rental.pk]),
                                     {'endTime': hours(1).isoformat()}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], Rental.COMPLETED)

        response = self.client.delete(reverse('rental-detail', args=[rental.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Rental.objects.exists())

    def test_list_is_scoped_filtered_and_paginated(self):
        RentalLifecycle.create(self.owner, self.booking())
        other_owner = User.objects.create_user(username='other', password='testpass')
        other_car = Car.objects.create(owner=other_owner, brand='Tata', model='Nexon', plate_number='KA01XY9999',
                                       hourly_rate=80, daily_rate=800)
        RentalLifecycle.create(other_owner, self.booking(car_id=other_car.pk))

        response = self.client.get(reverse('rental-list'), {'status': 'Active', 'search': 'swift'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['car']['plate_number'], 'MH12AB1234')

        response = self.client.get(reverse('rental-list'), {'status': 'Completed'})
        self.assertEqual(response.data['count'], 0)

    def test_completed_status_without_end_time_is_400(self):
        rental = RentalLifecycle.create(self.owner, self.booking())
        response = self.client.patch(reverse('rental-detail', args=[rental.pk]),
                                     {'status': Rental.COMPLETED}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('error', response.data)

    def test_numeric_occupation_is_accepted(self):
        response = self.client.post(reverse('rental-list'), self.booking(customer_occupation=5), format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['customer_occupation'], '5')

    def test_all_is_unpaginated_and_scoped(self):
        for index in range(12):
            car = Car.objects.create(owner=self.owner, brand='Maruti', model='Alto', plate_number=f'MH01ZZ{index:04d}',
                                     hourly_rate=50, daily_rate=500)
            RentalLifecycle.create(self.owner, self.booking(car_id=car.pk, customer_name=f'Customer {index}'))
        stranger = User.objects.create_user(username='stranger', password='testpass')
        other_car = Car.objects.create(owner=stranger, brand='Tata', model='Nexon', plate_number='KA01XY9999',
                                       hourly_rate=80, daily_rate=800)
        RentalLifecycle.create(stranger, self.booking(car_id=other_car.pk))

        response = self.client.get(reverse('rental-all-rentals'))
        self.assertEqual(response.status_code, 200)
        self.assertIsInstance(response.data, list)
        self.assertEqual(len(response.data), 12)

    def test_other_operator_cannot_touch_rental(self):
        rental = RentalLifecycle.create(self.owner, self.booking())
        stranger = User.objects.create_user(username='stranger', password='testpass')
        self.client.force_authenticate(user=stranger)
        response = self.client.delete(reverse('rental-detail', args=[rental.pk]))
        self.assertEqual(response.status_code, 404)
        self.assertTrue(Rental.objects.filter(pk=rental.pk).exists())
