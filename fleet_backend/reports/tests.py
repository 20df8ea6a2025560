from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from cars.models import Car
from fleet_backend.exceptions import ValidationError
from rentals.models import Rental
from .services import month_window, rental_report, stats_report

User = get_user_model()


def at(year, month, day, hour=10):
    return datetime(year, month, day, hour, 0, tzinfo=dt_timezone.utc)


class ReportTestBase(TestCase):

    def setUp(self):
        self.owner = User.objects.create_user(username='operator', password='testpass')
        self.swift = Car.objects.create(owner=self.owner, brand='Maruti', model='Swift', plate_number='MH12AB1234',
                                        hourly_rate=100, daily_rate=1000)
        self.creta = Car.objects.create(owner=self.owner, brand='Hyundai', model='Creta', plate_number='MH12CD5678',
                                        hourly_rate=150, daily_rate=1500)

    def rental(self, car, start, end=None, total='0', **extra):
        fields = {
            'car': car,
            'owner': self.owner,
            'start_time': start,
            'end_time': end,
            'customer_name': 'Customer',
            'customer_phone': '9000000000',
            'total_rent': Decimal(total),
            'status': Rental.COMPLETED if end else Rental.ACTIVE,
        }
        fields.update(extra)
        return Rental.objects.create(**fields)


class MonthWindowTest(TestCase):

    def test_window_spans_whole_month(self):
        start, end = month_window('2024-02')
        self.assertEqual((start.year, start.month, start.day), (2024, 2, 1))
        self.assertEqual((end.year, end.month, end.day), (2024, 3, 1))

    def test_december_rolls_into_next_year(self):
        start, end = month_window('2023-12')
        self.assertEqual((end.year, end.month), (2024, 1))

    def test_bad_month_is_rejected(self):
        for value in ('2024-13', '2024-2', 'Feb 2024', '', '0000-01', '9999-12'):
            with self.assertRaises(ValidationError):
                month_window(value)


class RentalReportTest(ReportTestBase):

    def test_default_leaves_out_running_rentals(self):
        self.rental(self.swift, at(2024, 1, 5), at(2024, 1, 6), total='1000')
        self.rental(self.creta, at(2024, 1, 7))
        report = rental_report(self.owner)
        self.assertEqual(report['count'], 1)
        self.assertEqual(report['total_collected'], Decimal('1000.00'))
        self.assertEqual(report['completed_count'], 1)
        self.assertEqual(report['active_count'], 0)

    def test_month_windows_on_end_time(self):
        # booked in January, returned in February
        self.rental(self.swift, at(2024, 1, 31), at(2024, 2, 1), total='1000')
        self.rental(self.creta, at(2024, 1, 10), at(2024, 1, 11), total='1500')

        january = rental_report(self.owner, month='2024-01')
        february = rental_report(self.owner, month='2024-02')
        self.assertEqual(january['total_collected'], Decimal('1500.00'))
        self.assertEqual(february['total_collected'], Decimal('1000.00'))

    def test_date_range_beats_month_and_includes_end_day(self):
        self.rental(self.swift, at(2024, 3, 1), at(2024, 3, 10, hour=23), total='900')
        self.rental(self.swift, at(2024, 3, 11), at(2024, 3, 12), total='400')

        report = rental_report(self.owner, month='2024-01', start_date='2024-03-01', end_date='2024-03-10')
        self.assertEqual(report['count'], 1)
        self.assertEqual(report['total_collected'], Decimal('900.00'))

    def test_single_date_is_ignored(self):
        self.rental(self.swift, at(2024, 3, 1), at(2024, 3, 2), total='900')
        report = rental_report(self.owner, start_date='2025-01-01')
        self.assertEqual(report['count'], 1)

    def test_reversed_dates_are_rejected(self):
        with self.assertRaises(ValidationError):
            rental_report(self.owner, start_date='2024-03-10', end_date='2024-03-01')

    def test_out_of_range_dates_are_rejected(self):
        with self.assertRaises(ValidationError):
            rental_report(self.owner, start_date='9999-12-01', end_date='9999-12-31')
        with self.assertRaises(ValidationError):
            rental_report(self.owner, start_date='0000-01-01', end_date='2024-01-01')

    def test_car_filter(self):
        self.rental(self.swift, at(2024, 1, 5), at(2024, 1, 6), total='1000')
        self.rental(self.creta, at(2024, 1, 5), at(2024, 1, 6), total='1500')
        report = rental_report(self.owner, car_id=str(self.creta.pk))
        self.assertEqual(report['count'], 1)
        self.assertEqual(report['rentals'][0].car, self.creta)
        with self.assertRaises(ValidationError):
            rental_report(self.owner, car_id='abc')

    def test_include_active_windows_on_start_time(self):
        self.rental(self.swift, at(2024, 2, 3))
        self.rental(self.creta, at(2024, 1, 31), at(2024, 2, 1), total='1500')

        report = rental_report(self.owner, month='2024-02', include_active=True)
        self.assertEqual(report['count'], 1)
        self.assertEqual(report['active_count'], 1)

        report = rental_report(self.owner, include_active=True)
        self.assertEqual(report['count'], 2)

    def test_no_matches_gives_zero(self):
        report = rental_report(self.owner, month='2030-05')
        self.assertEqual(report['count'], 0)
        self.assertEqual(report['total_collected'], Decimal('0.00'))
        self.assertEqual(report['rentals'], [])

    def test_total_uses_settlement_not_base_rent(self):
        self.rental(self.swift, at(2024, 1, 5), at(2024, 1, 6), total='1200',
                    deduction_amount=Decimal('200'), chot=Decimal('50'))
        report = rental_report(self.owner, month='2024-01')
        self.assertEqual(report['total_collected'], Decimal('1050.00'))

    def test_other_operators_rentals_are_not_counted(self):
        stranger = User.objects.create_user(username='stranger', password='testpass')
        car = Car.objects.create(owner=stranger, brand='Tata', model='Nexon', plate_number='KA01XY9999',
                                 hourly_rate=80, daily_rate=800)
        Rental.objects.create(car=car, owner=stranger, start_time=at(2024, 1, 5), end_time=at(2024, 1, 6),
                              customer_name='X', customer_phone='1', total_rent=Decimal('800'),
                              status=Rental.COMPLETED)
        self.assertEqual(rental_report(self.owner)['count'], 0)
        self.assertEqual(rental_report()['count'], 1)


class StatsReportTest(ReportTestBase):

    def setUp(self):
        super().setUp()
        self.rental(self.swift, at(2024, 1, 31), at(2024, 2, 1), total='1000', is_settled=True)
        self.rental(self.swift, at(2024, 2, 10), at(2024, 2, 11), total='1000', ghata_amount=Decimal('100'))
        self.rental(self.creta, at(2024, 2, 12), total='0', chot=Decimal('50'))

    def test_monthly_groups_by_start_month(self):
        stats = stats_report(self.owner)
        self.assertEqual([row['month'] for row in stats['monthly']], ['2024-02', '2024-01'])
        february, january = stats['monthly']
        self.assertEqual(january['total_collected'], Decimal('1000.00'))
        self.assertEqual(january['count'], 1)
        self.assertEqual(february['total_collected'], Decimal('950.00'))
        self.assertEqual(february['count'], 2)

    def test_lists_keep_top_cars_and_recent_months(self):
        for index in range(11):
            car = Car.objects.create(owner=self.owner, brand='Maruti', model='Alto', plate_number=f'MH01ZZ{index:04d}',
                                     hourly_rate=50, daily_rate=500)
            self.rental(car, at(2022, index + 1, 5), at(2022, index + 1, 6), total=str(2000 + index))
        stats = stats_report(self.owner)
        self.assertEqual(len(stats['per_car']), 10)
        self.assertEqual(stats['per_car'][0]['plate_number'], 'MH01ZZ0010')
        self.assertNotIn('MH12CD5678', [row['plate_number'] for row in stats['per_car']])
        self.assertEqual(len(stats['monthly']), 12)
        self.assertEqual(stats['monthly'][0]['month'], '2024-02')
        self.assertEqual(stats['monthly'][-1]['month'], '2022-02')
        # overall still counts everything
        self.assertEqual(stats['overall']['count'], 14)

    def test_per_car_totals_sorted_by_revenue(self):
        stats = stats_report(self.owner)
        swift, creta = stats['per_car']
        self.assertEqual(swift['plate_number'], 'MH12AB1234')
        self.assertEqual(swift['total_collected'], Decimal('1900.00'))
        self.assertEqual(swift['count'], 2)
        self.assertEqual(creta['brand'], 'Hyundai')
        self.assertEqual(creta['total_collected'], Decimal('50.00'))

    def test_overall(self):
        overall = stats_report(self.owner)['overall']
        self.assertEqual(overall['total_collected'], Decimal('1950.00'))
        self.assertEqual(overall['count'], 3)
        self.assertEqual(overall['active_count'], 1)
        self.assertEqual(overall['completed_count'], 2)
        self.assertEqual(overall['pending_settlement'], 2)
        self.assertEqual(overall['total_ghata'], Decimal('100.00'))
        self.assertEqual(overall['total_chot'], Decimal('50.00'))
        self.assertEqual(overall['total_deductions'], Decimal('0.00'))

    def test_empty_fleet(self):
        stranger = User.objects.create_user(username='stranger', password='testpass')
        stats = stats_report(stranger)
        self.assertEqual(stats['per_car'], [])
        self.assertEqual(stats['monthly'], [])
        self.assertEqual(stats['overall']['total_collected'], Decimal('0.00'))


class ReportAPITest(ReportTestBase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(user=self.owner)
        self.rental(self.swift, at(2024, 1, 5), at(2024, 1, 6), total='1000')
        self.rental(self.creta, at(2024, 1, 7))

    def test_rent_report(self):
        response = self.client.get(reverse('rental-report'), {'carId': self.swift.pk, 'month': '2024-01'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['meta']['count'], 1)
        self.assertEqual(response.data['meta']['total_collected'], Decimal('1000.00'))
        self.assertEqual(response.data['rentals'][0]['car']['plate_number'], 'MH12AB1234')

    def test_include_active_flag(self):
        response = self.client.get(reverse('rental-report'), {'includeActive': 'true'})
        self.assertEqual(response.data['meta']['count'], 2)

    def test_bad_month_is_400(self):
        response = self.client.get(reverse('rental-report'), {'month': '01-2024'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('error', response.data)
        for month in ('0000-01', '9999-12'):
            response = self.client.get(reverse('rental-report'), {'month': month})
            self.assertEqual(response.status_code, 400)

    def test_stats(self):
        response = self.client.get(reverse('stats-report'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['overall']['count'], 2)
        self.assertEqual(len(response.data['per_car']), 2)
