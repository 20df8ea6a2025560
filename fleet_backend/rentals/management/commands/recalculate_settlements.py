from django.core.management.base import BaseCommand
from django.db import transaction
from rentals.models import Rental
from rentals.services import compute_final_amount


class Command(BaseCommand):
    help = 'Re-derive final_amount_collected for every rental (chot is added, deductions and ghata subtracted)'

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help='Only report the rentals that would change')

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        changed = 0
        with transaction.atomic():
            for rental in Rental.objects.select_for_update().order_by('pk'):
                expected = compute_final_amount(
                    rental.total_rent,
                    rental.manual_total_rent,
                    rental.deduction_amount,
                    rental.chot,
                    rental.ghata_amount,
                )
                if expected == rental.final_amount_collected:
                    continue
                changed += 1
                self.stdout.write(self.style.WARNING(
                    f"Rental #{rental.id}: {rental.final_amount_collected} -> {expected}"
                ))
                if not dry_run:
                    rental.save(update_fields=['final_amount_collected', 'updated_at'])
        verb = 'Would update' if dry_run else 'Updated'
        self.stdout.write(self.style.SUCCESS(f"{verb} {changed} rental(s)."))
