from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from accounts.models import Restaurant
from billing.models import SupplierBill
from billing.services import PaymentLedger


class Command(BaseCommand):
    help = 'Mark unpaid supplier bills past their due date as overdue'

    def add_arguments(self, parser):
        parser.add_argument(
            '--restaurant',
            type=int,
            help='Only check bills of this restaurant ID',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the bills that would be marked without changing them',
        )

    def handle(self, *args, **options):
        restaurant = None
        if options.get('restaurant'):
            try:
                restaurant = Restaurant.objects.get(pk=options['restaurant'])
            except Restaurant.DoesNotExist:
                raise CommandError(f"Restaurant {options['restaurant']} does not exist")

        if options['dry_run']:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No changes will be made'))
            bills = SupplierBill.objects.filter(
                due_date__lt=timezone.localdate(), outstanding_amount__gt=0,
            ).exclude(status__in=['paid', 'cancelled', 'overdue'])
            if restaurant is not None:
                bills = bills.filter(restaurant=restaurant)
            for bill in bills:
                self.stdout.write(f"{bill.bill_number}: {bill.outstanding_amount} due {bill.due_date}")
            self.stdout.write(f"{bills.count()} bill(s) would be marked overdue")
            return

        result = PaymentLedger().mark_overdue(restaurant=restaurant)
        for bill_number in result.bill_numbers:
            self.stdout.write(f"Marked {bill_number} overdue")
        self.stdout.write(self.style.SUCCESS(
            f"{result.marked_count} bill(s) marked overdue, {result.total_overdue} outstanding"
        ))
