from django.core.management.base import BaseCommand, CommandError
from billing.ledger import replay_balance
from billing.models import Customer

class Command(BaseCommand):
    help = 'Compare stored credit balances with the balances replayed from the credit ledger'

    def add_arguments(self, parser):
        parser.add_argument('--customer', type=int,
                            help='Only check this customer ID')
        parser.add_argument('--fail-on-drift', action='store_true',
                            help='Exit with an error when any balance differs from its ledger')

    def handle(self, *args, **options):
        customers = Customer.objects.order_by('pk')
        if options['customer'] is not None:
            customers = customers.filter(pk=options['customer'])
            if not customers.exists():
                raise CommandError(f'Customer {options["customer"]} not found.')

        checked = 0
        drifted = 0
        for customer in customers.iterator():
            checked += 1
            replayed = replay_balance(customer)
            if replayed != customer.credit_balance:
                drifted += 1
                self.stdout.write(
                    self.style.WARNING(
                        f'Drift for {customer}: stored P{customer.credit_balance}, '
                        f'ledger P{replayed} (difference P{customer.credit_balance - replayed})'
                    )
                )

        summary = f'Done. {checked} customers checked. {drifted} with drift.'
        if drifted and options['fail_on_drift']:
            raise CommandError(summary)
        self.stdout.write(self.style.SUCCESS(summary))
