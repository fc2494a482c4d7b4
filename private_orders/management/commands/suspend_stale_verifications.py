"""
Management command to suspend orders stuck in a verification step.
"""
from django.core.management.base import BaseCommand

from private_orders.services.orders import OrderWorkflowService


class Command(BaseCommand):
    help = 'Suspend orders whose client verification has been pending too long'

    def add_arguments(self, parser):
        parser.add_argument(
            '--hours',
            type=int,
            default=None,
            help='Hours a verification may stay unanswered (defaults to VERIFICATION_TIMEOUT_HOURS)',
        )

    def handle(self, *args, **options):
        suspended = OrderWorkflowService().suspend_stale_verifications(timeout_hours=options['hours'])
        for order_number in suspended:
            self.stdout.write(f'Suspended {order_number}')
        self.stdout.write(self.style.SUCCESS(f'Suspended {len(suspended)} orders'))
