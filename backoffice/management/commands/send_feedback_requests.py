"""
Management command: send feedback request pushes for orders whose
feedback_send_at has passed. Run hourly via cron. Safe to run multiple times:
every processed order is marked feedback_sent, sent or not.
"""
from django.core.management.base import BaseCommand
from django.utils import timezone

from backoffice import fcm
from backoffice.models import Order

REJECTED_TOKEN_ERROR = 'FCM rejected the customer token'


class Command(BaseCommand):
    help = 'Send feedback requests for orders with feedback_send_at <= now'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=50,
            help='Maximum number of orders to process per run',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only print what would be sent, do not send or save',
        )

    def handle(self, *args, **options):
        now = timezone.now()
        qs = (
            Order.objects.filter(feedback_sent=False, feedback_send_at__lte=now)
            .select_related('business')
            .order_by('feedback_send_at')[:options['limit']]
        )
        orders = list(qs)
        if not orders:
            self.stdout.write(self.style.SUCCESS('No feedback requests due.'))
            return
        if options['dry_run']:
            for o in orders:
                self.stdout.write(f'Would request feedback: order={o.order_number} due={o.feedback_send_at}')
            self.stdout.write(self.style.WARNING(f'Dry run: {len(orders)} feedback request(s) due.'))
            return

        sent = skipped = failed = 0
        for o in orders:
            if o.has_rating or not o.customer_fcm_token:
                Order.objects.filter(pk=o.pk).update(feedback_sent=True)
                skipped += 1
                continue
            business_name = o.business.name if o.business else 'Business'
            try:
                delivered = fcm.send_fcm_to_token(
                    o.customer_fcm_token,
                    'How was your order?',
                    f'Were you happy with your order from {business_name}?',
                    data={
                        'type': 'feedback_request',
                        'orderId': o.pk,
                        'businessId': o.business_id,
                        'businessName': business_name,
                    },
                )
            except Exception as e:
                # Marked as sent so a broken token does not retry forever
                Order.objects.filter(pk=o.pk).update(feedback_sent=True, feedback_error=str(e))
                self.stderr.write(f'Feedback request failed for order {o.order_number}: {e}')
                failed += 1
                continue
            if not delivered:
                Order.objects.filter(pk=o.pk).update(feedback_sent=True, feedback_error=REJECTED_TOKEN_ERROR)
                self.stderr.write(f'FCM rejected the token for order {o.order_number}')
                failed += 1
                continue
            Order.objects.filter(pk=o.pk).update(feedback_sent=True, feedback_sent_at=timezone.now())
            sent += 1

        self.stdout.write(self.style.SUCCESS(
            f'Feedback requests: {sent} sent, {skipped} skipped, {failed} failed.'
        ))
