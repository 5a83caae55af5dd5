"""
Management command to register the periodic stock alert scan and ledger verification.
"""
from django.core.management.base import BaseCommand
from django_celery_beat.models import PeriodicTask, CrontabSchedule
import json


SCHEDULES = [
    {
        'name': 'scan-stock-alerts',
        'task': 'apps.stocks.tasks.scan_stock_alerts',
        'minute': '0',
        'hour': '6',
        'description': 'daily at 6 AM UTC',
    },
    {
        'name': 'verify-ledger-balances',
        'task': 'apps.stocks.tasks.verify_ledger_balances',
        'minute': '30',
        'hour': '2',
        'description': 'daily at 2:30 AM UTC',
    },
]


class Command(BaseCommand):
    help = 'Set up the stock alert scan and ledger verification periodic tasks'

    def handle(self, *args, **options):
        for entry in SCHEDULES:
            schedule, created = CrontabSchedule.objects.get_or_create(
                minute=entry['minute'],
                hour=entry['hour'],
                day_of_week='*',
                day_of_month='*',
                month_of_year='*',
            )

            if created:
                self.stdout.write(
                    self.style.SUCCESS(f"Created crontab schedule for {entry['description']}")
                )
            else:
                self.stdout.write(f"Crontab schedule for {entry['description']} already exists")

            _, created = PeriodicTask.objects.update_or_create(
                name=entry['name'],
                defaults={
                    'task': entry['task'],
                    'crontab': schedule,
                    'enabled': True,
                    'kwargs': json.dumps({}),
                }
            )

            if created:
                self.stdout.write(
                    self.style.SUCCESS(f"Created periodic task: {entry['name']}")
                )
            else:
                self.stdout.write(f"Updated periodic task: {entry['name']}")

        self.stdout.write(self.style.SUCCESS('Stock schedules are in place'))
