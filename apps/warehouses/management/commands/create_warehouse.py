"""
Management command to create a warehouse and issue its API key.
"""
import secrets

from django.core.management.base import BaseCommand

from apps.core.auth import hash_api_key
from apps.warehouses.models import Warehouse


class Command(BaseCommand):
    help = 'Create a warehouse and print a new API key (only the hash is stored)'

    def add_arguments(self, parser):
        parser.add_argument('name', help='Warehouse name')

    def handle(self, *args, **options):
        api_key = secrets.token_hex(32)
        warehouse = Warehouse.objects.create(
            name=options['name'],
            api_key_hash=hash_api_key(api_key),
        )

        self.stdout.write(self.style.SUCCESS(f"Created warehouse {warehouse.name}"))
        self.stdout.write(f"warehouse_id: {warehouse.warehouse_id}")
        self.stdout.write(f"api_key: {api_key}")
        self.stdout.write(self.style.WARNING('Store the API key now; it cannot be shown again.'))
