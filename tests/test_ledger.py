"""
Stock ledger: applying, rejecting, listing and replaying movements.
"""
import threading
import unittest
import uuid
from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock

from django.db import DatabaseError, IntegrityError, connection, connections, transaction
from django.db.models import Max, Q
from django.test import TestCase, TransactionTestCase

from apps.core.auth import hash_api_key
from apps.products.models import Product
from apps.products.services import create_product
from apps.stocks import ledger
from apps.stocks.exceptions import (
    InsufficientStockError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from apps.stocks.models import ImmutableMovementError, MovementType, StockMovement
from apps.stocks.status import StockStatus, stock_status
from apps.warehouses.models import Warehouse

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)


class LedgerTestCase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.warehouse = Warehouse.objects.create(name='Central Pharmacy', api_key_hash=hash_api_key('central-key'))
        cls.other_warehouse = Warehouse.objects.create(name='Branch', api_key_hash=hash_api_key('branch-key'))
        cls.product = create_product(
            cls.warehouse, 'AMOX-500', 'Amoxicillin 500mg',
            unit='box', reorder_level=50, initial_quantity=100,
        )

    def apply(self, movement_type, quantity, reason='Sale', **kwargs):
        return ledger.apply_movement(self.product.product_id, movement_type, quantity, reason, **kwargs)

    def movement_count(self):
        return StockMovement.objects.filter(product=self.product).count()

    def dated_product(self, sku, opening, opened_at):
        """Product whose opening stock is posted at a fixed time, so dated movements order cleanly."""
        product = Product.objects.create(warehouse=self.warehouse, sku=sku, name=sku, reorder_level=50)
        ledger.apply_movement(product.product_id, 'in', opening, 'Initial Stock', now=opened_at)
        product.refresh_from_db()
        return product


class CreateProductTest(LedgerTestCase):

    def test_opening_stock_goes_through_ledger(self):
        self.assertEqual(self.product.quantity, 100)
        movement = StockMovement.objects.get(product=self.product)
        self.assertEqual(movement.movement_type, 'in')
        self.assertEqual(movement.reason, 'Initial Stock')
        self.assertEqual(movement.sequence, 1)
        self.assertEqual(movement.balance_before, 0)
        self.assertEqual(movement.balance_after, 100)

    def test_opening_stock_reason_is_a_suggested_in_reason(self):
        movement = StockMovement.objects.get(product=self.product)
        self.assertEqual(movement.reason, ledger.INITIAL_STOCK_REASON)
        self.assertIn(movement.reason, ledger.MOVEMENT_REASONS[MovementType.IN])

    def test_zero_opening_stock_has_no_movement(self):
        product = create_product(self.warehouse, 'PARA-500', 'Paracetamol 500mg')
        self.assertEqual(product.quantity, 0)
        self.assertFalse(StockMovement.objects.filter(product=product).exists())

    def test_negative_opening_stock_rejected(self):
        with self.assertRaises(ValidationError):
            create_product(self.warehouse, 'IBU-200', 'Ibuprofen 200mg', initial_quantity=-1)
        self.assertFalse(Product.objects.filter(sku='IBU-200').exists())


class ApplyMovementTest(LedgerTestCase):

    def test_out_over_balance_rejected(self):
        with self.assertRaises(InsufficientStockError) as ctx:
            self.apply('out', 101)
        self.assertEqual(ctx.exception.quantity, 101)
        self.assertEqual(ctx.exception.balance, 100)
        self.assertIn('requested 101, available 100', str(ctx.exception))

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 100)
        self.assertEqual(self.movement_count(), 1)

    def test_out_within_balance_leaves_low_stock(self):
        result = self.apply('out', 55)
        self.assertEqual(result.balance, 45)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 45)
        self.assertEqual(stock_status(self.product.quantity, self.product.reorder_level), StockStatus.LOW_STOCK)

    def test_out_below_balance_is_not_rejected(self):
        result = self.apply('out', 60)
        self.assertEqual(result.balance, 40)

    def test_out_of_entire_balance(self):
        result = self.apply('out', 100)
        self.assertEqual(result.balance, 0)

    def test_adjustment_overwrites_balance(self):
        self.apply('out', 55)
        result = self.apply('adjustment', 30, reason='Physical Count Correction')
        self.assertEqual(result.balance, 30)
        self.assertEqual(result.movement.balance_before, 45)
        self.assertEqual(result.movement.balance_after, 30)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 30)

    def test_adjustment_above_balance(self):
        result = self.apply('adjustment', 250, reason='Audit Adjustment')
        self.assertEqual(result.balance, 250)

    def test_movement_records_snapshot_and_metadata(self):
        result = self.apply('in', 20, reason='  New Purchase  ', reference='PO-1001',
                            notes='Supplier delivery', actor='pharmacist1', now=NOW)
        movement = result.movement
        self.assertEqual(movement.reason, 'New Purchase')
        self.assertEqual(movement.reference, 'PO-1001')
        self.assertEqual(movement.notes, 'Supplier delivery')
        self.assertEqual(movement.created_by, 'pharmacist1')
        self.assertEqual(movement.created_at, NOW)
        self.assertEqual(movement.sequence, 2)
        self.assertEqual(movement.delta, 20)
        self.product.refresh_from_db()
        self.assertEqual(self.product.last_stock_update, NOW)

    def test_balances_chain(self):
        first = self.apply('in', 5, reason='New Purchase')
        second = self.apply('in', 5, reason='New Purchase')
        self.assertEqual((first.movement.balance_before, first.movement.balance_after), (100, 105))
        self.assertEqual((second.movement.balance_before, second.movement.balance_after), (105, 110))
        self.assertEqual(second.movement.sequence, first.movement.sequence + 1)

    def test_invalid_movement_type(self):
        with self.assertRaises(ValidationError):
            self.apply('transfer', 5)
        self.assertEqual(self.movement_count(), 1)

    def test_invalid_quantities(self):
        for quantity in (0, -5, 2.5, '5', True, None):
            with self.subTest(quantity=quantity):
                with self.assertRaises(ValidationError):
                    self.apply('in', quantity)
        self.assertEqual(self.movement_count(), 1)

    def test_adjustment_to_zero_rejected(self):
        with self.assertRaises(ValidationError):
            self.apply('adjustment', 0, reason='Physical Count Correction')

    def test_blank_reason(self):
        for reason in ('', '   ', None):
            with self.subTest(reason=reason):
                with self.assertRaises(ValidationError):
                    self.apply('in', 5, reason=reason)

    def test_unknown_product(self):
        with self.assertRaises(NotFoundError):
            ledger.apply_movement(uuid.uuid4(), 'in', 5, 'New Purchase')

    def test_malformed_product_id(self):
        with self.assertRaises(NotFoundError):
            ledger.apply_movement('not-a-uuid', 'in', 5, 'New Purchase')

    def test_inactive_product(self):
        Product.objects.filter(pk=self.product.pk).update(active=False)
        with self.assertRaises(NotFoundError):
            self.apply('in', 5, reason='New Purchase')

    def test_product_of_another_warehouse(self):
        with self.assertRaises(NotFoundError):
            self.apply('in', 5, reason='New Purchase', warehouse_id=self.other_warehouse.warehouse_id)
        result = self.apply('in', 5, reason='New Purchase', warehouse_id=self.warehouse.warehouse_id)
        self.assertEqual(result.balance, 105)

    def test_database_failure_becomes_persistence_error(self):
        with mock.patch.object(StockMovement.objects, 'create', side_effect=DatabaseError('disk full')):
            with self.assertRaises(PersistenceError) as ctx:
                self.apply('in', 5, reason='New Purchase')
        self.assertIsInstance(ctx.exception.__cause__, DatabaseError)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 100)

    def test_error_payload(self):
        with self.assertRaises(InsufficientStockError) as ctx:
            self.apply('out', 500)
        payload = ctx.exception.to_dict()
        self.assertEqual(payload['code'], 'insufficient_stock')
        self.assertEqual(payload['product_id'], str(self.product.product_id))
        self.assertEqual(payload['quantity'], 500)
        self.assertEqual(payload['balance'], 100)


class MovementImmutabilityTest(LedgerTestCase):

    def test_movement_cannot_be_updated(self):
        movement = StockMovement.objects.get(product=self.product)
        movement.quantity = 1
        with self.assertRaises(ImmutableMovementError):
            movement.save()
        movement.refresh_from_db()
        self.assertEqual(movement.quantity, 100)

    def test_movement_cannot_be_deleted(self):
        movement = StockMovement.objects.get(product=self.product)
        with self.assertRaises(ImmutableMovementError):
            movement.delete()
        self.assertEqual(self.movement_count(), 1)


class ReplayTest(LedgerTestCase):

    def test_next_balance(self):
        self.assertEqual(ledger.next_balance(10, 'in', 5), 15)
        self.assertEqual(ledger.next_balance(10, 'out', 5), 5)
        self.assertEqual(ledger.next_balance(10, 'adjustment', 5), 5)
        with self.assertRaises(ValidationError):
            ledger.next_balance(10, 'transfer', 5)

    def test_replay_matches_stored_quantity(self):
        self.apply('out', 55)
        self.apply('in', 20, reason='New Purchase')
        self.apply('adjustment', 30, reason='Physical Count Correction')
        self.apply('out', 7)

        movements = StockMovement.objects.filter(product=self.product).order_by('sequence')
        self.product.refresh_from_db()
        self.assertEqual(ledger.replay_balance(movements), self.product.quantity)
        self.assertEqual(self.product.quantity, 23)

    def test_replay_up_to_a_point_in_time(self):
        product = self.dated_product('LORA-10', 100, NOW - timedelta(days=10))
        ledger.apply_movement(product.product_id, 'out', 55, 'Sale', now=NOW - timedelta(days=3))
        ledger.apply_movement(product.product_id, 'adjustment', 30, 'Audit Adjustment', now=NOW - timedelta(days=2))
        ledger.apply_movement(product.product_id, 'in', 10, 'New Purchase', now=NOW - timedelta(days=1))

        def balance_as_of(moment):
            movements = (
                StockMovement.objects
                .filter(product=product, created_at__lte=moment)
                .order_by('sequence')
            )
            return ledger.replay_balance(movements)

        self.assertEqual(balance_as_of(NOW - timedelta(days=3)), 45)
        self.assertEqual(balance_as_of(NOW - timedelta(days=2)), 30)
        self.assertEqual(balance_as_of(NOW), 40)

    def test_every_snapshot_chains(self):
        for quantity in (5, 12, 3):
            self.apply('out', quantity)
        movements = list(StockMovement.objects.filter(product=self.product).order_by('sequence'))
        for previous, current in zip(movements, movements[1:]):
            self.assertEqual(current.balance_before, previous.balance_after)


class ListMovementsTest(LedgerTestCase):

    def setUp(self):
        self.dated = self.dated_product('LISI-10', 100, NOW - timedelta(days=60))
        pid = self.dated.product_id
        ledger.apply_movement(pid, 'out', 10, 'Sale', reference='RX-1', actor='alice', now=NOW - timedelta(days=40))
        ledger.apply_movement(pid, 'in', 25, 'New Purchase', reference='PO-77', actor='bob',
                              now=NOW - timedelta(days=20))
        ledger.apply_movement(pid, 'out', 5, 'Damaged - Disposed', actor='alice', now=NOW - timedelta(days=3))
        ledger.apply_movement(pid, 'adjustment', 90, 'Audit Adjustment', actor='carol',
                              now=NOW - timedelta(hours=1))

    def listing(self, **filters):
        return ledger.list_movements(self.dated.product_id, now=NOW, **filters)

    def test_newest_first(self):
        self.assertEqual([m.sequence for m in self.listing()], [5, 4, 3, 2, 1])

    def test_filter_by_type(self):
        self.assertEqual([m.quantity for m in self.listing(movement_type='out')], [5, 10])
        self.assertEqual(len(self.listing(movement_type='all')), 5)

    def test_filter_by_date_range(self):
        week = self.listing(date_range='7days')
        self.assertEqual([m.movement_type for m in week], ['adjustment', 'out'])
        self.assertEqual(len(self.listing(date_range='30days')), 3)
        self.assertEqual(len(self.listing(date_range='90days')), 5)
        self.assertEqual(len(self.listing(date_range='all')), 5)

    def test_search_text(self):
        self.assertEqual(len(self.listing(search_text='ALICE')), 2)
        self.assertEqual([m.quantity for m in self.listing(search_text='po-77')], [25])
        self.assertEqual([m.quantity for m in self.listing(search_text='damaged')], [5])

    def test_filters_combine(self):
        movements = self.listing(movement_type='out', date_range='30days', search_text='alice')
        self.assertEqual([m.quantity for m in movements], [5])

    def test_limit(self):
        self.assertEqual([m.sequence for m in self.listing(limit=2)], [5, 4])

    def test_non_positive_limit_rejected(self):
        for limit in (0, -1):
            with self.subTest(limit=limit):
                with self.assertRaises(ValidationError):
                    self.listing(limit=limit)

    def test_balances_follow_history(self):
        self.assertEqual([m.balance_after for m in self.listing()], [90, 110, 115, 90, 100])

    def test_invalid_filters(self):
        with self.assertRaises(ValidationError):
            self.listing(date_range='yesterday')
        with self.assertRaises(ValidationError):
            self.listing(movement_type='transfer')

    def test_unknown_product(self):
        with self.assertRaises(NotFoundError):
            ledger.list_movements(uuid.uuid4(), now=NOW)

    def test_listing_does_not_change_stock(self):
        self.listing()
        self.dated.refresh_from_db()
        self.assertEqual(self.dated.quantity, 90)


class MovementSerializationTest(LedgerTestCase):
    """Write-path guarantees that hold on every database backend."""

    def test_product_row_is_locked_for_the_write(self):
        with mock.patch.object(ledger, 'get_product', wraps=ledger.get_product) as get_product:
            self.apply('in', 5, 'New Purchase')
        get_product.assert_called_once_with(self.product.product_id, warehouse_id=None, for_update=True)

    def test_duplicate_sequence_rejected_by_database(self):
        first = StockMovement.objects.get(product=self.product)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                StockMovement.objects.create(
                    product=self.product, sequence=first.sequence, movement_type='in', quantity=1,
                    reason='New Purchase', balance_before=100, balance_after=101, created_at=NOW,
                )
        self.assertEqual(self.movement_count(), 1)

    def test_stale_sequence_becomes_persistence_error(self):
        # Another writer took the next sequence between the read and the insert
        with mock.patch.object(ledger, 'Max', side_effect=lambda field: Max(field, filter=Q(sequence__lt=0))):
            with self.assertRaises(PersistenceError):
                self.apply('in', 5, 'New Purchase')
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 100)
        self.assertEqual(self.movement_count(), 1)


@unittest.skipUnless(connection.vendor == 'postgresql', 'row locks need PostgreSQL')
class ConcurrentMovementTest(TransactionTestCase):

    def setUp(self):
        warehouse = Warehouse.objects.create(name='Central Pharmacy', api_key_hash=hash_api_key('central-key'))
        self.product = create_product(warehouse, 'CETI-10', 'Cetirizine 10mg', initial_quantity=10)

    def test_concurrent_in_movements_serialize(self):
        barrier = threading.Barrier(2)
        errors = []

        def worker():
            try:
                barrier.wait()
                ledger.apply_movement(self.product.product_id, 'in', 5, 'New Purchase')
            except Exception as e:
                errors.append(e)
            finally:
                connections.close_all()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 20)

        movements = list(
            StockMovement.objects.filter(product=self.product, reason='New Purchase').order_by('sequence')
        )
        self.assertEqual(
            [(m.balance_before, m.balance_after) for m in movements],
            [(10, 15), (15, 20)],
        )
