#!/usr/bin/env python3
"""
Synthetic Stock Movement Generator

Generates realistic NDJSON stock movement files for a set of products, ready
to be posted to the bulk movements endpoint. Each product's sequence is
simulated against a running balance so generated 'out' movements never exceed
the stock on hand and 'adjustment' lines always carry a positive new total.

Usage:
    python gen_movements.py --product-ids <id1>,<id2> --movements-per-product 200
    python gen_movements.py --products-file product_ids.txt --preset medium
    python gen_movements.py --products-file product_ids.txt --chunk-size 5000 --seed 7
"""

import argparse
import json
import random
import time
from pathlib import Path
from typing import Dict, Generator, List
from faker import Faker
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class MovementGenerator:
    """Generates movement lines for pharmacy products."""

    def __init__(self, seed: int = 42):
        """Initialize the generator with a seed for reproducibility."""
        random.seed(seed)
        Faker.seed(seed)
        self.fake = Faker()

        self._in_reasons = [
            'New Purchase', 'Return from Customer', 'Transfer from Another Location',
            'Correction - Count Error', 'Donation Received',
        ]
        self._out_reasons = [
            'Sale', 'Expired - Disposed', 'Damaged - Disposed', 'Transfer to Another Location',
            'Correction - Count Error', 'Theft/Loss',
        ]
        self._adjustment_reasons = [
            'Physical Count Correction', 'System Error Correction', 'Audit Adjustment', 'Reconciliation',
        ]

    def _reference(self, movement_type: str) -> str:
        prefix = {'in': 'PO', 'out': 'RX', 'adjustment': 'ADJ'}[movement_type]
        return self.fake.bothify(text=f"{prefix}-####-??").upper()

    def generate_movements(self, product_id: str, count: int,
                           opening_balance: int = 0) -> Generator[Dict, None, None]:
        """Generate `count` movements for a product starting from opening_balance."""
        balance = opening_balance
        staff = [self.fake.name() for _ in range(3)]

        for i in range(count):
            roll = random.random()
            if balance == 0 or (i == 0 and opening_balance == 0):
                movement_type = 'in'
            elif roll < 0.05:
                movement_type = 'adjustment'
            elif roll < 0.35:
                movement_type = 'in'
            else:
                movement_type = 'out'

            if movement_type == 'in':
                quantity = random.randint(20, 200)
                reason = 'Initial Stock' if i == 0 and opening_balance == 0 else random.choice(self._in_reasons)
                balance += quantity
            elif movement_type == 'out':
                quantity = random.randint(1, min(balance, 30))
                reason = random.choice(self._out_reasons)
                balance -= quantity
            else:
                # Counted stock drifts a little from the book balance
                quantity = max(1, balance + random.randint(-5, 5))
                reason = random.choice(self._adjustment_reasons)
                balance = quantity

            yield {
                'product_id': product_id,
                'type': movement_type,
                'quantity': quantity,
                'reason': reason,
                'reference': self._reference(movement_type) if random.random() < 0.8 else None,
                'notes': self.fake.sentence() if random.random() < 0.2 else None,
                'created_by': random.choice(staff),
            }


class MovementWriter:
    """Writes movement lines to NDJSON files."""

    def __init__(self, output_dir: str = "generated_movements"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(exist_ok=True)

    def write_ndjson(self, data: List[Dict], filename: str) -> str:
        filepath = self.output_dir / filename
        with open(filepath, 'w', encoding='utf-8') as f:
            for record in data:
                f.write(json.dumps(record) + '\n')
        return str(filepath)

    def write_chunked(self, data: Generator[Dict, None, None], filename: str,
                      chunk_size: int = 10000) -> List[str]:
        """Write data in chunks; line order is preserved across chunk files."""
        chunk_files = []
        chunk_data = []
        chunk_num = 0

        for record in data:
            chunk_data.append(record)
            if len(chunk_data) >= chunk_size:
                chunk_files.append(self.write_ndjson(chunk_data, f"{filename}_chunk_{chunk_num:04d}.ndjson"))
                chunk_data = []
                chunk_num += 1

        if chunk_data:
            chunk_files.append(self.write_ndjson(chunk_data, f"{filename}_chunk_{chunk_num:04d}.ndjson"))

        return chunk_files


def load_product_ids(args) -> List[str]:
    product_ids: List[str] = []
    if args.product_ids:
        product_ids.extend(p.strip() for p in args.product_ids.split(',') if p.strip())
    if args.products_file:
        with open(args.products_file, 'r', encoding='utf-8') as f:
            product_ids.extend(line.strip() for line in f if line.strip())
    return product_ids


def main():
    """Generate movement files for the given products."""
    parser = argparse.ArgumentParser(description='Generate synthetic stock movements')

    parser.add_argument('--product-ids', help='Comma separated product IDs')
    parser.add_argument('--products-file', help='File with one product ID per line')
    parser.add_argument('--movements-per-product', type=int, default=100, help='Movements per product')
    parser.add_argument('--opening-balance', type=int, default=0,
                        help='Current quantity of every product before the generated movements')
    parser.add_argument('--preset', choices=['small', 'medium', 'large'], help='Use preset configuration')
    parser.add_argument('--chunk-size', type=int, default=10000, help='Lines per output file')
    parser.add_argument('--output-dir', default='generated_movements', help='Output directory')
    parser.add_argument('--seed', type=int, default=42, help='Random seed')
    parser.add_argument('--verbose', action='store_true', help='Verbose output')

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.preset:
        presets = {'small': 20, 'medium': 500, 'large': 5000}
        args.movements_per_product = presets[args.preset]

    product_ids = load_product_ids(args)
    if not product_ids:
        parser.error('provide --product-ids or --products-file')

    logger.info(f"Generating {args.movements_per_product} movements for {len(product_ids)} products")

    generator = MovementGenerator(seed=args.seed)
    writer = MovementWriter(args.output_dir)
    start_time = time.time()

    def all_movements():
        for product_id in product_ids:
            yield from generator.generate_movements(
                product_id, args.movements_per_product, args.opening_balance
            )

    files = writer.write_chunked(all_movements(), 'movements', args.chunk_size)

    elapsed = time.time() - start_time
    total = len(product_ids) * args.movements_per_product
    logger.info(f"Wrote {total} movements to {len(files)} files in {elapsed:.2f}s")
    for filepath in files:
        logger.debug(f"  {filepath}")


if __name__ == "__main__":
    main()
