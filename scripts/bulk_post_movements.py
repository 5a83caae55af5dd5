#!/usr/bin/env python3
"""
Bulk Stock Movement Upload Script

Posts generated NDJSON movement files to a warehouse's bulk movements endpoint
using the warehouse API key.

Files are uploaded one at a time in name order by default: movement order
matters for balances, so concurrent uploads are only safe when each file
covers a disjoint set of products (--workers > 1).

Usage:
    python bulk_post_movements.py --data-dir generated_movements --warehouse-id <id> --api-key <key>
    python bulk_post_movements.py --data-dir generated_movements --warehouse-id <id> --api-key <key> --dry-run
"""

import argparse
import os
import time
from pathlib import Path
from typing import Dict, List
import requests
from concurrent.futures import ThreadPoolExecutor, as_completed
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class BulkMovementClient:
    """Client for the bulk movements endpoint."""

    def __init__(self, warehouse_id: str, api_key: str, api_base_url: str = "http://localhost:8000"):
        self.api_base_url = api_base_url.rstrip('/')
        self.warehouse_id = warehouse_id
        self.session = requests.Session()
        self.session.headers['X-API-Key'] = api_key

    def upload_file(self, filepath: str) -> Dict:
        """Upload a single NDJSON file."""
        url = f"{self.api_base_url}/api/v1/warehouses/{self.warehouse_id}/stock/bulk_movements"

        with open(filepath, 'rb') as f:
            files = {'file': (os.path.basename(filepath), f, 'application/x-ndjson')}
            response = self.session.post(url, files=files)

        response.raise_for_status()
        return response.json()


def find_movement_files(data_dir: str) -> List[str]:
    directory = Path(data_dir)
    if not directory.exists():
        raise ValueError(f"Data directory not found: {data_dir}")
    return sorted(str(p) for p in directory.glob('*.ndjson'))


def upload_files(client: BulkMovementClient, files: List[str], workers: int = 1) -> Dict:
    """Upload files and collect applied/rejected totals."""
    results = {
        'files_uploaded': 0,
        'files_failed': 0,
        'applied': 0,
        'rejected': 0,
        'errors': []
    }

    def record(filepath: str, result: Dict):
        results['files_uploaded'] += 1
        results['applied'] += len(result.get('applied', []))
        results['rejected'] += len(result.get('rejected', []))
        logger.info(f"Uploaded: {os.path.basename(filepath)} ({result.get('status')}, "
                    f"{len(result.get('applied', []))} applied, {len(result.get('rejected', []))} rejected)")
        for rejection in result.get('rejected', []):
            logger.debug(f"  line {rejection.get('line')}: {rejection.get('error')}")

    def fail(filepath: str, e: Exception):
        results['files_failed'] += 1
        error_msg = f"Failed to upload {filepath}: {e}"
        results['errors'].append(error_msg)
        logger.error(error_msg)

    if workers <= 1:
        for filepath in files:
            try:
                record(filepath, client.upload_file(filepath))
            except requests.RequestException as e:
                fail(filepath, e)
        return results

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_file = {executor.submit(client.upload_file, filepath): filepath for filepath in files}
        for future in as_completed(future_to_file):
            filepath = future_to_file[future]
            try:
                record(filepath, future.result())
            except requests.RequestException as e:
                fail(filepath, e)

    return results


def main():
    """Main function for bulk movement upload."""
    parser = argparse.ArgumentParser(description='Bulk stock movement upload script')

    parser.add_argument('--data-dir', required=True, help='Directory containing NDJSON movement files')
    parser.add_argument('--warehouse-id', required=True, help='Target warehouse ID')
    parser.add_argument('--api-key', required=True, help='Warehouse API key')
    parser.add_argument('--api-url', default='http://localhost:8000', help='API base URL')
    parser.add_argument('--workers', type=int, default=1,
                        help='Concurrent uploads (only for files with disjoint products)')
    parser.add_argument('--dry-run', action='store_true', help='Show what would be uploaded without uploading')
    parser.add_argument('--verbose', action='store_true', help='Verbose output')

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    files = find_movement_files(args.data_dir)
    logger.info(f"Found {len(files)} movement files in {args.data_dir}")

    if args.dry_run:
        for filepath in files:
            logger.info(f"[DRY RUN] Would upload {filepath}")
        return

    client = BulkMovementClient(args.warehouse_id, args.api_key, args.api_url)
    start_time = time.time()
    results = upload_files(client, files, args.workers)
    elapsed = time.time() - start_time

    logger.info("=" * 60)
    logger.info("BULK MOVEMENT UPLOAD SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Files uploaded: {results['files_uploaded']}")
    logger.info(f"Files failed: {results['files_failed']}")
    logger.info(f"Movements applied: {results['applied']}")
    logger.info(f"Movements rejected: {results['rejected']}")
    logger.info(f"Total time: {elapsed:.2f} seconds")

    for error in results['errors']:
        logger.error(f"  {error}")


if __name__ == "__main__":
    main()
