"""
Bulk Product Import

Loads products from a CSV file into the active backend.

- CSV read with Polars, every column as text, then normalized per row
- rows without a title, SKU or valid price are rejected
- SKUs already stored (or repeated in the file) are skipped
- inserts run in batches inside a single transaction; any failure rolls
  the whole import back
- imported rows are tagged with ``attributes.source`` so ``--cleanup`` can
  remove them again

Usage:
    storefront-import data/products.csv --source amazon
    storefront-import --cleanup --source amazon
"""

import argparse
import asyncio
import json
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Union

import polars as pl
import structlog
from pydantic import BaseModel

from storefront.config import get_settings
from storefront.config.logging import configure_logging
from storefront.database.adapters.base import Transaction
from storefront.database.errors import DatabaseError
from storefront.database.selector import BackendHandle, initialize
from storefront.database.sql import Fragment, Param, StatementKind, build, join
from storefront.repositories.products import WRITABLE_FIELDS, product_values

logger = structlog.get_logger(__name__)

NULL_VALUES = ["", "NULL", "null", "None", "NA", "N/A"]
DEFAULT_SOURCE = "csv-import"
DEFAULT_BATCH_SIZE = 50


class ImportStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class ImportResult(BaseModel):
    """Outcome of one import run"""
    file_path: str
    status: ImportStatus
    rows_read: int = 0
    inserted: int = 0
    skipped: int = 0
    rejected: int = 0
    error_message: Optional[str] = None
    duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None


@dataclass
class CleanupResult:
    deleted: int
    deactivated: int


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _decimal(value: Any) -> Optional[Decimal]:
    text = _text(value)
    if text is None:
        return None
    try:
        number = Decimal(text.replace("$", "").replace(",", ""))
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _int(value: Any, default: int = 0) -> int:
    number = _decimal(value)
    return int(number) if number is not None else default


def _split(value: Any) -> List[str]:
    text = _text(value)
    if text is None:
        return []
    return [part.strip() for part in text.replace("|", ",").split(",") if part.strip()]


class ProductImporter:
    """
    CSV to ``products`` importer.

    Example:
        importer = ProductImporter(handle, source="amazon")
        result = await importer.run("datasets/amazon_cleaned.csv")
    """

    def __init__(self, db: BackendHandle, source: str = DEFAULT_SOURCE, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.db = db
        self.source = source
        self.batch_size = batch_size

    def read(self, file_path: Union[str, Path]) -> pl.DataFrame:
        """Read the CSV with every column as text and drop empty rows"""
        df = pl.read_csv(file_path, infer_schema_length=0, null_values=NULL_VALUES)
        return df.filter(~pl.all_horizontal(pl.all().is_null()))

    def transform(self, row: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Normalize one CSV row.

        Returns:
            Product fields, or None if the row cannot be stored
        """
        title = _text(row.get("title"))
        sku = _text(row.get("sku"))
        price = _decimal(row.get("price"))
        if not title or not sku or price is None or price < 0:
            return None

        sale_price = _decimal(row.get("sale_price"))
        if sale_price is not None and (sale_price < 0 or sale_price >= price):
            sale_price = None

        rating = _decimal(row.get("rating")) or Decimal("0")
        rating = min(max(rating, Decimal("0")), Decimal("5"))

        images = _split(row.get("images")) or _split(row.get("image_url"))
        attributes = {
            "source": self.source,
            "import_date": datetime.now(timezone.utc).isoformat(),
        }
        if _text(row.get("product_url")):
            attributes["original_url"] = _text(row.get("product_url"))

        is_active = _text(row.get("is_active"))
        return {
            "title": title[:200],
            "description": _text(row.get("description")),
            "price": price,
            "sale_price": sale_price,
            "sku": sku[:50],
            "stock": max(_int(row.get("stock")), 0),
            "category": _text(row.get("category")),
            "tags": _split(row.get("tags")),
            "rating": rating,
            "images": images,
            "attributes": attributes,
            "is_active": is_active is None or is_active.lower() in ("true", "1", "yes"),
        }

    async def _existing_skus(self, tx: Transaction, skus: Sequence[str]) -> Set[str]:
        statement = build(
            Fragment("SELECT sku FROM products WHERE sku IN (", join(", ", [Param(s) for s in skus]), ")"),
            self.db.dialect,
        )
        result = await tx.execute(statement)
        return {row["sku"] for row in result.rows}

    async def _insert(self, tx: Transaction, product: Mapping[str, Any]) -> None:
        values = product_values(product) + [bool(product["is_active"])]
        statement = build(
            Fragment(
                "INSERT INTO products (",
                ", ".join(WRITABLE_FIELDS + ("is_active",)),
                ") VALUES (",
                join(", ", [Param(value) for value in values]),
                ")",
            ),
            self.db.dialect,
            kind=StatementKind.INSERT,
        )
        await tx.execute(statement)

    async def load(self, products: Sequence[Mapping[str, Any]]) -> Dict[str, int]:
        """
        Insert products in batches within one transaction.

        Returns:
            {"inserted": n, "skipped": m}
        """
        inserted = skipped = 0
        seen: Set[str] = set()
        async with self.db.transaction() as tx:
            for start in range(0, len(products), self.batch_size):
                batch = products[start:start + self.batch_size]
                existing = await self._existing_skus(tx, [p["sku"] for p in batch])
                for product in batch:
                    if product["sku"] in existing or product["sku"] in seen:
                        logger.debug("SKU already exists, skipping", sku=product["sku"])
                        skipped += 1
                        continue
                    await self._insert(tx, product)
                    seen.add(product["sku"])
                    inserted += 1
                logger.info(
                    "Batch processed",
                    processed=min(start + self.batch_size, len(products)),
                    total=len(products),
                )
        return {"inserted": inserted, "skipped": skipped}

    async def run(self, file_path: Union[str, Path]) -> ImportResult:
        """Read, normalize and load a CSV file"""
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()
        result = ImportResult(file_path=str(file_path), status=ImportStatus.FAILED, started_at=started_at)

        logger.info("Starting product import", file=str(file_path), source=self.source, backend=self.db.backend)
        try:
            df = self.read(file_path)
            result.rows_read = df.height
            products = []
            for row in df.iter_rows(named=True):
                product = self.transform(row)
                if product is None:
                    result.rejected += 1
                    continue
                products.append(product)
            counts = await self.load(products)
        except (DatabaseError, OSError, pl.exceptions.PolarsError) as e:
            result.error_message = str(e)
            logger.error("Product import failed", file=str(file_path), error=str(e), error_type=type(e).__name__)
        else:
            result.status = ImportStatus.COMPLETED
            result.inserted = counts["inserted"]
            result.skipped = counts["skipped"]
            logger.info(
                "Product import completed",
                inserted=result.inserted,
                skipped=result.skipped,
                rejected=result.rejected,
            )
        result.completed_at = datetime.now(timezone.utc)
        result.duration_seconds = round(time.perf_counter() - start, 3)
        return result

    async def cleanup(self) -> CleanupResult:
        """
        Remove products imported under this source.

        Products referenced by an order are deactivated instead of deleted.
        """
        marker = Fragment("CAST(attributes AS TEXT) LIKE ", Param(f'%"source": {json.dumps(self.source)}%'))
        async with self.db.transaction() as tx:
            deleted = await tx.execute(build(
                Fragment(
                    "DELETE FROM products WHERE ", marker,
                    " AND id NOT IN (SELECT product_id FROM order_items)",
                ),
                self.db.dialect,
                kind=StatementKind.DELETE,
            ))
            deactivated = await tx.execute(build(
                Fragment("UPDATE products SET is_active = ", Param(False), " WHERE ", marker),
                self.db.dialect,
                kind=StatementKind.UPDATE,
            ))
        logger.info(
            "Imported products removed",
            source=self.source,
            deleted=deleted.rows_affected,
            deactivated=deactivated.rows_affected,
        )
        return CleanupResult(deleted=deleted.rows_affected, deactivated=deactivated.rows_affected)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storefront-import", description="Import products from a CSV file")
    parser.add_argument("file", nargs="?", help="CSV file with product rows")
    parser.add_argument("--source", default=DEFAULT_SOURCE, help="Source tag stored in attributes.source")
    parser.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE, help="Rows per batch")
    parser.add_argument("--cleanup", action="store_true", help="Remove products previously imported from --source")
    return parser


async def _main(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_logging(settings=settings)
    handle = await initialize(settings)
    try:
        importer = ProductImporter(handle, source=args.source, batch_size=args.batch_size)
        if args.cleanup:
            await importer.cleanup()
            return 0
        result = await importer.run(args.file)
        return 0 if result.status is ImportStatus.COMPLETED else 1
    finally:
        await handle.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.cleanup and not args.file:
        parser.error("a CSV file is required unless --cleanup is given")
    return asyncio.run(_main(args))


if __name__ == "__main__":
    sys.exit(main())
