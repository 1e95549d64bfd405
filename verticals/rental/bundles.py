"""Bundle expander and bundle membership management.

A bundle is a Product flagged ``is_bundle`` whose BundleItem rows list
(constituent, quantity) pairs. Expansion turns a bundle into its plain
constituent lines; nesting is rejected on write and again on expansion,
so a stale row can never recurse.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.errors import NotFoundError, ValidationError
from patterns.repository import as_uuid
from patterns.rules_engine import check_bundle_constituent, evaluate_rules
from verticals.rental.models.db_models import BundleItem, Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BundleLine:
    """One constituent of an expanded bundle."""

    product_id: uuid.UUID
    product_name: str
    unit_price: float
    image: str | None
    quantity: int

    def to_cart_dict(self) -> dict:
        return {
            "productId": str(self.product_id),
            "productName": self.product_name,
            "price": self.unit_price,
            "image": self.image,
            "quantity": self.quantity,
        }


class BundleExpander:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def load_bundle(self, bundle_id: str | uuid.UUID) -> Product:
        key = as_uuid(bundle_id)
        bundle = None
        if key is not None:
            stmt = (
                select(Product)
                .where(Product.id == key)
                .options(selectinload(Product.bundle_items).selectinload(BundleItem.product))
                .execution_options(populate_existing=True)
            )
            bundle = (await self.session.execute(stmt)).scalar_one_or_none()
        if bundle is None or not bundle.is_bundle:
            raise NotFoundError("Bundle not found")
        return bundle

    async def expand(self, bundle_id: str | uuid.UUID) -> list[BundleLine]:
        """Constituent lines of a bundle, ordered by product name."""
        bundle = await self.load_bundle(bundle_id)
        return self.lines_for(bundle)

    @staticmethod
    def lines_for(bundle: Product) -> list[BundleLine]:
        lines = []
        for item in bundle.bundle_items:
            constituent = item.product
            rule = check_bundle_constituent(
                bundle.id, constituent.id, constituent.name, constituent.is_bundle
            )
            if not rule.passed:
                raise ValidationError(rule.message, details=rule.details)
            lines.append(
                BundleLine(
                    product_id=constituent.id,
                    product_name=constituent.name,
                    unit_price=constituent.price,
                    image=constituent.image,
                    quantity=item.quantity,
                )
            )
        return sorted(lines, key=lambda line: line.product_name)

    async def cart_payload(self, bundle_id: str | uuid.UUID) -> dict:
        bundle = await self.load_bundle(bundle_id)
        return {
            "bundleName": bundle.name,
            "items": [line.to_cart_dict() for line in self.lines_for(bundle)],
        }


# ---------------------------------------------------------------------------
# Bundle administration
# ---------------------------------------------------------------------------

class BundleRepository:
    """Read and replace the constituents of bundle products."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.expander = BundleExpander(session)

    @staticmethod
    def _bundle_dict(bundle: Product) -> dict:
        data = bundle.to_dict()
        data["bundleProducts"] = [
            {**item.to_dict(), "product": item.product.to_dict()}
            for item in bundle.bundle_items
        ]
        return data

    async def list_bundles(self) -> list[dict]:
        stmt = (
            select(Product)
            .where(Product.is_bundle.is_(True))
            .options(selectinload(Product.bundle_items).selectinload(BundleItem.product))
            .order_by(Product.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return [self._bundle_dict(b) for b in result.scalars().all()]

    async def get_items(self, bundle_id: str) -> list[dict]:
        bundle = await self.expander.load_bundle(bundle_id)
        return self._bundle_dict(bundle)["bundleProducts"]

    async def replace_items(self, bundle_id: str, items: list[dict]) -> dict:
        """Replace a bundle's constituents with ``[{product_id, quantity}]``.

        Every constituent must exist and be a plain product; duplicate
        product ids are merged by summing their quantities.
        """
        bundle = await self.expander.load_bundle(bundle_id)

        wanted: dict[uuid.UUID, int] = {}
        for item in items:
            key = as_uuid(item["product_id"])
            if key is None:
                raise ValidationError(f"Invalid product id: {item['product_id']}")
            wanted[key] = wanted.get(key, 0) + int(item.get("quantity") or 1)

        products: dict[uuid.UUID, Product] = {}
        if wanted:
            result = await self.session.execute(
                select(Product).where(Product.id.in_(list(wanted)))
            )
            products = {p.id: p for p in result.scalars().all()}

        missing = [str(k) for k in wanted if k not in products]
        if missing:
            raise NotFoundError("Product not found", details={"productIds": missing})

        verdict = evaluate_rules(*[
            check_bundle_constituent(bundle.id, p.id, p.name, p.is_bundle)
            for p in products.values()
        ])
        if not verdict.all_passed:
            raise ValidationError(verdict.message)

        await self.session.execute(
            delete(BundleItem).where(BundleItem.bundle_id == bundle.id)
        )
        for product_id, quantity in wanted.items():
            self.session.add(
                BundleItem(bundle_id=bundle.id, product_id=product_id, quantity=quantity)
            )
        await self.session.flush()
        logger.info("Bundle %s now has %d constituents", bundle.id, len(wanted))

        refreshed = await self.expander.load_bundle(bundle.id)
        return self._bundle_dict(refreshed)

    # -- Reverse lookup: which bundles contain a product --

    async def _require_product(self, product_id: str) -> Product:
        key = as_uuid(product_id)
        product = await self.session.get(Product, key) if key else None
        if product is None:
            raise NotFoundError("Product not found")
        return product

    async def bundles_containing(self, product_id: str) -> list[dict]:
        """``[{bundleId, bundleName, quantity}]`` ordered by bundle name."""
        product = await self._require_product(product_id)
        rows = await self.session.execute(
            select(BundleItem.bundle_id, Product.name, BundleItem.quantity)
            .join(Product, BundleItem.bundle_id == Product.id)
            .where(BundleItem.product_id == product.id)
            .order_by(Product.name)
        )
        return [
            {"bundleId": str(bundle_id), "bundleName": name, "quantity": quantity}
            for bundle_id, name, quantity in rows.all()
        ]

    async def replace_memberships(self, product_id: str, memberships: list[dict]) -> list[dict]:
        """Set the bundles a product belongs to from ``[{bundle_id, quantity}]``.

        Memberships in bundles not listed are removed; the other
        constituents of those bundles are left alone.
        """
        product = await self._require_product(product_id)

        wanted: dict[uuid.UUID, int] = {}
        for item in memberships:
            key = as_uuid(item["bundle_id"])
            if key is None:
                raise ValidationError(f"Invalid bundle id: {item['bundle_id']}")
            wanted[key] = wanted.get(key, 0) + int(item.get("quantity") or 1)

        for bundle_id in wanted:
            bundle = await self.session.get(Product, bundle_id)
            if bundle is None or not bundle.is_bundle:
                raise NotFoundError("Bundle not found", details={"bundleId": str(bundle_id)})
            rule = check_bundle_constituent(bundle.id, product.id, product.name, product.is_bundle)
            if not rule.passed:
                raise ValidationError(rule.message, details=rule.details)

        await self.session.execute(
            delete(BundleItem).where(BundleItem.product_id == product.id)
        )
        for bundle_id, quantity in wanted.items():
            self.session.add(
                BundleItem(bundle_id=bundle_id, product_id=product.id, quantity=quantity)
            )
        await self.session.flush()
        logger.info("Product %s now belongs to %d bundles", product.id, len(wanted))
        return await self.bundles_containing(product.id)
