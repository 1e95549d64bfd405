"""SQLAlchemy models for the rental store.

Each model inherits from Base and uses RecordMixin for identity and audit
columns. The to_dict() method provides the JSON shape (camelCase keys)
used by repositories and routers. Relationships are never touched by
to_dict(); callers load and attach them explicitly.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.models.base import Base, RecordMixin, iso
from patterns.workflow_states import OrderStatus


class Category(RecordMixin, Base):
    """A catalog section products are filed under."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class Product(RecordMixin, Base):
    """A rentable product, or a bundle of products when is_bundle is set."""

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)  # weekly price
    image: Mapped[str | None] = mapped_column(String(500), nullable=True)
    total_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_bundle: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("categories.id"), nullable=True, index=True
    )

    bundle_items: Mapped[list["BundleItem"]] = relationship(
        back_populates="bundle",
        foreign_keys="BundleItem.bundle_id",
        cascade="all, delete-orphan",
        order_by="BundleItem.created_at",
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "price": self.price,
            "image": self.image,
            "totalStock": self.total_stock,
            "isActive": self.is_active,
            "isBundle": self.is_bundle,
            "sortOrder": self.sort_order,
            "categoryId": str(self.category_id) if self.category_id else None,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class BundleItem(RecordMixin, Base):
    """One constituent of a bundle: `quantity` units of `product` per bundle."""

    __tablename__ = "bundle_items"
    __table_args__ = (
        UniqueConstraint("bundle_id", "product_id", name="uq_bundle_item"),
    )

    bundle_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    bundle: Mapped["Product"] = relationship(
        back_populates="bundle_items", foreign_keys=[bundle_id]
    )
    product: Mapped["Product"] = relationship(foreign_keys=[product_id])

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "bundleId": str(self.bundle_id),
            "productId": str(self.product_id),
            "quantity": self.quantity,
        }


class Customer(RecordMixin, Base):
    """A registered customer. Credentials live with the auth collaborator."""

    __tablename__ = "customers"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "createdAt": iso(self.created_at),
        }


class Order(RecordMixin, Base):
    """A rental order covering one date range."""

    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(320), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    delivery_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)
    rental_start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rental_end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.PENDING.value, index=True
    )
    terms_accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at",
    )
    stock_blocks: Mapped[list["StockBlock"]] = relationship(
        back_populates="order", cascade="all, delete-orphan"
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "orderNumber": self.order_number,
            "customerId": str(self.customer_id) if self.customer_id else None,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "customerPhone": self.customer_phone,
            "deliveryType": self.delivery_type,
            "specialRequests": self.special_requests,
            "rentalStartDate": iso(self.rental_start_date),
            "rentalEndDate": iso(self.rental_end_date),
            "status": self.status,
            "termsAccepted": self.terms_accepted,
            "totalPrice": self.total_price,
            "adminNotes": self.admin_notes,
            "confirmedAt": iso(self.confirmed_at),
            "completedAt": iso(self.completed_at),
            "cancelledAt": iso(self.cancelled_at),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class OrderItem(RecordMixin, Base):
    """One line of an order. A bundle product line books its constituents."""

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship()

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "orderId": str(self.order_id),
            "productId": str(self.product_id),
            "quantity": self.quantity,
            "price": self.price,
        }


class StockBlock(RecordMixin, Base):
    """A hold: one unit of one product reserved for one order over [start, end)."""

    __tablename__ = "stock_blocks"
    __table_args__ = (
        Index("ix_stock_blocks_product_range", "product_id", "start_date", "end_date"),
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    order: Mapped["Order"] = relationship(back_populates="stock_blocks")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "productId": str(self.product_id),
            "orderId": str(self.order_id),
            "startDate": iso(self.start_date),
            "endDate": iso(self.end_date),
        }


class PricingSettings(RecordMixin, Base):
    """Admin-editable pricing knobs. A single row; defaults come from config."""

    __tablename__ = "pricing_settings"

    weekly_price_percent_increase: Mapped[float] = mapped_column(Float, nullable=False)
    min_order_value: Mapped[float] = mapped_column(Float, nullable=False)
    airport_min_order: Mapped[float] = mapped_column(Float, nullable=False)
    bundle_discount_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "weeklyPricePercentIncrease": self.weekly_price_percent_increase,
            "minOrderValue": self.min_order_value,
            "airportMinOrder": self.airport_min_order,
            "bundleDiscountPercent": self.bundle_discount_percent,
            "updatedAt": iso(self.updated_at),
        }
