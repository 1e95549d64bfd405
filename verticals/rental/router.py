"""Rental store API router.

Demonstrates the standard router pattern:
- Availability check over the stock hold ledger
- Orders: create (serialized booking), read, admin status update,
  cancel, amend
- Catalog CRUD, categories and the stock report
- Bundle membership (both directions) and add-to-cart expansion
- Pricing settings and quote
- Repository/service injection via FastAPI Depends

Domain errors raised below are rendered by the handlers in core.errors.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from core.errors import RateLimited
from core.resilience import RateLimiter
from verticals.rental.availability import AvailabilityCalculator
from verticals.rental.bundles import BundleExpander, BundleRepository
from verticals.rental.config import config
from verticals.rental.models.schemas import (
    AvailabilityRequest,
    AvailabilityResponse,
    BundleCart,
    BundleItemsUpdate,
    CategoryCreate,
    CategoryUpdate,
    OrderAmend,
    OrderCreate,
    OrderCreated,
    OrderStatusUpdate,
    PricingUpdate,
    ProductBundlesUpdate,
    ProductCreate,
    ProductUpdate,
    QuoteRequest,
    QuoteResponse,
)
from verticals.rental.orders import OrderService
from verticals.rental.repository import (
    CategoryRepository,
    CustomerRepository,
    PricingRepository,
    ProductRepository,
    get_availability_calculator,
    get_bundle_expander,
    get_bundle_repository,
    get_category_repository,
    get_customer_repository,
    get_order_service,
    get_pricing_repository,
    get_product_repository,
)
from verticals.rental.rules import quote_price

router = APIRouter()

# Process-wide; the app lifespan starts and stops its sweep task.
order_limiter = RateLimiter(
    max_requests=config.rate_limit.max_requests,
    window_seconds=config.rate_limit.window_seconds,
)


async def limit_order_submissions(request: Request) -> None:
    """Reject callers that submit too many orders in one window."""
    if not config.rate_limit.enabled:
        return
    identifier = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    if not identifier:
        identifier = request.client.host if request.client else "unknown"
    info = await order_limiter.hit(identifier)
    if not info.allowed:
        raise RateLimited("Too many requests. Please try again later.")


# ============================================================================
# Availability
# ============================================================================

@router.post("/availability", response_model=AvailabilityResponse)
async def check_availability(
    request: AvailabilityRequest,
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
):
    """Free units of a product for a date range."""
    availability = await calculator.compute_available(
        request.product_id,
        request.start_date,
        request.end_date,
        request.exclude_order_id,
    )
    return AvailabilityResponse(
        available=availability.available,
        total_stock=availability.total_stock,
        blocked=availability.blocked,
        available_from=request.end_date,
    )


# ============================================================================
# Order Endpoints
# ============================================================================

@router.post(
    "/orders",
    status_code=201,
    response_model=OrderCreated,
    dependencies=[Depends(limit_order_submissions)],
)
async def create_order(
    request: OrderCreate,
    service: OrderService = Depends(get_order_service),
):
    """Place an order and hold stock for every line, or nothing at all."""
    return await service.create(request.model_dump())


@router.get("/orders")
async def list_orders(
    status: Optional[str] = None,
    service: OrderService = Depends(get_order_service),
):
    """List orders, newest first, optionally by status."""
    return await service.list_orders(status=status)


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
):
    return await service.get(order_id)


@router.put("/orders/{order_id}")
async def update_order(
    order_id: str,
    request: OrderStatusUpdate,
    service: OrderService = Depends(get_order_service),
):
    """Admin status change (confirm, complete, cancel) and notes."""
    return await service.update_status(order_id, request.status, request.admin_notes)


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
):
    """Cancel a pending or confirmed order and release its stock."""
    return await service.cancel(order_id)


@router.post("/orders/{order_id}/amend")
async def amend_order(
    order_id: str,
    request: OrderAmend,
    service: OrderService = Depends(get_order_service),
):
    """Replace the lines of a pending order."""
    return await service.amend(
        order_id, [item.model_dump() for item in request.items]
    )


@router.get("/customers/{customer_id}/orders")
async def list_customer_orders(
    customer_id: str,
    customers: CustomerRepository = Depends(get_customer_repository),
    service: OrderService = Depends(get_order_service),
):
    await customers.require(customer_id)
    return await service.list_orders(customer_id=customer_id)


# ============================================================================
# Product Endpoints
# ============================================================================

@router.get("/products")
async def list_products(
    include_inactive: bool = Query(False, alias="all"),
    category: Optional[str] = None,
    repo: ProductRepository = Depends(get_product_repository),
):
    """Active products in display order; `?all=true` adds inactive ones
    and `?category=<slug>` narrows to one category."""
    return await repo.catalog(include_inactive=include_inactive, category=category)


@router.get("/products/stocks")
async def product_stocks(
    repo: ProductRepository = Depends(get_product_repository),
):
    """Reserved and available units per active product, with the orders
    that oversell it."""
    return await repo.stock_report()


@router.get("/products/{product_id}")
async def get_product(
    product_id: str,
    repo: ProductRepository = Depends(get_product_repository),
):
    return await repo.require(product_id)


@router.post("/products", status_code=201)
async def create_product(
    request: ProductCreate,
    repo: ProductRepository = Depends(get_product_repository),
):
    """Add a product (or an empty bundle) to the catalog."""
    return await repo.create(request.model_dump())


@router.patch("/products/{product_id}")
async def update_product(
    product_id: str,
    request: ProductUpdate,
    repo: ProductRepository = Depends(get_product_repository),
):
    return await repo.update(product_id, request.model_dump(exclude_unset=True))


@router.delete("/products/{product_id}", status_code=204)
async def delete_product(
    product_id: str,
    repo: ProductRepository = Depends(get_product_repository),
):
    await repo.delete(product_id)


@router.get("/products/{product_id}/bundles")
async def get_product_bundles(
    product_id: str,
    repo: BundleRepository = Depends(get_bundle_repository),
):
    """Bundles this product is a constituent of."""
    return await repo.bundles_containing(product_id)


@router.put("/products/{product_id}/bundles")
async def replace_product_bundles(
    product_id: str,
    request: ProductBundlesUpdate,
    repo: BundleRepository = Depends(get_bundle_repository),
):
    return await repo.replace_memberships(
        product_id, [item.model_dump() for item in request.bundle_ids]
    )


# ============================================================================
# Category Endpoints
# ============================================================================

@router.get("/categories")
async def list_categories(repo: CategoryRepository = Depends(get_category_repository)):
    return await repo.list_categories()


@router.post("/categories", status_code=201)
async def create_category(
    request: CategoryCreate,
    repo: CategoryRepository = Depends(get_category_repository),
):
    return await repo.create(request.model_dump())


@router.put("/categories/{category_id}")
async def update_category(
    category_id: str,
    request: CategoryUpdate,
    repo: CategoryRepository = Depends(get_category_repository),
):
    return await repo.update(category_id, request.model_dump(exclude_unset=True))


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    repo: CategoryRepository = Depends(get_category_repository),
):
    """Delete a category that no product is filed under."""
    await repo.delete(category_id)
    return {"success": True}


# ============================================================================
# Bundle Endpoints
# ============================================================================

@router.get("/bundles")
async def list_bundles(repo: BundleRepository = Depends(get_bundle_repository)):
    return await repo.list_bundles()


@router.get("/bundles/{bundle_id}/products")
async def get_bundle_products(
    bundle_id: str,
    repo: BundleRepository = Depends(get_bundle_repository),
):
    return await repo.get_items(bundle_id)


@router.put("/bundles/{bundle_id}/products")
async def replace_bundle_products(
    bundle_id: str,
    request: BundleItemsUpdate,
    repo: BundleRepository = Depends(get_bundle_repository),
):
    """Replace a bundle's constituents; bundles cannot contain bundles."""
    return await repo.replace_items(
        bundle_id, [item.model_dump() for item in request.product_ids]
    )


@router.get("/bundles/{bundle_id}/add-to-cart", response_model=BundleCart)
async def bundle_add_to_cart(
    bundle_id: str,
    expander: BundleExpander = Depends(get_bundle_expander),
):
    """Constituent cart lines for a bundle."""
    return await expander.cart_payload(bundle_id)


# ============================================================================
# Pricing
# ============================================================================

@router.get("/admin/pricing")
async def get_pricing(repo: PricingRepository = Depends(get_pricing_repository)):
    return await repo.get()


@router.put("/admin/pricing")
async def update_pricing(
    request: PricingUpdate,
    repo: PricingRepository = Depends(get_pricing_repository),
):
    """Change the pricing settings used by every later quote."""
    return {"success": True, "config": await repo.update(request.model_dump())}


@router.post("/pricing/quote", response_model=QuoteResponse)
async def pricing_quote(
    request: QuoteRequest,
    repo: PricingRepository = Depends(get_pricing_repository),
):
    quote = quote_price(
        [item.model_dump() for item in request.items],
        request.rental_start_date,
        request.rental_end_date,
        await repo.as_config(),
        request.delivery_type.value if request.delivery_type else None,
    )
    return quote.to_dict()
