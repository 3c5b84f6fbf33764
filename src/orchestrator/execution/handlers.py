"""Per-action-type execution handlers.

Each handler runs one typed action against one platform's CatalogClient
and returns a HandlerOutput. Handlers that touch many products resolve
their targets first, then send one write per item through the
RateLimitedBatcher so that a failing item never stops the others. A
target that cannot be read is reported as a failed item in the same way.

In preview mode handlers perform the same reads but no writes, and
report the values each item would change to.

Snapshot entries carry a ``kind`` (price, inventory, fields, seo,
discount) that tells UndoService how to revert them.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from typing import Any

from src.errors import ValidationError
from src.orchestrator.execution.filters import apply_filters, matches
from src.orchestrator.execution.models import ChangeSnapshot, HandlerOutput, ItemOutcome
from src.orchestrator.execution.rate_limit import RateLimitedBatcher
from src.orchestrator.models.action import (
    ApplyDiscountAction,
    BulkItem,
    BulkOperationAction,
    ConditionalUpdateAction,
    GetProductsAction,
    InventoryChange,
    ListingChange,
    PriceChange,
    ProductFieldChange,
    ProductSelection,
    SeoChange,
    UpdateInventoryAction,
    UpdateListingAction,
    UpdatePriceAction,
    UpdateProductsAction,
    UpdateSeoAction,
)
from src.services.catalog.base import CatalogClient

logger = logging.getLogger(__name__)


@dataclass
class HandlerContext:
    """Everything a handler needs besides the action itself."""

    catalog: CatalogClient
    """Product surface for the platform being executed."""

    batcher: RateLimitedBatcher
    """Throttle for per-item writes."""

    preview_mode: bool = False
    """When True, read but never write."""

    page_limit: int = 250
    """Maximum products fetched per listing."""

    dependency_ids: list[str] | None = None
    """Product ids produced by the step this action depends on."""


@dataclass
class _ChangeBatch:
    """Accumulated outcome of one change applied over many products."""

    items: list[ItemOutcome] = field(default_factory=list)
    before: list[dict[str, Any]] = field(default_factory=list)
    after: list[dict[str, Any]] = field(default_factory=list)
    affected: list[dict[str, Any]] = field(default_factory=list)
    product_ids: list[str] = field(default_factory=list)
    can_undo: bool = True

    def extend(self, other: "_ChangeBatch") -> None:
        self.items.extend(other.items)
        self.before.extend(other.before)
        self.after.extend(other.after)
        self.affected.extend(other.affected)
        self.product_ids.extend(p for p in other.product_ids if p not in self.product_ids)
        self.can_undo = self.can_undo and other.can_undo


# Target resolution


@dataclass
class ResolvedProducts:
    """Products a selection resolved to, plus the ids that could not be read."""

    products: list[dict[str, Any]] = field(default_factory=list)
    unresolved: list[ItemOutcome] = field(default_factory=list)


def _failed_item(resource_id: str, label: str, error: Exception) -> ItemOutcome:
    return ItemOutcome(
        resource_id=resource_id,
        success=False,
        label=label,
        error=str(error),
        error_code=_error_code(error),
    )


def _error_code(error: Exception | None) -> str | None:
    if error is None:
        return None
    return getattr(error, "error_code", None) or "E-4002"


async def _fetch_products(
    ctx: HandlerContext, product_ids: list[str], labels: dict[str, str] | None = None
) -> ResolvedProducts:
    """Read products one by one; an unreadable id becomes a failed item."""
    resolved = ResolvedProducts()
    labels = labels or {}
    for product_id, product, error in await ctx.batcher.run(
        list(product_ids), ctx.catalog.get_product
    ):
        if error is None:
            resolved.products.append(product)
        else:
            label = labels.get(product_id, f"Product {product_id}")
            resolved.unresolved.append(_failed_item(product_id, label, error))
    return resolved


async def _load_variants(ctx: HandlerContext, resolved: ResolvedProducts) -> None:
    """Re-read listed products whose variants the listing left out."""
    partial = [p for p in resolved.products if p.get("variants_loaded") is False]
    if not partial:
        return
    expanded = await _fetch_products(
        ctx, [p["id"] for p in partial], {p["id"]: _product_label(p) for p in partial}
    )
    full = {p["id"]: p for p in expanded.products}
    resolved.products = [
        full.get(p["id"]) if p.get("variants_loaded") is False else p
        for p in resolved.products
        if p.get("variants_loaded") is not False or p["id"] in full
    ]
    resolved.unresolved.extend(expanded.unresolved)


async def resolve_products(
    ctx: HandlerContext,
    selection: ProductSelection,
    default_scope: str | None = None,
    limit: int | None = None,
) -> ResolvedProducts:
    """Resolve a selection to normalized products on this platform.

    Order of precedence: explicit product_ids, the dependency step's
    products, then the catalog listing. A title substring and filter
    conditions then narrow the candidates. Ids that cannot be read are
    returned as failed items instead of aborting the whole action.

    Raises:
        ValidationError: When the selection targets nothing, or asks for
            a filtered scope without any filter.
    """
    scope = selection.effective_scope or default_scope
    if selection.product_ids:
        resolved = await _fetch_products(ctx, selection.product_ids)
    elif ctx.dependency_ids is not None:
        resolved = await _fetch_products(ctx, ctx.dependency_ids)
    elif scope is None:
        raise ValidationError("Action has no product target")
    else:
        if scope == "filtered" and not selection.filters and not selection.product_title:
            raise ValidationError("A filtered selection needs at least one filter condition")
        resolved = ResolvedProducts(await ctx.catalog.list_products(limit or ctx.page_limit))

    if selection.product_title:
        needle = selection.product_title.lower()
        resolved.products = [
            p for p in resolved.products if needle in (p.get("title") or "").lower()
        ]
    await _load_variants(ctx, resolved)
    if selection.filters:
        resolved.products = apply_filters(resolved.products, selection.filters)
    return resolved


def _product_label(product: dict[str, Any], variant: dict[str, Any] | None = None) -> str:
    title = product.get("title") or product.get("id", "")
    if variant and variant.get("title") and variant["title"] != "Default Title":
        return f"{title} / {variant['title']}"
    return title


def _outcome_dicts(items: list[ItemOutcome]) -> list[dict[str, Any]]:
    return [asdict(item) for item in items]


async def _write_units(
    ctx: HandlerContext,
    units: list[dict[str, Any]],
    write: Callable[[dict[str, Any]], Awaitable[Any]],
) -> list[tuple[dict[str, Any], Any, Exception | None]]:
    """Run one write per unit, or simulate them all in preview mode."""
    if ctx.preview_mode:
        return [(unit, unit["after"], None) for unit in units]
    return await ctx.batcher.run(units, write)


def _collect(
    batch: _ChangeBatch,
    outcomes: list[tuple[dict[str, Any], Any, Exception | None]],
    kind: str,
    resource_type: str,
) -> _ChangeBatch:
    for unit, _, error in outcomes:
        batch.items.append(
            ItemOutcome(
                resource_id=unit["resource_id"],
                success=error is None,
                label=unit["label"],
                before=unit["before_value"],
                after=unit["after"],
                error=None if error is None else str(error),
                error_code=_error_code(error),
            )
        )
        if error is None:
            batch.before.append({"kind": kind, **unit["before_state"]})
            batch.after.append({"kind": kind, **unit["after_state"]})
            batch.affected.append({"type": resource_type, "id": unit["resource_id"]})
            if unit["product_id"] not in batch.product_ids:
                batch.product_ids.append(unit["product_id"])
    return batch


# Change appliers, shared by top-level actions and conditional branches


def compute_price(current: float, change: PriceChange) -> float:
    """New price after a change, rounded to cents and floored at zero."""
    if change.direction == "set":
        new_price = change.value
    elif change.value_type == "percentage":
        factor = 1 + change.value / 100
        if change.direction == "decrease":
            factor = 1 - change.value / 100
        new_price = current * factor
    elif change.direction == "increase":
        new_price = current + change.value
    else:
        new_price = current - change.value
    return max(round(new_price, 2), 0.0)


async def apply_price_change(
    ctx: HandlerContext, products: list[dict[str, Any]], change: PriceChange
) -> _ChangeBatch:
    units = []
    for product in products:
        for variant in product.get("variants", []):
            current = variant.get("price")
            if current is None:
                logger.debug("Skipping variant %s without a price", variant.get("id"))
                continue
            new_price = compute_price(current, change)
            units.append({
                "resource_id": variant["id"],
                "product_id": product["id"],
                "label": _product_label(product, variant),
                "before_value": current,
                "after": new_price,
                "before_state": {
                    "product_id": product["id"], "variant_id": variant["id"], "price": current,
                },
                "after_state": {
                    "product_id": product["id"], "variant_id": variant["id"], "price": new_price,
                },
            })

    async def write(unit: dict[str, Any]) -> Any:
        return await ctx.catalog.update_variant_price(
            unit["product_id"], unit["resource_id"], unit["after"]
        )

    outcomes = await _write_units(ctx, units, write)
    return _collect(_ChangeBatch(), outcomes, "price", "variant")


async def apply_inventory_change(
    ctx: HandlerContext, products: list[dict[str, Any]], change: InventoryChange
) -> _ChangeBatch:
    location_id = await ctx.catalog.resolve_location(change.location_id)
    units = []
    for product in products:
        for variant in product.get("variants", []):
            current = variant.get("inventory_quantity")
            if change.mode == "set":
                target = change.available
            else:
                target = max((current or 0) + change.available, 0)
            units.append({
                "resource_id": variant["id"],
                "product_id": product["id"],
                "variant": variant,
                "label": _product_label(product, variant),
                "before_value": current,
                "after": target,
                "before_state": {
                    "product_id": product["id"],
                    "variant_id": variant["id"],
                    "inventory_item_id": variant.get("inventory_item_id"),
                    "location_id": location_id,
                    "available": current,
                },
                "after_state": {
                    "product_id": product["id"],
                    "variant_id": variant["id"],
                    "inventory_item_id": variant.get("inventory_item_id"),
                    "location_id": location_id,
                    "available": target,
                },
            })

    async def write(unit: dict[str, Any]) -> Any:
        return await ctx.catalog.set_inventory(
            unit["product_id"], unit["variant"], location_id, unit["after"]
        )

    outcomes = await _write_units(ctx, units, write)
    batch = _collect(_ChangeBatch(), outcomes, "inventory", "inventory_level")
    # Untracked stock has no prior level to restore
    batch.can_undo = all(entry.get("available") is not None for entry in batch.before)
    return batch


async def apply_field_change(
    ctx: HandlerContext, products: list[dict[str, Any]], fields: dict[str, Any]
) -> _ChangeBatch:
    units = []
    can_undo = True
    for product in products:
        before = {name: product.get(name) for name in fields}
        if any(name not in product for name in fields):
            can_undo = False
        units.append({
            "resource_id": product["id"],
            "product_id": product["id"],
            "label": _product_label(product),
            "before_value": before,
            "after": dict(fields),
            "before_state": {"product_id": product["id"], "fields": before},
            "after_state": {"product_id": product["id"], "fields": dict(fields)},
        })

    async def write(unit: dict[str, Any]) -> Any:
        return await ctx.catalog.update_product(unit["product_id"], unit["after"])

    outcomes = await _write_units(ctx, units, write)
    batch = _collect(_ChangeBatch(), outcomes, "fields", "product")
    batch.can_undo = can_undo
    return batch


async def apply_seo_change(
    ctx: HandlerContext, products: list[dict[str, Any]], change: SeoChange
) -> _ChangeBatch:
    batch = _ChangeBatch()
    units = []

    async def read(product: dict[str, Any]) -> dict[str, str | None]:
        return await ctx.catalog.get_seo(product["id"])

    for product, current, error in await ctx.batcher.run(products, read):
        if error is not None:
            batch.items.append(_failed_item(product["id"], _product_label(product), error))
            continue
        new_seo = {
            "title": change.seo_title if change.seo_title is not None else current.get("title"),
            "description": (
                change.seo_description
                if change.seo_description is not None
                else current.get("description")
            ),
        }
        units.append({
            "resource_id": product["id"],
            "product_id": product["id"],
            "label": _product_label(product),
            "before_value": current,
            "after": new_seo,
            "before_state": {"product_id": product["id"], "seo": current},
            "after_state": {"product_id": product["id"], "seo": new_seo},
        })

    async def write(unit: dict[str, Any]) -> Any:
        return await ctx.catalog.set_seo(
            unit["product_id"], change.seo_title, change.seo_description
        )

    outcomes = await _write_units(ctx, units, write)
    return _collect(batch, outcomes, "seo", "product")


async def apply_change(
    ctx: HandlerContext,
    products: list[dict[str, Any]],
    change_type: str,
    change: PriceChange | InventoryChange | ListingChange | ProductFieldChange | SeoChange,
) -> _ChangeBatch:
    """Apply one change record to every product, dispatching on change type."""
    if change_type == "update_price":
        return await apply_price_change(ctx, products, change)  # type: ignore[arg-type]
    if change_type == "update_inventory":
        return await apply_inventory_change(ctx, products, change)  # type: ignore[arg-type]
    if change_type == "update_listing":
        return await apply_field_change(
            ctx, products, change.changed_fields()  # type: ignore[union-attr]
        )
    if change_type == "update_products":
        return await apply_field_change(ctx, products, change.updates)  # type: ignore[union-attr]
    if change_type == "update_seo":
        return await apply_seo_change(ctx, products, change)  # type: ignore[arg-type]
    raise ValidationError(f"Unknown change type: {change_type}")


def _output_from_batch(
    ctx: HandlerContext,
    batch: _ChangeBatch,
    matched: int,
    extra: dict[str, Any] | None = None,
    unresolved: list[ItemOutcome] | None = None,
) -> HandlerOutput:
    if unresolved:
        batch.items[:0] = unresolved
    failed = [item for item in batch.items if not item.success]
    result: dict[str, Any] = {
        "matched_products": matched,
        "items_total": len(batch.items),
        "items_succeeded": len(batch.items) - len(failed),
        "items_failed": len(failed),
        "items": _outcome_dicts(batch.items),
        "preview": ctx.preview_mode,
    }
    if extra:
        result.update(extra)
    snapshot = None
    if not ctx.preview_mode and batch.before:
        snapshot = ChangeSnapshot(
            before_state=batch.before,
            after_state=batch.after,
            affected_resources=batch.affected,
            can_undo=batch.can_undo,
        )
    return HandlerOutput(
        result=result,
        items=batch.items,
        product_ids=batch.product_ids,
        snapshot=snapshot,
    )


# Handlers


async def handle_get_products(action: GetProductsAction, ctx: HandlerContext) -> HandlerOutput:
    params = action.parameters
    resolved = await resolve_products(ctx, params, default_scope="all", limit=params.limit)
    products = resolved.products
    if params.limit is not None:
        products = products[: params.limit]
    summary = []
    for product in products:
        variants = product.get("variants", [])
        first = variants[0] if variants else {}
        summary.append({
            "id": product["id"],
            "title": product.get("title"),
            "status": product.get("status"),
            "price": first.get("price"),
            "inventory_quantity": first.get("inventory_quantity"),
            "variant_count": len(variants),
        })
    logger.info("get_products found %d products", len(products))
    return HandlerOutput(
        result={"count": len(products), "products": summary},
        items=resolved.unresolved,
        product_ids=[p["id"] for p in products],
    )


async def handle_update_price(action: UpdatePriceAction, ctx: HandlerContext) -> HandlerOutput:
    resolved = await resolve_products(ctx, action.parameters)
    batch = await apply_price_change(ctx, resolved.products, action.parameters)
    return _output_from_batch(ctx, batch, len(resolved.products), unresolved=resolved.unresolved)


async def handle_update_inventory(
    action: UpdateInventoryAction, ctx: HandlerContext
) -> HandlerOutput:
    params = action.parameters
    if params.has_fast_path and not params.has_target and ctx.dependency_ids is None:
        item = ItemOutcome(
            resource_id=params.inventory_item_id or "",
            success=True,
            label=f"Inventory item {params.inventory_item_id}",
            after=params.available,
        )
        if not ctx.preview_mode:
            try:
                item.after = await ctx.catalog.set_inventory_item(
                    params.inventory_item_id or "", params.location_id or "", params.available
                )
            except NotImplementedError as e:
                raise ValidationError(str(e)) from e
        batch = _ChangeBatch(items=[item], can_undo=False)
        return _output_from_batch(ctx, batch, 0)

    resolved = await resolve_products(ctx, params)
    batch = await apply_inventory_change(ctx, resolved.products, params)
    return _output_from_batch(ctx, batch, len(resolved.products), unresolved=resolved.unresolved)


async def handle_update_listing(
    action: UpdateListingAction, ctx: HandlerContext
) -> HandlerOutput:
    resolved = await resolve_products(ctx, action.parameters)
    batch = await apply_field_change(ctx, resolved.products, action.parameters.changed_fields())
    return _output_from_batch(ctx, batch, len(resolved.products), unresolved=resolved.unresolved)


async def handle_update_products(
    action: UpdateProductsAction, ctx: HandlerContext
) -> HandlerOutput:
    resolved = await resolve_products(ctx, action.parameters)
    batch = await apply_field_change(ctx, resolved.products, action.parameters.updates)
    return _output_from_batch(ctx, batch, len(resolved.products), unresolved=resolved.unresolved)


async def handle_update_seo(action: UpdateSeoAction, ctx: HandlerContext) -> HandlerOutput:
    resolved = await resolve_products(ctx, action.parameters)
    batch = await apply_seo_change(ctx, resolved.products, action.parameters)
    return _output_from_batch(ctx, batch, len(resolved.products), unresolved=resolved.unresolved)


async def handle_apply_discount(
    action: ApplyDiscountAction, ctx: HandlerContext
) -> HandlerOutput:
    params = action.parameters
    product_ids: list[str] = []
    unresolved: list[ItemOutcome] = []
    if params.has_target or ctx.dependency_ids is not None:
        resolved = await resolve_products(ctx, params)
        product_ids = [p["id"] for p in resolved.products]
        unresolved = resolved.unresolved
        if not product_ids:
            raise ValidationError("No products matched the discount selection")

    planned = {
        "title": params.display_title(),
        "value_type": params.value_type,
        "value": params.value,
        "code": params.code,
        "applies_to": product_ids or "all",
    }
    if ctx.preview_mode:
        return HandlerOutput(
            result={"preview": True, "discount": planned},
            items=unresolved,
            product_ids=product_ids,
        )

    discount = await ctx.catalog.create_discount(params, product_ids)
    snapshot = ChangeSnapshot(
        before_state=[{"kind": "discount", "discount_id": discount["id"]}],
        after_state=[{"kind": "discount", **discount}],
        affected_resources=[{"type": "discount", "id": discount["id"]}],
        can_undo=True,
    )
    return HandlerOutput(
        result={"preview": False, "discount": {**planned, **discount}},
        items=unresolved,
        product_ids=product_ids,
        snapshot=snapshot,
    )


async def _apply_bulk_item(ctx: HandlerContext, item: BulkItem) -> _ChangeBatch:
    product = await ctx.catalog.get_product(item.product_id)
    batch = _ChangeBatch()
    if item.price is not None:
        variants = product.get("variants", [])
        if item.variant_id:
            variants = [v for v in variants if v["id"] == item.variant_id]
            if not variants:
                raise ValidationError(
                    f"Variant {item.variant_id} not found on product {item.product_id}"
                )
        target = {**product, "variants": variants}
        batch.extend(
            await apply_price_change(
                ctx, [target], PriceChange(direction="set", value_type="fixed", value=item.price)
            )
        )
    if item.available is not None:
        variants = product.get("variants", [])
        if item.variant_id:
            variants = [v for v in variants if v["id"] == item.variant_id]
        target = {**product, "variants": variants}
        batch.extend(
            await apply_inventory_change(
                ctx, [target], InventoryChange(available=item.available, mode="set")
            )
        )
    if item.updates:
        batch.extend(await apply_field_change(ctx, [product], item.updates))
    return batch


async def handle_bulk_operation(
    action: BulkOperationAction, ctx: HandlerContext
) -> HandlerOutput:
    """Apply explicit per-product changes; each item succeeds or fails alone."""
    items = action.parameters.items
    combined = _ChangeBatch()

    async def run_item(item: BulkItem) -> _ChangeBatch:
        return await _apply_bulk_item(ctx, item)

    for item, batch, error in await ctx.batcher.run(items, run_item):
        if error is not None:
            combined.items.append(
                _failed_item(item.product_id, f"Product {item.product_id}", error)
            )
        elif batch is not None:
            combined.extend(batch)
    return _output_from_batch(ctx, combined, len(items))


async def handle_conditional_update(
    action: ConditionalUpdateAction, ctx: HandlerContext
) -> HandlerOutput:
    """IF/THEN/ELSE: partition candidates by the condition, apply each branch."""
    params = action.parameters
    resolved = await resolve_products(ctx, params, default_scope="all")
    candidates = resolved.products
    matched = [p for p in candidates if matches(p, params.condition)]
    unmatched = [p for p in candidates if not matches(p, params.condition)]

    combined = _ChangeBatch()
    if matched:
        combined.extend(
            await apply_change(ctx, matched, params.then_action.type, params.then_action.parameters)
        )
    if params.else_action is not None and unmatched:
        combined.extend(
            await apply_change(
                ctx, unmatched, params.else_action.type, params.else_action.parameters
            )
        )
    return _output_from_batch(
        ctx,
        combined,
        len(candidates),
        extra={"condition_matched": len(matched), "condition_unmatched": len(unmatched)},
        unresolved=resolved.unresolved,
    )


HANDLERS: dict[str, Callable[[Any, HandlerContext], Awaitable[HandlerOutput]]] = {
    "get_products": handle_get_products,
    "update_price": handle_update_price,
    "update_inventory": handle_update_inventory,
    "update_listing": handle_update_listing,
    "update_products": handle_update_products,
    "update_seo": handle_update_seo,
    "apply_discount": handle_apply_discount,
    "bulk_operation": handle_bulk_operation,
    "conditional_update": handle_conditional_update,
}
