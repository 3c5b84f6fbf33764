"""Action models for interpreted commerce commands.

An Action is one executable unit of an interpreted plan. Actions form a
tagged union keyed by ``type``; each variant carries its own parameter
record so that the execution engine never handles an unknown shape.
Payloads from the language model are validated here, at the
interpretation boundary, via ``parse_action``.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

FilterOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "greater_than",
    "less_than",
    "greater_than_or_equal",
    "less_than_or_equal",
]

TargetScope = Literal["all", "selected", "filtered"]


def _stringify_ids(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        value = [value]
    return [str(v) for v in value]


class FilterCondition(BaseModel):
    """One product filter condition.

    Attributes:
        field: Product field, dotted for nested values (e.g. "variants.0.price")
        operator: Comparison operator
        value: Value to compare against
        logic: How this condition combines with the running result
    """

    model_config = ConfigDict(from_attributes=True)

    field: str = Field(..., min_length=1, description="Product field, dotted for nested")
    operator: FilterOperator = Field(default="equals", description="Comparison operator")
    value: Any = Field(default=None, description="Comparison value")
    logic: Literal["AND", "OR"] = Field(
        default="AND", description="Combination with the preceding conditions"
    )


class ProductSelection(BaseModel):
    """Which products an action applies to.

    Resolution order at execution time: product_ids, product_title, filters,
    then scope ``all``.
    """

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    scope: TargetScope | None = Field(
        default=None, description="Targeting scope: all, selected, or filtered"
    )
    product_ids: list[str] = Field(
        default_factory=list, description="Explicit product identifiers"
    )
    product_title: str | None = Field(
        default=None, description="Case-insensitive title substring"
    )
    filters: list[FilterCondition] = Field(
        default_factory=list, description="Filter conditions over product fields"
    )

    @field_validator("product_ids", mode="before")
    @classmethod
    def coerce_product_ids(cls, v: Any) -> Any:
        return _stringify_ids(v)

    @property
    def effective_scope(self) -> TargetScope | None:
        """Scope implied by the selection, or None when nothing targets products."""
        if self.scope is not None:
            return self.scope
        if self.product_ids or self.product_title:
            return "selected"
        if self.filters:
            return "filtered"
        return None

    @property
    def has_target(self) -> bool:
        return self.effective_scope is not None


# Change records, shared by top-level actions and conditional branches


class PriceChange(BaseModel):
    """A uniform price change.

    Attributes:
        direction: increase, decrease, or set to an absolute price
        value_type: percentage of the current price, or a fixed amount
        value: Non-negative magnitude
    """

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    direction: Literal["increase", "decrease", "set"] = Field(
        ..., validation_alias=AliasChoices("direction", "operation")
    )
    value_type: Literal["percentage", "fixed"] = Field(
        default="percentage", validation_alias=AliasChoices("value_type", "unit")
    )
    value: float = Field(..., ge=0, validation_alias=AliasChoices("value", "amount"))

    @model_validator(mode="after")
    def validate_change(self) -> "PriceChange":
        if self.direction == "set" and self.value_type == "percentage":
            raise ValueError("A 'set' price change must use a fixed value")
        if (
            self.direction == "decrease"
            and self.value_type == "percentage"
            and self.value >= 100
        ):
            raise ValueError("A percentage decrease must be below 100")
        return self


class InventoryChange(BaseModel):
    """An inventory level change.

    ``available`` is the target quantity for mode ``set`` and a signed
    delta for mode ``adjust``.
    """

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    available: int = Field(..., validation_alias=AliasChoices("available", "quantity"))
    mode: Literal["set", "adjust"] = "set"
    location_id: str | None = None

    @field_validator("location_id", mode="before")
    @classmethod
    def coerce_location(cls, v: Any) -> Any:
        return None if v is None else str(v)

    @model_validator(mode="after")
    def validate_quantity(self) -> "InventoryChange":
        if self.mode == "set" and self.available < 0:
            raise ValueError("Inventory cannot be set to a negative quantity")
        return self


class ListingChange(BaseModel):
    """Listing content fields to overwrite. At least one must be given."""

    model_config = ConfigDict(from_attributes=True)

    title: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    status: Literal["active", "draft", "archived"] | None = None
    product_type: str | None = None
    vendor: str | None = None

    @model_validator(mode="after")
    def require_a_field(self) -> "ListingChange":
        if not self.changed_fields():
            raise ValueError("A listing update needs at least one field")
        return self

    def changed_fields(self) -> dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in ListingChange.model_fields
            if getattr(self, name) is not None
        }


class ProductFieldChange(BaseModel):
    """Raw product field updates passed through to the platform."""

    model_config = ConfigDict(from_attributes=True)

    updates: dict[str, Any] = Field(..., min_length=1)

    @field_validator("updates")
    @classmethod
    def drop_identity(cls, v: dict[str, Any]) -> dict[str, Any]:
        cleaned = {k: val for k, val in v.items() if k != "id"}
        if not cleaned:
            raise ValueError("updates must change at least one field")
        return cleaned


class SeoChange(BaseModel):
    """Search-engine title and description overrides."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    seo_title: str | None = Field(
        default=None, validation_alias=AliasChoices("seo_title", "meta_title", "title_tag")
    )
    seo_description: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "seo_description", "meta_description", "description_tag"
        ),
    )

    @model_validator(mode="after")
    def require_a_field(self) -> "SeoChange":
        if self.seo_title is None and self.seo_description is None:
            raise ValueError("An SEO update needs seo_title or seo_description")
        return self


# Parameter records, one per action kind


class GetProductsParams(ProductSelection):
    limit: int | None = Field(default=None, ge=1)


class UpdatePriceParams(ProductSelection, PriceChange):
    pass


class UpdateInventoryParams(ProductSelection, InventoryChange):
    inventory_item_id: str | None = None

    @field_validator("inventory_item_id", mode="before")
    @classmethod
    def coerce_item_id(cls, v: Any) -> Any:
        return None if v is None else str(v)

    @property
    def has_fast_path(self) -> bool:
        """True when the exact inventory item and location are known."""
        return bool(self.inventory_item_id and self.location_id)


class UpdateListingParams(ProductSelection, ListingChange):
    pass


class UpdateProductsParams(ProductSelection, ProductFieldChange):
    pass


class UpdateSeoParams(ProductSelection, SeoChange):
    pass


class ApplyDiscountParams(ProductSelection):
    """Store discount (price rule) creation.

    An unrestricted selection means the discount applies to every product.
    """

    title: str | None = None
    value_type: Literal["percentage", "fixed_amount"] = Field(
        default="percentage",
        validation_alias=AliasChoices("value_type", "discount_type"),
    )
    value: float = Field(
        ..., gt=0, validation_alias=AliasChoices("value", "discount_value")
    )
    code: str | None = None
    starts_at: str | None = None
    ends_at: str | None = None

    @model_validator(mode="after")
    def validate_percentage(self) -> "ApplyDiscountParams":
        if self.value_type == "percentage" and self.value > 100:
            raise ValueError("A percentage discount cannot exceed 100")
        return self

    def display_title(self) -> str:
        if self.title:
            return self.title
        if self.value_type == "percentage":
            return f"Discount {self.value:g}%"
        return f"Discount {self.value:g} off"


class BulkItem(BaseModel):
    """Explicit per-product change within a bulk operation."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str
    variant_id: str | None = None
    price: float | None = Field(default=None, ge=0)
    available: int | None = Field(default=None, ge=0)
    updates: dict[str, Any] = Field(default_factory=dict)

    @field_validator("product_id", "variant_id", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        return None if v is None else str(v)

    @model_validator(mode="after")
    def require_a_change(self) -> "BulkItem":
        if self.price is None and self.available is None and not self.updates:
            raise ValueError(f"Bulk item {self.product_id} has no change")
        return self


class BulkOperationParams(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    items: list[BulkItem] = Field(..., min_length=1)


class PriceBranch(BaseModel):
    type: Literal["update_price"]
    parameters: PriceChange


class InventoryBranch(BaseModel):
    type: Literal["update_inventory"]
    parameters: InventoryChange


class ListingBranch(BaseModel):
    type: Literal["update_listing"]
    parameters: ListingChange


class ProductsBranch(BaseModel):
    type: Literal["update_products"]
    parameters: ProductFieldChange


class SeoBranch(BaseModel):
    type: Literal["update_seo"]
    parameters: SeoChange


BranchAction = Annotated[
    Union[PriceBranch, InventoryBranch, ListingBranch, ProductsBranch, SeoBranch],
    Field(discriminator="type"),
]


class ConditionalUpdateParams(ProductSelection):
    """IF/THEN/ELSE over products.

    Candidates come from the selection (all products when unrestricted).
    Products matching ``condition`` receive ``then_action``; the rest
    receive ``else_action`` when one is given.
    """

    condition: list[FilterCondition] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("condition", "condition_filters"),
    )
    then_action: BranchAction
    else_action: BranchAction | None = None


class CustomCommandParams(BaseModel):
    """Free-form instruction that has no automatic handler."""

    model_config = ConfigDict(from_attributes=True)

    instruction: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


# Action variants


class ActionBase(BaseModel):
    """Fields common to every action.

    Attributes:
        description: Human-readable summary of the step
        requires_confirmation: Model's own request for confirmation
        step_number: 1-based position in the plan
        depends_on_step: Earlier step whose result supplies product ids
    """

    model_config = ConfigDict(from_attributes=True)

    description: str = ""
    requires_confirmation: bool = False
    step_number: int = Field(default=1, ge=1)
    depends_on_step: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def validate_dependency(self) -> "ActionBase":
        if self.depends_on_step is not None and self.depends_on_step >= self.step_number:
            raise ValueError(
                f"Step {self.step_number} cannot depend on step {self.depends_on_step}"
            )
        return self


class _TargetedWrite(ActionBase):
    """Write action that must name its products or depend on a step that does."""

    @model_validator(mode="after")
    def require_target(self) -> "_TargetedWrite":
        params = self.parameters  # type: ignore[attr-defined]
        if self.depends_on_step is None and not params.has_target:
            raise ValueError(
                f"{self.type} needs a target: scope, product_ids, "  # type: ignore[attr-defined]
                "product_title or filters"
            )
        return self


class GetProductsAction(ActionBase):
    type: Literal["get_products"] = "get_products"
    parameters: GetProductsParams = Field(default_factory=GetProductsParams)


class UpdatePriceAction(_TargetedWrite):
    type: Literal["update_price"] = "update_price"
    parameters: UpdatePriceParams


class UpdateInventoryAction(ActionBase):
    type: Literal["update_inventory"] = "update_inventory"
    parameters: UpdateInventoryParams

    @model_validator(mode="after")
    def require_target(self) -> "UpdateInventoryAction":
        params = self.parameters
        if (
            self.depends_on_step is None
            and not params.has_target
            and not params.has_fast_path
        ):
            raise ValueError(
                "update_inventory needs inventory_item_id and location_id, "
                "or a product selection"
            )
        return self


class UpdateListingAction(_TargetedWrite):
    type: Literal["update_listing"] = "update_listing"
    parameters: UpdateListingParams


class UpdateProductsAction(_TargetedWrite):
    type: Literal["update_products"] = "update_products"
    parameters: UpdateProductsParams


class UpdateSeoAction(_TargetedWrite):
    type: Literal["update_seo"] = "update_seo"
    parameters: UpdateSeoParams


class ApplyDiscountAction(ActionBase):
    type: Literal["apply_discount"] = "apply_discount"
    parameters: ApplyDiscountParams


class BulkOperationAction(ActionBase):
    type: Literal["bulk_operation"] = "bulk_operation"
    parameters: BulkOperationParams


class ConditionalUpdateAction(ActionBase):
    type: Literal["conditional_update"] = "conditional_update"
    parameters: ConditionalUpdateParams


class CustomCommandAction(ActionBase):
    type: Literal["custom_command"] = "custom_command"
    parameters: CustomCommandParams = Field(default_factory=CustomCommandParams)


Action = Annotated[
    Union[
        GetProductsAction,
        UpdatePriceAction,
        UpdateInventoryAction,
        UpdateListingAction,
        UpdateProductsAction,
        UpdateSeoAction,
        ApplyDiscountAction,
        BulkOperationAction,
        ConditionalUpdateAction,
        CustomCommandAction,
    ],
    Field(discriminator="type"),
]

ACTION_TYPES: tuple[str, ...] = (
    "get_products",
    "update_price",
    "update_inventory",
    "update_listing",
    "update_products",
    "update_seo",
    "apply_discount",
    "bulk_operation",
    "conditional_update",
    "custom_command",
)

READ_ONLY_ACTION_TYPES = frozenset({"get_products"})

_action_adapter: TypeAdapter[Action] = TypeAdapter(Action)
_action_list_adapter: TypeAdapter[list[Action]] = TypeAdapter(list[Action])


def parse_action(payload: dict[str, Any]) -> Action:
    """Validate one raw action payload into its typed variant.

    Raises:
        pydantic.ValidationError: On unknown type or invalid parameters.
    """
    return _action_adapter.validate_python(payload)


def parse_actions(payload: list[dict[str, Any]]) -> list[Action]:
    """Validate a list of raw action payloads."""
    return _action_list_adapter.validate_python(payload)


def dump_actions(actions: list[Action]) -> list[dict[str, Any]]:
    """Serialize actions to JSON-compatible dicts."""
    return _action_list_adapter.dump_python(actions, mode="json")
