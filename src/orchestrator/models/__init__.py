"""Pydantic models for the command orchestration layer."""

from src.orchestrator.models.action import (
    ACTION_TYPES,
    READ_ONLY_ACTION_TYPES,
    Action,
    ApplyDiscountAction,
    BulkOperationAction,
    ConditionalUpdateAction,
    CustomCommandAction,
    FilterCondition,
    GetProductsAction,
    ProductSelection,
    UpdateInventoryAction,
    UpdateListingAction,
    UpdatePriceAction,
    UpdateProductsAction,
    UpdateSeoAction,
    dump_actions,
    parse_action,
    parse_actions,
)
from src.orchestrator.models.interpretation import (
    ClarificationQuestion,
    ClarificationRequest,
    EstimatedImpact,
    Interpretation,
    RiskAssessment,
)

__all__ = [
    "ACTION_TYPES",
    "READ_ONLY_ACTION_TYPES",
    "Action",
    "ApplyDiscountAction",
    "BulkOperationAction",
    "ConditionalUpdateAction",
    "CustomCommandAction",
    "FilterCondition",
    "GetProductsAction",
    "ProductSelection",
    "UpdateInventoryAction",
    "UpdateListingAction",
    "UpdatePriceAction",
    "UpdateProductsAction",
    "UpdateSeoAction",
    "dump_actions",
    "parse_action",
    "parse_actions",
    "ClarificationQuestion",
    "ClarificationRequest",
    "EstimatedImpact",
    "Interpretation",
    "RiskAssessment",
]
