from importlib import import_module

__all__ = [
    "tier_catalog",
    "TierCatalog",
    "tier_evaluator",
    "TierEvaluator",
    "payout_ledger",
    "PayoutLedger",
    "revenue_share_service",
    "RevenueShareService",
    "payout_batch_service",
    "PayoutBatchService",
]

_LAZY_EXPORTS = {
    "tier_catalog": ("services.tier_catalog", "tier_catalog"),
    "TierCatalog": ("services.tier_catalog", "TierCatalog"),
    "tier_evaluator": ("services.tier_evaluator", "tier_evaluator"),
    "TierEvaluator": ("services.tier_evaluator", "TierEvaluator"),
    "payout_ledger": ("services.payout_ledger", "payout_ledger"),
    "PayoutLedger": ("services.payout_ledger", "PayoutLedger"),
    "revenue_share_service": ("services.revenue_share", "revenue_share_service"),
    "RevenueShareService": ("services.revenue_share", "RevenueShareService"),
    "payout_batch_service": ("services.payout_batch", "payout_batch_service"),
    "PayoutBatchService": ("services.payout_batch", "PayoutBatchService"),
}


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'services' has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
