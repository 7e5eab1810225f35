"""
Default redaction policies, one per exporting module.

Policies are static and versioned. Bump the version whenever a field's
action changes so that audit records can be traced back to the rules
that produced them.
"""

from typing import Dict, Union

from .errors import UnsupportedModuleError
from .types import ExportModule, FieldConfig, RedactionAction, RedactionPolicy

INCLUDE = RedactionAction.INCLUDE
HASH = RedactionAction.HASH
MASK = RedactionAction.MASK


# Aggregated user analytics, no PII by nature
USER_MANAGEMENT_POLICY = RedactionPolicy(
    module=ExportModule.USER_MANAGEMENT,
    requires_full_export_confirmation=False,
    fields=(
        FieldConfig('category', 'Category', INCLUDE, category='attribute'),
        FieldConfig('role', 'Role', INCLUDE, category='attribute'),
        FieldConfig('status', 'Status', INCLUDE, category='attribute'),
        FieldConfig('count', 'Count', INCLUDE, category='metric'),
        FieldConfig('period', 'Period', INCLUDE, category='metadata'),
        FieldConfig('newUsers', 'New Users', INCLUDE, category='metric'),
        FieldConfig('averageUsersPerOrganization', 'Avg Users / Org', INCLUDE, category='metric'),
    ),
)

# Revenue and subscription metrics, no PII by nature
SALES_OVERVIEW_POLICY = RedactionPolicy(
    module=ExportModule.SALES_OVERVIEW,
    requires_full_export_confirmation=False,
    fields=(
        FieldConfig('plan', 'Plan', INCLUDE, category='attribute'),
        FieldConfig('displayName', 'Display Name', INCLUDE, category='attribute'),
        FieldConfig('billingModel', 'Billing Model', INCLUDE, category='attribute'),
        FieldConfig('baseCost', 'Base Cost (cents)', INCLUDE, category='metric'),
        FieldConfig('pricePerSeat', 'Price Per Seat (cents)', INCLUDE, category='metric'),
        FieldConfig('maxSeats', 'Max Seats', INCLUDE, category='metric'),
        FieldConfig('maxCatalogItems', 'Max Catalog Items', INCLUDE, category='metric'),
        FieldConfig('count', 'Subscription Count', INCLUDE, category='metric'),
        FieldConfig('percentage', 'Percentage', INCLUDE, category='metric'),
        FieldConfig('revenue', 'Revenue', INCLUDE, category='metric'),
        FieldConfig('period', 'Period', INCLUDE, category='metadata'),
    ),
)

PLAN_CONFIGURATION_POLICY = RedactionPolicy(
    module=ExportModule.PLAN_CONFIGURATION,
    requires_full_export_confirmation=False,
    fields=(
        FieldConfig('_id', 'Plan ID (hashed)', HASH, category='identifier'),
        FieldConfig('plan', 'Plan Identifier', INCLUDE, category='attribute'),
        FieldConfig('displayName', 'Display Name', INCLUDE, category='attribute'),
        FieldConfig('description', 'Description', INCLUDE, category='attribute'),
        FieldConfig('billingModel', 'Billing Model', INCLUDE, category='attribute'),
        FieldConfig('baseCost', 'Base Cost (cents)', INCLUDE, category='metric'),
        FieldConfig('pricePerSeat', 'Price Per Seat (cents)', INCLUDE, category='metric'),
        FieldConfig('maxSeats', 'Max Seats', INCLUDE, category='metric'),
        FieldConfig('maxCatalogItems', 'Max Catalog Items', INCLUDE, category='metric'),
        FieldConfig('features', 'Features', INCLUDE, category='attribute'),
        FieldConfig('sortOrder', 'Sort Order', INCLUDE, category='metadata'),
        FieldConfig('status', 'Status', INCLUDE, category='attribute'),
    ),
)

# Contains PII (email, phone): masked by default, overridable for full export
ORGANIZATION_MANAGEMENT_POLICY = RedactionPolicy(
    module=ExportModule.ORGANIZATION_MANAGEMENT,
    requires_full_export_confirmation=True,
    fields=(
        FieldConfig('_id', 'Organization ID (hashed)', HASH, category='identifier'),
        FieldConfig('name', 'Name', INCLUDE, category='attribute'),
        FieldConfig('legalName', 'Legal Name', INCLUDE, category='attribute'),
        FieldConfig('email', 'Email', MASK, overridable=True, category='attribute'),
        FieldConfig('phone', 'Phone', MASK, overridable=True, default_selected=False,
                    category='attribute'),
        FieldConfig('status', 'Status', INCLUDE, category='attribute'),
        FieldConfig('plan', 'Plan', INCLUDE, category='attribute'),
        FieldConfig('seatCount', 'Seat Count', INCLUDE, category='metric'),
        FieldConfig('country', 'Country', INCLUDE, category='attribute'),
        FieldConfig('city', 'City', INCLUDE, category='attribute'),
        FieldConfig('createdAt', 'Created At', INCLUDE, category='metadata'),
    ),
)

# Billing events of a single organization; event IDs are pseudonymized
BILLING_HISTORY_POLICY = RedactionPolicy(
    module=ExportModule.BILLING_HISTORY,
    requires_full_export_confirmation=False,
    fields=(
        FieldConfig('id', 'Event ID (hashed)', HASH, category='identifier'),
        FieldConfig('eventType', 'Event', INCLUDE, category='attribute'),
        FieldConfig('newPlan', 'New Plan', INCLUDE, category='attribute'),
        FieldConfig('seatChange', 'Seat Change', INCLUDE, category='metric'),
        FieldConfig('amount', 'Amount', INCLUDE, category='metric'),
        FieldConfig('currency', 'Currency', INCLUDE, category='attribute'),
        FieldConfig('processed', 'Processed', INCLUDE, category='attribute'),
        FieldConfig('createdAt', 'Date', INCLUDE, category='metadata'),
    ),
)


DEFAULT_POLICIES: Dict[ExportModule, RedactionPolicy] = {
    policy.module: policy
    for policy in (
        USER_MANAGEMENT_POLICY,
        SALES_OVERVIEW_POLICY,
        PLAN_CONFIGURATION_POLICY,
        ORGANIZATION_MANAGEMENT_POLICY,
        BILLING_HISTORY_POLICY,
    )
}


def get_default_policy(module: Union[ExportModule, str]) -> RedactionPolicy:
    """
    Retrieve the default policy for a module.

    Args:
        module: ExportModule member or its string value

    Returns:
        The module's RedactionPolicy

    Raises:
        UnsupportedModuleError: If the module is unknown
    """
    try:
        return DEFAULT_POLICIES[ExportModule(module)]
    except (KeyError, ValueError):
        raise UnsupportedModuleError(str(getattr(module, 'value', module))) from None
