"""
Permission codes checked by the HTTP boundary.

The upstream gateway resolves a user's roles into these codes and forwards
them in X-Permissions. Services never check codes themselves; they only
enforce scope reachability.
"""


class PermissionCategory:
    """Permission categories for organization."""
    SCOPES = "SCOPES"
    WALLETS = "WALLETS"
    INVENTORY = "INVENTORY"
    REQUESTS = "REQUESTS"
    SALES = "SALES"


# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    (
        "SCOPES_VIEW",
        "View Scopes",
        "View the scope tree below the caller's scope",
        PermissionCategory.SCOPES
    ),
    (
        "WALLET_ACCOUNTS_VIEW",
        "View Wallet Accounts",
        "View wallet balances and ledger entries",
        PermissionCategory.WALLETS
    ),
    (
        "WALLET_ACCOUNTS_TRANSFER",
        "Transfer Between Wallets",
        "Book manual transfers between scope accounts",
        PermissionCategory.WALLETS
    ),
    (
        "INVENTORY_VIEW",
        "View Inventory",
        "View stock balances and movements",
        PermissionCategory.INVENTORY
    ),
    (
        "INVENTORY_ADJUST",
        "Adjust Inventory",
        "Create ADJUSTMENT movements (corrections, shrink, opening stock)",
        PermissionCategory.INVENTORY
    ),
    (
        "STOCK_REQUESTS_VIEW",
        "View Stock Requests",
        "List incoming and outgoing stock requests",
        PermissionCategory.REQUESTS
    ),
    (
        "STOCK_REQUESTS_CREATE",
        "Create Stock Requests",
        "Draft and submit stock requests to a supplier scope",
        PermissionCategory.REQUESTS
    ),
    (
        "STOCK_REQUESTS_APPROVE",
        "Approve Stock Requests",
        "Approve, reject and fulfill incoming stock requests",
        PermissionCategory.REQUESTS
    ),
    (
        "FUND_REQUESTS_CREATE",
        "Create Fund Requests",
        "Ask another scope for funds",
        PermissionCategory.REQUESTS
    ),
    (
        "FUND_REQUESTS_APPROVE",
        "Approve Fund Requests",
        "Approve or reject incoming fund requests",
        PermissionCategory.REQUESTS
    ),
    (
        "POS_SALES_CREATE",
        "Record POS Sales",
        "Record cash sales at a local shop",
        PermissionCategory.SALES
    ),
]

PERMISSION_CODES = frozenset(code for code, _, _, _ in PERMISSION_DEFINITIONS)
