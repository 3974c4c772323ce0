from .tenancy import Company, ScopeNode
from .catalog import Product, ProductAssignment
from .wallets import WalletAccount, WalletLedgerEntry
from .inventory import StockBalance, InventoryLedgerEntry
from .requests import StockRequest, StockRequestItem, FundRequest

__all__ = [
    'Company', 'ScopeNode',
    'Product', 'ProductAssignment',
    'WalletAccount', 'WalletLedgerEntry',
    'StockBalance', 'InventoryLedgerEntry',
    'StockRequest', 'StockRequestItem', 'FundRequest',
]
