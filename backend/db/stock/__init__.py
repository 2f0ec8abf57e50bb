"""
Stock ledger tables.

Models:
- StockItem (raw supply line item)
- StockMove (append-only IN/OUT quantities; source of truth)
- StockBalance (one row per item, kept equal to the fold of its moves)
- RecipeEntry (quantity of an item needed per basket)
- BasketsReady (single-row count of assembled, undelivered baskets)
"""

from .item import StockItem
from .move import StockMove
from .balance import StockBalance
from .recipe import RecipeEntry
from .ready import READY_COUNTER_ID, BasketsReady
