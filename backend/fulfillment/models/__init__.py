from .orders import Order, OrderNote
from .funding import FundingPool, FundingLedgerEntry
from .customers import CustomerProfile, WishlistItem
from .messaging import NotificationQueueEntry, OutboxEvent, SubmissionRateWindow

__all__ = [
    'Order', 'OrderNote',
    'FundingPool', 'FundingLedgerEntry',
    'CustomerProfile', 'WishlistItem',
    'NotificationQueueEntry', 'OutboxEvent', 'SubmissionRateWindow',
]
