from .synchronize_refund_transactions import SynchronizeRefundTransactionsTask

__all__ = ["SynchronizeRefundTransactionsTask"]
