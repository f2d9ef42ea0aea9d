"""거래 내역 수집 모듈"""

from .transaction_collector import Transaction, TransactionCollector

__all__ = ['Transaction', 'TransactionCollector']
