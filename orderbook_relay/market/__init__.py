from .order_book_store import OrderBookStore

__all__ = ['OrderBookStore']
