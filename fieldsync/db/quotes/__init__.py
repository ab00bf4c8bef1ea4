from fieldsync.db.quotes.model import Quote
from fieldsync.db.quotes.repository import QuoteRepository

__all__ = ["Quote", "QuoteRepository"]
