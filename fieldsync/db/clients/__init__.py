from fieldsync.db.clients.model import Client
from fieldsync.db.clients.repository import ClientRepository

__all__ = ["Client", "ClientRepository"]
