# routers/__init__.py
from .payments import router as payments_router
from .transactions import router as transactions_router

__all__ = [
     "payments_router",
     "transactions_router",
]
