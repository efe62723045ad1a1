# wheelbot/handlers/__init__.py
from .router import router

__all__ = ["router"]
