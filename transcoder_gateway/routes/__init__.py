from .convert import convert_router

__all__ = ["convert_router"]
