from .defaults import create_default_registry
from .registry import Registry, RegistryItem

__all__ = ["Registry", "RegistryItem", "create_default_registry"]
