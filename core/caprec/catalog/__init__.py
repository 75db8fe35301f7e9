"""Capability catalog interface and reference implementation."""

from caprec.catalog.base import CapabilityCatalog
from caprec.catalog.memory import CatalogItem, InMemoryCatalog

__all__ = [
    "CapabilityCatalog",
    "CatalogItem",
    "InMemoryCatalog",
]
