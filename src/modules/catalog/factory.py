"""Wiring of the catalog service with its Django repositories."""

from __future__ import annotations

from modules.catalog.repositories.django_repository import CatalogDjangoRepository
from modules.catalog.services import ProductService
from modules.inventory.repositories.django_repository import StockDjangoRepository
from modules.inventory.services import StockLedger


def build_product_service() -> ProductService:
    return ProductService(
        repository=CatalogDjangoRepository(),
        stock=StockLedger(StockDjangoRepository()),
    )
