"""Catalog Service - read-only product lookup used by the cart endpoints."""

import json
import logging
import threading
from typing import Any, Dict, Iterable, Optional, Protocol

from storefront.exceptions import NotFoundError
from storefront.models.product import Product

logger = logging.getLogger(__name__)


class CatalogGateway(Protocol):
    """Anything that can look up a catalog product by id."""

    def get_product(self, product_id: Any) -> Product:
        ...


class InMemoryCatalog:
    """
    Product lookup backed by a dict.

    The real catalog lives in an external service; this gateway holds the
    documents it publishes so the cart can resolve product ids.
    """

    def __init__(self, products: Optional[Iterable[Product]] = None):
        self._products: Dict[str, Product] = {}
        self._lock = threading.Lock()
        for product in products or ():
            self.put(product)

    def __len__(self) -> int:
        return len(self._products)

    def put(self, product: Product) -> Product:
        with self._lock:
            self._products[str(product.id)] = product
        return product

    def get_product(self, product_id: Any) -> Product:
        """
        Raises:
            NotFoundError: if no product has this id.
        """
        product = self._products.get(str(product_id).strip())
        if product is None:
            raise NotFoundError('Product not found.', payload={'product_id': str(product_id)})
        return product

    def load_documents(self, documents: Iterable[Dict[str, Any]]) -> int:
        """Load catalog documents (camelCase payloads). Returns how many were read."""
        count = 0
        for document in documents:
            self.put(Product.from_dict(document))
            count += 1
        return count

    def load_json(self, path: str) -> int:
        with open(path, encoding='utf-8') as fh:
            documents = json.load(fh)
        count = self.load_documents(documents)
        logger.info(f"[CATALOG] Loaded {count} products from {path}")
        return count
