# cartapi/catalog/http.py
import logging
from typing import Dict, List, Optional

import requests
from pydantic import TypeAdapter
from requests import RequestException
from requests.utils import quote
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from cartapi.catalog.gateway import (
    AmbiguousVariation,
    CatalogGateway,
    CouponView,
    ProductView,
    VariationProduct,
)
from cartapi.errors import InvalidVariation, UpstreamUnavailable

logger = logging.getLogger(__name__)

_product_adapter = TypeAdapter(ProductView)


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=1),
        retry=retry_if_exception_type(RequestException),
    )


class HttpCatalogGateway(CatalogGateway):
    """Catalog served by a remote product service."""

    def __init__(self, base_url: str, timeout: float = 2.0, session: requests.Session = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def get_product(self, product_id: int) -> Optional[ProductView]:
        data = self._get(f"/products/{int(product_id)}")
        return _product_adapter.validate_python(data) if data is not None else None

    def get_variation(self, variation_id: int) -> Optional[VariationProduct]:
        product = self.get_product(variation_id)
        return product if isinstance(product, VariationProduct) else None

    def resolve_variation(self, product_id: int, attributes: Dict[str, str]) -> int:
        data = self._get(f"/products/{int(product_id)}/variations/resolve", params=attributes)
        if data is None:
            raise InvalidVariation("No matching variation found.", product_id=product_id)
        matches = data.get("matches", [])
        if len(matches) > 1:
            raise AmbiguousVariation(product_id=product_id, variations=matches)
        if not matches:
            raise InvalidVariation("No matching variation found.", product_id=product_id)
        return int(matches[0])

    def get_coupon(self, code: str) -> Optional[CouponView]:
        data = self._get(f"/coupons/{quote(code.strip().lower(), safe='')}")
        return CouponView.model_validate(data) if data is not None else None

    def reserved_stock(self, product_id: int, exclude_draft_order: int = 0) -> int:
        data = self._get(
            f"/products/{int(product_id)}/reserved",
            params={"exclude_draft_order": exclude_draft_order},
        )
        return int((data or {}).get("reserved", 0))

    def list_products(self, page: int = 1, per_page: int = 10) -> List[ProductView]:
        data = self._get("/products", params={"page": page, "per_page": per_page}) or []
        return [_product_adapter.validate_python(p) for p in data]

    def _get(self, path: str, params: dict = None):
        try:
            return self._fetch(path, params)
        except RequestException as e:
            logger.error("Catalog request %s failed: %s", path, e)
            raise UpstreamUnavailable() from e

    @http_retry()
    def _fetch(self, path: str, params: dict = None):
        url = f"{self.base_url}{path}"
        logger.info(f"Catalog GET {url}")
        resp = self.http.get(url, params=params, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()
