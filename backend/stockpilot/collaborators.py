# Overview: External collaborators (hosted image storage, reorder advisor) behind small capability interfaces.

"""
Outbound integrations.

Services only see two small interfaces:

- ImageStore: upload(data, folder) -> StoredImage; delete(public_id)
- ReorderAdvisor: suggest_reorder_quantity(context) -> ReorderSuggestion

The HTTP implementations below use httpx. create_app registers one of each
in app.extensions["stockpilot.image_store"] / ["stockpilot.reorder_advisor"]
when configured; tests register in-memory fakes instead.

Failures of the remote side surface as InfrastructureError so callers never
see transport details.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass

import httpx
from flask import current_app

from .errors import InfrastructureError

logger = logging.getLogger(__name__)

IMAGE_STORE_KEY = "stockpilot.image_store"
REORDER_ADVISOR_KEY = "stockpilot.reorder_advisor"


@dataclass(frozen=True)
class StoredImage:
    url: str
    public_id: str


@dataclass(frozen=True)
class ReorderContext:
    product_id: int
    product_name: str
    average_daily_sales: float
    current_stock_level: int
    lead_time_in_days: int
    desired_safety_stock_level: int

    def to_dict(self) -> dict:
        return {
            "productId": str(self.product_id),
            "productName": self.product_name,
            "averageDailySales": self.average_daily_sales,
            "currentStockLevel": self.current_stock_level,
            "leadTimeInDays": self.lead_time_in_days,
            "desiredSafetyStockLevel": self.desired_safety_stock_level,
        }


@dataclass(frozen=True)
class ReorderSuggestion:
    reorder_quantity: int
    reasoning: str

    def to_dict(self) -> dict:
        return {"reorder_quantity": self.reorder_quantity, "reasoning": self.reasoning}


class ImageStore:
    def upload(self, data: bytes, folder: str) -> StoredImage:
        raise NotImplementedError

    def delete(self, public_id: str) -> None:
        raise NotImplementedError


class ReorderAdvisor:
    def suggest_reorder_quantity(self, context: ReorderContext) -> ReorderSuggestion:
        raise NotImplementedError


class CloudImageStore(ImageStore):
    """
    Signed-upload REST client for the hosted image service.

    Signature: sha1 of the alphabetically sorted signed params joined as
    "k=v&k=v" followed by the API secret.
    """

    base_url = "https://api.cloudinary.com/v1_1"

    def __init__(self, *, cloud_name: str, api_key: str, api_secret: str, timeout: float = 30.0, client: httpx.Client | None = None):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.client = client or httpx.Client(timeout=timeout)

    def _sign(self, params: dict) -> str:
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return hashlib.sha1((to_sign + self.api_secret).encode("utf-8")).hexdigest()

    def _signed(self, params: dict) -> dict:
        params = dict(params, timestamp=int(time.time()))
        return dict(params, api_key=self.api_key, signature=self._sign(params))

    def upload(self, data: bytes, folder: str) -> StoredImage:
        url = f"{self.base_url}/{self.cloud_name}/image/upload"
        try:
            response = self.client.post(url, data=self._signed({"folder": folder}), files={"file": data})
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Image upload failed: %s", exc)
            raise InfrastructureError("Image upload failed. Please try again.", status_code=503) from exc

        if not body.get("secure_url") or not body.get("public_id"):
            logger.error("Image upload returned an incomplete response")
            raise InfrastructureError("Image upload failed. Please try again.", status_code=503)
        return StoredImage(url=body["secure_url"], public_id=body["public_id"])

    def delete(self, public_id: str) -> None:
        url = f"{self.base_url}/{self.cloud_name}/image/destroy"
        try:
            response = self.client.post(url, data=self._signed({"public_id": public_id}))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Image delete failed for %s: %s", public_id, exc)
            raise InfrastructureError("Image delete failed.", status_code=503) from exc


class HttpReorderAdvisor(ReorderAdvisor):
    """Posts the reorder context as JSON and reads {reorderQuantity, reasoning}."""

    def __init__(self, *, url: str, timeout: float = 30.0, client: httpx.Client | None = None):
        self.url = url
        self.client = client or httpx.Client(timeout=timeout)

    def suggest_reorder_quantity(self, context: ReorderContext) -> ReorderSuggestion:
        try:
            response = self.client.post(self.url, json=context.to_dict())
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Reorder advisor request failed: %s", exc)
            raise InfrastructureError("The reorder advisor is unavailable. Please try again later.", status_code=503) from exc

        return parse_suggestion(body)


def parse_suggestion(body) -> ReorderSuggestion:
    """Accepts camelCase or snake_case keys; the quantity must be a non-negative integer."""
    if not isinstance(body, dict):
        raise InfrastructureError("The reorder advisor returned an unexpected answer.", status_code=502)

    quantity = body.get("reorderQuantity", body.get("reorder_quantity"))
    reasoning = body.get("reasoning")
    if isinstance(quantity, float) and quantity.is_integer():
        quantity = int(quantity)
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0 or not isinstance(reasoning, str):
        logger.error("Reorder advisor returned an invalid payload: %r", body)
        raise InfrastructureError("The reorder advisor returned an unexpected answer.", status_code=502)
    return ReorderSuggestion(reorder_quantity=quantity, reasoning=reasoning)


def init_collaborators(app) -> None:
    """Register HTTP collaborators for whatever is configured."""
    cfg = app.config
    if cfg.get("IMAGE_CLOUD_NAME") and cfg.get("IMAGE_API_KEY") and cfg.get("IMAGE_API_SECRET"):
        app.extensions.setdefault(
            IMAGE_STORE_KEY,
            CloudImageStore(
                cloud_name=cfg["IMAGE_CLOUD_NAME"],
                api_key=cfg["IMAGE_API_KEY"],
                api_secret=cfg["IMAGE_API_SECRET"],
            ),
        )
    if cfg.get("REORDER_ADVISOR_URL"):
        app.extensions.setdefault(
            REORDER_ADVISOR_KEY,
            HttpReorderAdvisor(url=cfg["REORDER_ADVISOR_URL"], timeout=float(cfg.get("REORDER_ADVISOR_TIMEOUT", 30))),
        )


def get_image_store() -> ImageStore | None:
    return current_app.extensions.get(IMAGE_STORE_KEY)


def get_reorder_advisor() -> ReorderAdvisor | None:
    return current_app.extensions.get(REORDER_ADVISOR_KEY)
