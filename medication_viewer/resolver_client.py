"""
Resolver API Client
Sends free-text medication descriptions to the RxNorm resolver service
"""

import requests
import time
from typing import Optional, List, Dict, Any
from loguru import logger
from pydantic import ValidationError

from .config import settings
from .exceptions import ResolverError
from .models import (
    BatchResolveItem,
    BatchResolveRequest,
    BatchResolveResponse,
    ResolveRequest,
    ResolveResponse,
)


class ResolverClient:
    """Client for the medication resolver API"""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.RESOLVER_API_BASE_URL).rstrip("/")
        self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': 'Medication-Viewer/1.0',
            'Content-Type': 'application/json'
        })

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST to the resolver API with retry logic"""
        url = f"{self.base_url}/{endpoint}"
        last_error: Optional[Exception] = None

        for attempt in range(settings.RESOLVER_API_RETRY_ATTEMPTS):
            try:
                response = self.session.post(
                    url,
                    json=payload,
                    timeout=settings.RESOLVER_API_TIMEOUT
                )
                response.raise_for_status()
                return response.json()

            except requests.exceptions.HTTPError as e:
                # Client errors will not succeed on retry
                if e.response is not None and 400 <= e.response.status_code < 500:
                    raise ResolverError(f"HTTP {e.response.status_code}: {e.response.reason}") from e
                logger.warning(f"Resolver request failed (attempt {attempt + 1}): {e}")
                last_error = e
            except requests.exceptions.RequestException as e:
                logger.warning(f"Resolver request failed (attempt {attempt + 1}): {e}")
                last_error = e

            if attempt < settings.RESOLVER_API_RETRY_ATTEMPTS - 1:
                time.sleep(settings.RESOLVER_API_RETRY_DELAY * (attempt + 1))

        raise ResolverError(
            f"Resolver request to {endpoint} failed after {settings.RESOLVER_API_RETRY_ATTEMPTS} attempts: {last_error}"
        )

    def resolve(self, text: str, route_hint: Optional[str] = None, form_hint: Optional[str] = None,
                debug: bool = False, allow_ingredient_only: Optional[bool] = None) -> ResolveResponse:
        """
        Resolve one free-text medication description

        Args:
            text: Description such as "metformin 500 mg"
            route_hint: Optional route, e.g. ORAL
            form_hint: Optional dose form, e.g. tablet
            debug: Ask the service for its top candidates
            allow_ingredient_only: Accept ingredient-level matches

        Returns:
            ResolveResponse
        """
        request = ResolveRequest(
            text=text,
            route_hint=route_hint or None,
            form_hint=form_hint or None,
            debug=debug or None,
            allow_ingredient_only=allow_ingredient_only
        )
        data = self._post("resolve-medication", request.model_dump(exclude_none=True))
        return self._parse(ResolveResponse, data)

    def resolve_batch(self, items: List[BatchResolveItem], debug: bool = False) -> BatchResolveResponse:
        """
        Resolve several descriptions in one call

        Args:
            items: Items with caller-assigned ids
            debug: Ask the service for its top candidates

        Returns:
            BatchResolveResponse with one result per item id
        """
        request = BatchResolveRequest(items=items, debug=debug or None)
        data = self._post("resolve-medications", request.model_dump(exclude_none=True))
        return self._parse(BatchResolveResponse, data)

    def _parse(self, model, data: Dict[str, Any]):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ResolverError(f"Unexpected resolver response: {e}") from e
