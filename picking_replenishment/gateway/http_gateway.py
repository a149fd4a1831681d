# picking_replenishment/gateway/http_gateway.py
from typing import List, Optional

import httpx

from picking_replenishment.config import config
from picking_replenishment.exceptions import GatewayDispatchFailed, GatewayFetchFailed
from picking_replenishment.gateway.base import (
    ReplenishmentGateway, StockItem, WaveAck, WavePayload
)
from picking_replenishment.logging_setup import get_logger

logger = get_logger('gateway')


class HttpGateway(ReplenishmentGateway):
    """Client for the warehouse-management system's replenishment API.

    Endpoints:
        GET  {base_url}/picking-stock?filial=<branch>
        POST {base_url}/replenishment
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        if timeout is None:
            timeout = config.gateway_config['timeout_seconds']
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self, company_id: int) -> dict:
        return {
            'Authorization': f"Bearer {self.api_key}",
            'X-Company-ID': str(company_id),
        }

    def fetch_stock(self, company_id: int, branch: str) -> List[StockItem]:
        try:
            resp = self._client.get(
                f"{self.base_url}/picking-stock",
                params={'filial': branch},
                headers=self._headers(company_id)
            )
            resp.raise_for_status()
            rows = resp.json()
        except httpx.HTTPStatusError as e:
            raise GatewayFetchFailed(f"Gateway API returned status {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            raise GatewayFetchFailed(f"Gateway stock request failed: {str(e)}")

        if not isinstance(rows, list):
            raise GatewayFetchFailed("Gateway stock response is not a list")

        items = []
        for row in rows:
            try:
                items.append(StockItem(
                    product_code=str(row['product_code']),
                    current_qty=float(row['current_qty']),
                    location_code=row.get('location_code') or None,
                    description=row.get('product_desc', '') or '',
                    min_qty=row.get('min_qty'),
                    max_qty=row.get('max_qty'),
                    abc_class=row.get('abc_class')
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed stock row from gateway: {row!r} ({e})")

        return items

    def send_wave(self, company_id: int, payload: WavePayload) -> WaveAck:
        body = {
            'wave_number': payload.wave_number,
            'filial': payload.branch,
            'generated_at': payload.generated_at,
            'tasks': [
                {
                    'location_code': task.location_code,
                    'product_code': task.product_code,
                    'product_desc': task.description,
                    'qty_to_replenish': task.qty_to_replenish,
                    'abc_class': task.abc_class,
                    'priority': task.priority,
                }
                for task in payload.tasks
            ],
        }

        try:
            resp = self._client.post(
                f"{self.base_url}/replenishment",
                json=body,
                headers=self._headers(company_id)
            )
            resp.raise_for_status()
            result = resp.json()
        except httpx.HTTPStatusError as e:
            raise GatewayDispatchFailed(f"Gateway API returned status {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            raise GatewayDispatchFailed(f"Gateway wave request failed: {str(e)}")

        if not isinstance(result, dict) or not result.get('success', False):
            message = result.get('message') if isinstance(result, dict) else None
            raise GatewayDispatchFailed(message or "Gateway rejected the wave")

        return WaveAck(
            reference=str(result.get('winthor_ref') or result.get('reference') or ''),
            message=result.get('message', '') or ''
        )

    def close(self):
        self._client.close()
