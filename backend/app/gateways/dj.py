"""Virtual DJ remote-control gateway.

Scripts are forwarded to the VDJ network control plugin and its text reply is
returned. Nothing here touches game state.
"""

from typing import Optional

import httpx

from app.errors import GatewayUnavailable


class DJGateway:
    def __init__(self, base_url: str, timeout: float = 5.0, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.BaseTransport] = None) -> 'DJGateway':
        return cls(
            config.get('VDJ_URL', ''),
            timeout=float(config.get('GATEWAY_TIMEOUT_SEC', 5)),
            transport=transport,
        )

    def run_script(self, script: str) -> str:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(f"{self.base_url}/query", params={"script": script})
        except httpx.HTTPError as exc:
            raise GatewayUnavailable('Could not connect to Virtual DJ.') from exc
        if response.status_code != 200:
            raise GatewayUnavailable('Failed to communicate with Virtual DJ.', upstream_status=response.status_code)
        return response.text
