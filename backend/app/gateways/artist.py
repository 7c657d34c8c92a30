"""Spotify artist-image lookup (Client Credentials flow, no user login)."""

import base64
import threading
import time
from typing import Any, Dict, Optional

import httpx

from app.errors import GatewayUnavailable

_token_lock = threading.Lock()
# client_id -> (access_token, expires_at)
_token_cache: Dict[str, tuple] = {}


class ArtistGateway:
    TOKEN_URL = "https://accounts.spotify.com/api/token"
    API_BASE = "https://api.spotify.com/v1"
    # Refresh this many seconds before Spotify says the token expires
    TOKEN_REFRESH_MARGIN = 300

    def __init__(self, client_id: str, client_secret: str, timeout: float = 5.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.BaseTransport] = None) -> 'ArtistGateway':
        return cls(
            config.get('SPOTIFY_CLIENT_ID', ''),
            config.get('SPOTIFY_CLIENT_SECRET', ''),
            timeout=float(config.get('GATEWAY_TIMEOUT_SEC', 5)),
            transport=transport,
        )

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self._transport)

    def _get_token(self, client: httpx.Client) -> str:
        with _token_lock:
            cached = _token_cache.get(self.client_id)
            if cached and time.time() < cached[1]:
                return cached[0]

        credentials = f"{self.client_id}:{self.client_secret}"
        encoded = base64.b64encode(credentials.encode()).decode()
        response = client.post(
            self.TOKEN_URL,
            headers={
                "Authorization": f"Basic {encoded}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data={"grant_type": "client_credentials"},
        )
        if response.status_code != 200:
            raise GatewayUnavailable('Failed to authenticate with Spotify', upstream_status=response.status_code)
        try:
            data = response.json()
            token = data["access_token"]
            expires_in = int(data.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise GatewayUnavailable('Spotify returned an unreadable token response') from exc
        with _token_lock:
            _token_cache[self.client_id] = (token, time.time() + max(0, expires_in - self.TOKEN_REFRESH_MARGIN))
        return token

    def find_artist_image(self, artist_name: str) -> Optional[str]:
        """URL of the best-matching artist's first image, or None when there is none."""
        if not (self.client_id and self.client_secret):
            raise GatewayUnavailable('Spotify credentials are not configured')
        try:
            with self._client() as client:
                token = self._get_token(client)
                response = client.get(
                    f"{self.API_BASE}/search",
                    params={"q": artist_name, "type": "artist", "limit": 1},
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as exc:
            raise GatewayUnavailable('Could not reach Spotify') from exc
        if response.status_code != 200:
            raise GatewayUnavailable('Failed to search for artist on Spotify', upstream_status=response.status_code)
        try:
            return self._first_image(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise GatewayUnavailable('Spotify returned an unreadable search response') from exc

    @staticmethod
    def _first_image(data: Dict[str, Any]) -> Optional[str]:
        items = (data.get("artists") or {}).get("items") or []
        if not items:
            return None
        images = items[0].get("images") or []
        if not images:
            return None
        return images[0].get("url")


def clear_token_cache() -> None:
    with _token_lock:
        _token_cache.clear()
