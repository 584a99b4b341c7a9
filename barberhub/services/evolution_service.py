import logging
from typing import Any, Optional

import httpx

from ..config import (
    EVOLUTION_API_KEY,
    EVOLUTION_API_URL,
    HTTP_TIMEOUT_SECONDS,
    RETRY_BASE_DELAY,
    RETRY_MAX_ATTEMPTS,
    RETRY_TIME_BUDGET,
    WHATSAPP_WEBHOOK_EVENTS,
)
from ..shared.retry import CancellationToken, retry_async

logger = logging.getLogger(__name__)


class EvolutionAPIError(Exception):
    """Non-success response from the Evolution API"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EvolutionServerError(EvolutionAPIError):
    """5xx response; worth retrying"""


class EvolutionService:
    """Service for interacting with the Evolution API (WhatsApp gateway)"""

    def __init__(
        self,
        base_url: str = EVOLUTION_API_URL,
        api_key: Optional[str] = EVOLUTION_API_KEY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_attempts: int = RETRY_MAX_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY,
        time_budget: Optional[float] = RETRY_TIME_BUDGET,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.transport = transport
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.time_budget = time_budget

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"apikey": self.api_key or "", "Content-Type": "application/json"},
            timeout=HTTP_TIMEOUT_SECONDS,
            transport=self.transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Any:
        """Send one call through the retry policy; 4xx fails immediately, 5xx and transport errors retry"""

        async def attempt():
            async with self._client() as client:
                response = await client.request(method, path, json=json, params=params)
            if response.status_code >= 500:
                raise EvolutionServerError(
                    f"Evolution API {method} {path} returned {response.status_code}",
                    response.status_code,
                )
            if response.status_code >= 400:
                logger.error(f"❌ Evolution API {method} {path} failed: {response.status_code} {response.text}")
                raise EvolutionAPIError(
                    f"Evolution API {method} {path} returned {response.status_code}",
                    response.status_code,
                )
            if not response.content:
                return {}
            return response.json()

        return await retry_async(
            attempt,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            time_budget=self.time_budget,
            cancel_token=cancel_token,
            retry_on=(httpx.TransportError, EvolutionServerError),
            description=f"evolution {method} {path}",
        )

    async def connection_state(self, instance_name: str, **kwargs) -> str:
        """Remote state of the instance: open, connecting or close"""
        data = await self._request("GET", f"/instance/connectionState/{instance_name}", **kwargs)
        state = (data.get("instance") or {}).get("state") or data.get("state") or "close"
        logger.info(f"📡 Instance {instance_name} state: {state}")
        return state

    async def fetch_instances(self, instance_name: str, **kwargs) -> list[dict]:
        data = await self._request(
            "GET", "/instance/fetchInstances", params={"instanceName": instance_name}, **kwargs
        )
        if isinstance(data, dict):
            return [data]
        return data or []

    async def phone_number(self, instance_name: str, **kwargs) -> Optional[str]:
        """Phone number bound to the instance, taken from its WhatsApp id"""
        instances = await self.fetch_instances(instance_name, **kwargs)
        if not instances:
            return None
        info = instances[0].get("instance") or instances[0]
        wuid = info.get("wuid") or info.get("ownerJid") or info.get("owner")
        if not wuid:
            return None
        return wuid.split("@")[0]

    async def connect(self, instance_name: str, **kwargs) -> Optional[str]:
        """Request a pairing QR code (base64) for the instance"""
        data = await self._request("GET", f"/instance/connect/{instance_name}", **kwargs)
        return data.get("base64") or (data.get("qrcode") or {}).get("base64")

    async def find_webhook(self, instance_name: str, **kwargs) -> Optional[dict]:
        data = await self._request("GET", f"/webhook/find/{instance_name}", **kwargs)
        if not data:
            return None
        return data.get("webhook") or data

    async def set_webhook(self, instance_name: str, url: str, **kwargs) -> dict:
        payload = {
            "url": url,
            "events": WHATSAPP_WEBHOOK_EVENTS,
            "webhook_by_events": False,
            "enabled": True,
        }
        logger.info(f"🔗 Setting webhook for {instance_name} to {url}")
        return await self._request("POST", f"/webhook/set/{instance_name}", json=payload, **kwargs)

    async def send_text(self, instance_name: str, number: str, text: str, **kwargs) -> dict:
        logger.info(f"📤 Sending WhatsApp message via {instance_name} to {number}")
        return await self._request(
            "POST",
            f"/message/sendText/{instance_name}",
            json={"number": number, "text": text},
            **kwargs,
        )
