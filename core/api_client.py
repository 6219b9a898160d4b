import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol

import requests

from core.data_models import Device, DeviceCommand

logger = logging.getLogger(__name__)


class DeviceAPIError(Exception):
    """Base error for the remote control service."""


class AuthenticationError(DeviceAPIError):
    """The service rejected our credentials."""


class APIRequestError(DeviceAPIError):
    """A request failed or returned an unexpected response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CommandSender(Protocol):
    """Anything able to deliver a command to a device."""

    async def send_device_command(self, device_id: str, command: DeviceCommand) -> Dict[str, Any]:
        ...


class DeviceAPIClient:
    """Blocking client for the pump control REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

        if not token:
            logger.warning("No API token configured, requests may be rejected")

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, headers=self._get_headers(), timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise APIRequestError(f"{method} {path} failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(f"{method} {path} rejected: {response.status_code} - {response.text}")
        if response.status_code >= 400:
            raise APIRequestError(
                f"{method} {path} failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise APIRequestError(f"{method} {path} returned invalid JSON") from e

    def send_device_command(self, device_id: str, command: DeviceCommand) -> Dict[str, Any]:
        payload = command.to_payload()
        logger.info("Sending command to %s: %s", device_id, payload)
        data = self._request("POST", f"/devices/{device_id}/command", json=payload)
        return data if isinstance(data, dict) else {"result": data}

    def fetch_devices(self) -> List[Device]:
        data = self._request("GET", "/devices")
        entries = data.get("devices", []) if isinstance(data, dict) else data

        devices: List[Device] = []
        for entry in entries or []:
            try:
                devices.append(Device.from_api(entry))
            except (TypeError, ValueError) as e:
                logger.warning("Skipping malformed device entry: %s", e)

        logger.info("Loaded %d devices", len(devices))
        return devices

    def close(self) -> None:
        self.session.close()
        logger.info("DeviceAPIClient closed")


class AsyncCommandSender:
    """Runs the blocking client off the event loop."""

    def __init__(self, client: DeviceAPIClient) -> None:
        self.client = client

    async def send_device_command(self, device_id: str, command: DeviceCommand) -> Dict[str, Any]:
        return await asyncio.to_thread(self.client.send_device_command, device_id, command)

    async def fetch_devices(self) -> List[Device]:
        return await asyncio.to_thread(self.client.fetch_devices)
