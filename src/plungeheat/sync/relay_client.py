"""Relay client - HTTP link between paired devices."""

import logging
from typing import Optional

import requests

from .. import __version__
from ..config import DEFAULT_RELAY_URL
from .protocols import DeliveryResult, Inbound, InboundEvent, TransportError

__all__ = ["RelayClient", "RelayClientError", "RelayAuthError"]

logger = logging.getLogger(__name__)


class RelayClientError(TransportError):
    """Relay request failed."""

    pass


class RelayAuthError(RelayClientError):
    """Pairing token rejected."""

    pass


class RelayClient:
    """Talks to the pairing relay that stores and forwards messages.

    The relay keeps one mailbox per device: events posted by one device
    wait in the peer's inbox until acknowledged, and the latest context
    snapshot replaces the previous one.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_RELAY_URL,
        token: Optional[str] = None,
        device_id: Optional[str] = None,
        role: str = "primary",
        timeout: int = 10,
    ):
        """Initialize relay client.

        Args:
            api_url: Relay API base URL
            token: Pairing token shared by both devices
            device_id: This device's id
            role: "primary" or "companion"
            timeout: Request timeout in seconds
        """
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.device_id = device_id
        self.role = role
        self.timeout = timeout
        self._session = requests.Session()

    def _get_headers(self) -> dict:
        headers = {
            "Accept": "application/json",
            "User-Agent": f"PlungeHeat/{__version__}",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.device_id:
            headers["X-Device-ID"] = self.device_id
        return headers

    def _request(self, method: str, endpoint: str, data: Optional[dict] = None) -> dict:
        """Make a request to the relay.

        Raises:
            RelayAuthError: For 401/403 responses
            RelayClientError: For connection failures and other errors
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        kwargs = {"timeout": self.timeout, "headers": self._get_headers()}
        if data is not None:
            kwargs["json"] = data

        try:
            response = self._session.request(method, url, **kwargs)

            if response.status_code == 401:
                raise RelayAuthError("Invalid or expired pairing token")
            if response.status_code == 403:
                raise RelayAuthError("Device not paired")

            response.raise_for_status()
            return response.json() if response.content else {}

        except requests.exceptions.ConnectionError as e:
            raise RelayClientError("Cannot connect to relay") from e
        except requests.exceptions.Timeout as e:
            raise RelayClientError("Request timed out") from e
        except requests.exceptions.HTTPError as e:
            error_detail = ""
            try:
                error_detail = e.response.json().get("message", "")
            except ValueError:
                pass
            raise RelayClientError(
                f"Relay error ({e.response.status_code}): {error_detail or str(e)}"
            ) from e
        except ValueError as e:
            raise RelayClientError(f"Invalid relay response: {e}") from e

    def activate(self) -> None:
        """Register this device with the relay for the current pairing."""
        self._request("POST", "devices/activate", {"device_id": self.device_id, "role": self.role})
        logger.info(f"Relay activated for {self.role} device {self.device_id}")

    def is_reachable(self) -> bool:
        try:
            self._request("GET", "health")
            return True
        except RelayClientError:
            return False

    def send_events(self, events: list[dict]) -> DeliveryResult:
        if not events:
            return DeliveryResult(success=True)

        try:
            response = self._request("POST", "events/batch", {"events": events})
        except RelayAuthError:
            raise
        except RelayClientError as e:
            return DeliveryResult(success=False, error=str(e))

        accepted = int(response.get("accepted", len(events)))
        if accepted < len(events):
            return DeliveryResult(
                success=False,
                delivered=accepted,
                error=f"Relay accepted {accepted} of {len(events)} events",
            )
        return DeliveryResult(success=True, delivered=accepted)

    def send_context(self, context: dict) -> None:
        self._request("PUT", "context", context)

    def fetch_inbound(self) -> Inbound:
        response = self._request("GET", "inbox")
        events = []
        for item in response.get("events", []):
            if not isinstance(item, dict) or "delivery_id" not in item:
                logger.warning(f"Ignoring inbox item without delivery id: {item!r}")
                continue
            events.append(InboundEvent(str(item["delivery_id"]), item.get("payload") or {}))
        return Inbound(events=events, context=response.get("context"))

    def acknowledge(self, delivery_ids: list[str]) -> None:
        if delivery_ids:
            self._request("POST", "inbox/ack", {"delivery_ids": delivery_ids})

    def close(self) -> None:
        self._session.close()
