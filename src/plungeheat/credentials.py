"""Pairing credentials stored in the system keychain."""

import json
import logging
from dataclasses import dataclass
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

__all__ = ["PairingStore", "PairingCredentials"]

logger = logging.getLogger(__name__)

SERVICE_NAME = "Plunge & Heat"
ACCOUNT_NAME = "relay_pairing"


@dataclass
class PairingCredentials:
    """Token and ids shared by a paired primary/companion couple."""

    token: str
    device_id: str
    peer_device_id: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(
            {
                "token": self.token,
                "device_id": self.device_id,
                "peer_device_id": self.peer_device_id,
            }
        )

    @classmethod
    def from_json(cls, data: str) -> "PairingCredentials":
        parsed = json.loads(data)
        return cls(
            token=parsed["token"],
            device_id=parsed["device_id"],
            peer_device_id=parsed.get("peer_device_id"),
        )


class PairingStore:
    """Keeps the relay pairing token out of the config file."""

    def __init__(self, service_name: str = SERVICE_NAME):
        self.service_name = service_name

    def store(self, credentials: PairingCredentials) -> bool:
        try:
            keyring.set_password(self.service_name, ACCOUNT_NAME, credentials.to_json())
            logger.info(f"Pairing stored for device {credentials.device_id}")
            return True
        except KeyringError as e:
            logger.error(f"Failed to store pairing: {e}")
            return False

    def load(self) -> Optional[PairingCredentials]:
        try:
            data = keyring.get_password(self.service_name, ACCOUNT_NAME)
            if data:
                return PairingCredentials.from_json(data)
            return None
        except KeyringError as e:
            logger.error(f"Failed to load pairing: {e}")
            return None
        except (KeyError, ValueError) as e:
            logger.error(f"Invalid pairing format: {e}")
            return None

    def delete(self) -> bool:
        """Forget the pairing. True if deleted or never stored."""
        try:
            keyring.delete_password(self.service_name, ACCOUNT_NAME)
            logger.info("Pairing deleted")
            return True
        except PasswordDeleteError:
            return True
        except KeyringError as e:
            logger.error(f"Failed to delete pairing: {e}")
            return False

    def is_paired(self) -> bool:
        return self.load() is not None
