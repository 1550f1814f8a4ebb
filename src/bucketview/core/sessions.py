"""Saved connection sessions, kept in the OS keyring."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import asdict, dataclass

import keyring

from bucketview.constants import DEFAULT_REGION, KEYRING_SERVICE
from bucketview.core.config import ClientConfig, ServiceType

logger = logging.getLogger("bucketview.sessions")

SESSIONS_INDEX_KEY = "sessions"
LATEST_KEY = "latest"


def _init_keyring_backend() -> None:
    """Fall back to SecretService when the default Linux backend cannot start."""
    if sys.platform != "linux":
        return
    try:
        keyring.get_password(KEYRING_SERVICE, "__probe__")
    except keyring.errors.InitError:
        logger.warning("Default keyring backend failed, trying SecretService fallback")
        try:
            from keyring.backends import SecretService

            keyring.set_keyring(SecretService.Keyring())
            logger.info("Using SecretService keyring backend")
        except Exception:
            logger.warning("SecretService fallback unavailable", exc_info=True)
    except Exception:
        logger.debug("Keyring probe failed", exc_info=True)


_init_keyring_backend()


class KeyringError(Exception):
    """Raised when the OS keyring backend is unavailable or fails."""


@dataclass
class Session:
    name: str
    service: str = ServiceType.S3.value
    endpoint: str = ""
    key_id: str = ""
    key_secret: str = ""
    bucket: str = ""
    region: str = DEFAULT_REGION
    note: str = ""

    def key_secret_mask(self) -> str:
        """First and last three characters of the secret, for display."""
        secret = self.key_secret
        if len(secret) <= 6:
            return "*" * len(secret)
        return f"{secret[:3]}{'*' * (len(secret) - 6)}{secret[-3:]}"

    def to_config(self) -> ClientConfig:
        """Build a validated ClientConfig. Raises ConfigError."""
        return (
            ClientConfig.builder()
            .service(self.service)
            .endpoint(self.endpoint)
            .access_key(self.key_id)
            .access_secret(self.key_secret)
            .bucket(self.bucket)
            .region(self.region)
            .build()
        )

    @classmethod
    def from_config(cls, name: str, config: ClientConfig, note: str = "") -> Session:
        return cls(
            name=name,
            service=config.service.value,
            endpoint=config.endpoint,
            key_id=config.access_key_id,
            key_secret=config.access_key_secret,
            bucket=config.bucket,
            region=config.region,
            note=note,
        )


class SessionStore:
    """Each session is a JSON blob under ``session:<name>``, with a name
    index and a pointer to the most recently saved one."""

    def list_sessions(self) -> list[str]:
        try:
            raw = keyring.get_password(KEYRING_SERVICE, SESSIONS_INDEX_KEY)
        except Exception:
            logger.warning("Keyring unavailable, cannot list sessions", exc_info=True)
            return []
        if not raw:
            return []
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return []

    def get_session(self, name: str) -> Session | None:
        try:
            raw = keyring.get_password(KEYRING_SERVICE, f"session:{name}")
        except Exception:
            logger.warning("Keyring unavailable, cannot load session '%s'", name, exc_info=True)
            return None
        if not raw:
            return None
        try:
            data = json.loads(raw)
            data["name"] = name
            return Session(**data)
        except (json.JSONDecodeError, TypeError):
            logger.error("Corrupt session data for '%s'", name)
            return None

    def save_session(self, session: Session) -> None:
        """Store *session*, add it to the index and mark it latest.

        Raises KeyringError if the keyring backend is unavailable.
        """
        data = asdict(session)
        del data["name"]
        try:
            keyring.set_password(KEYRING_SERVICE, f"session:{session.name}", json.dumps(data))
            names = self.list_sessions()
            if session.name not in names:
                names.append(session.name)
                keyring.set_password(KEYRING_SERVICE, SESSIONS_INDEX_KEY, json.dumps(names))
            keyring.set_password(KEYRING_SERVICE, LATEST_KEY, session.name)
        except Exception as e:
            logger.error("Keyring unavailable, cannot save session '%s'", session.name, exc_info=True)
            raise KeyringError(str(e)) from e
        logger.info("Saved session '%s' (service=%s)", session.name, session.service)

    def delete_session(self, name: str) -> None:
        """Raises KeyringError if the keyring backend is unavailable."""
        try:
            keyring.delete_password(KEYRING_SERVICE, f"session:{name}")
            names = self.list_sessions()
            if name in names:
                names.remove(name)
                keyring.set_password(KEYRING_SERVICE, SESSIONS_INDEX_KEY, json.dumps(names))
            if keyring.get_password(KEYRING_SERVICE, LATEST_KEY) == name:
                keyring.delete_password(KEYRING_SERVICE, LATEST_KEY)
        except Exception as e:
            logger.error("Keyring unavailable, cannot delete session '%s'", name, exc_info=True)
            raise KeyringError(str(e)) from e
        logger.info("Deleted session '%s'", name)

    def load_latest(self) -> Session | None:
        try:
            name = keyring.get_password(KEYRING_SERVICE, LATEST_KEY)
        except Exception:
            logger.warning("Keyring unavailable, cannot load latest session", exc_info=True)
            return None
        if not name:
            return None
        return self.get_session(name)
