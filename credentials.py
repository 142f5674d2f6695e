"""Resolve a binding's ``dev.auth`` setting into a concrete credential."""

import logging
from typing import Any, Optional

from constants import INDIRECT_AUTH_PREFIX
from errors import CredentialUnresolved, StoreError
from kvs_store import KeyValueStore
from models import Credential

logger = logging.getLogger(__name__)


def credential_from_value(value: Any) -> Credential:
    """Turn ``{"id": ..., "pw": ...}`` into a Credential."""
    if not isinstance(value, dict) or "id" not in value or "pw" not in value:
        raise CredentialUnresolved("Credential must be an object with 'id' and 'pw'")
    return Credential(username=str(value["id"]), password=str(value["pw"]))


def is_indirect(raw_auth: Any) -> bool:
    return isinstance(raw_auth, str) and raw_auth.startswith(INDIRECT_AUTH_PREFIX)


class CredentialResolver:
    """
    Accepts the three forms of ``dev.auth``:
      - null                -> no credential
      - {"id": .., "pw": ..} -> inline credential
      - "@<key>"            -> credential stored under <key>

    Resolution never raises: anything that cannot be resolved is logged and
    the binding continues without a credential.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def resolve(self, raw_auth: Any, binding_id: str = "?") -> Optional[Credential]:
        if not is_indirect(raw_auth):
            return self.resolve_inline(raw_auth, binding_id)
        try:
            return await self._resolve_indirect(raw_auth[len(INDIRECT_AUTH_PREFIX):], binding_id)
        except CredentialUnresolved as e:
            logger.warning(f"[{binding_id}] Credential unresolved, continuing without auth: {e}")
            return None

    def resolve_inline(self, raw_auth: Any, binding_id: str = "?") -> Optional[Credential]:
        """Resolve the forms that need no store lookup."""
        if not raw_auth:
            return None
        try:
            return credential_from_value(raw_auth)
        except CredentialUnresolved as e:
            logger.warning(f"[{binding_id}] Invalid inline credential, continuing without auth: {e}")
            return None

    async def _resolve_indirect(self, key: str, binding_id: str) -> Credential:
        logger.info(f"[{binding_id}] Getting device credentials from store key '{key}'")
        try:
            value = await self.store.get(key)
        except StoreError as e:
            raise CredentialUnresolved(f"Failed to read '{key}': {e}") from e
        credential = credential_from_value(value)
        logger.info(f"[{binding_id}] Got device credentials from store")
        return credential
