"""Thin HTTP client around the Azure Key Vault REST API used by the report."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import requests

from .classifier import ItemKind, VaultItem
from .config import KeyVaultConfig

LOGGER = logging.getLogger("keyvault_expiry_report.client")

VAULT_SCOPE = "https://vault.azure.net/.default"


class KeyVaultClient:
    """Wrapper for the Key Vault list endpoints needed by the report."""

    def __init__(self, config: KeyVaultConfig, session: Optional[requests.Session] = None) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._base_url = config.vault_url.rstrip("/")
        self._token: Optional[str] = None
        self._token_expiry_epoch: float = 0.0

    # ---- authentication helpers -------------------------------------------------
    def _token_is_valid(self) -> bool:
        return bool(self._token) and time.time() < (self._token_expiry_epoch - 15)

    def _obtain_token(self) -> None:
        authority = self._config.authority_host.rstrip("/")
        response = self._session.post(
            f"{authority}/{self._config.tenant_id}/oauth2/v2.0/token",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data={
                "grant_type": "client_credentials",
                "scope": VAULT_SCOPE,
                "client_id": self._config.client_id,
                "client_secret": self._config.client_secret,
            },
            timeout=self._config.timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        self._token = payload["access_token"]
        expires_in = int(payload.get("expires_in", 3600))
        self._token_expiry_epoch = time.time() + expires_in

    def _auth_headers(self) -> Dict[str, str]:
        if not self._token_is_valid():
            self._obtain_token()
        assert self._token  # for type-checkers
        return {"Authorization": f"Bearer {self._token}"}

    def _list_collection(self, collection: str) -> List[Dict[str, Any]]:
        url: Optional[str] = urljoin(self._base_url + "/", collection)
        params: Optional[Dict[str, str]] = {"api-version": self._config.api_version}
        items: List[Dict[str, Any]] = []
        while url:
            response = self._session.get(
                url,
                headers=self._auth_headers(),
                params=params,
                timeout=self._config.timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
            if not isinstance(payload, dict) or not isinstance(payload.get("value"), list):
                raise ValueError(f"Unexpected response from /{collection}")
            items.extend(payload["value"])
            # nextLink already carries api-version and the paging token
            url = payload.get("nextLink")
            params = None
        return items

    # ---- public API --------------------------------------------------------------
    def list_keys(self) -> List[Dict[str, Any]]:
        return self._list_collection(ItemKind.KEY.collection)

    def list_secrets(self) -> List[Dict[str, Any]]:
        return self._list_collection(ItemKind.SECRET.collection)

    def list_certificates(self) -> List[Dict[str, Any]]:
        return self._list_collection(ItemKind.CERTIFICATE.collection)

    def fetch_items(self) -> Tuple[List[VaultItem], List[VaultItem], List[VaultItem]]:
        """Fetch keys, secrets and certificates as ``VaultItem`` lists, in that order."""

        fetched = []
        for kind, payloads in (
            (ItemKind.KEY, self.list_keys()),
            (ItemKind.SECRET, self.list_secrets()),
            (ItemKind.CERTIFICATE, self.list_certificates()),
        ):
            items = [VaultItem.from_api(kind, payload) for payload in payloads]
            if not self._config.include_managed:
                # Certificates own a managed key and secret of the same name.
                items = [item for item in items if not item.managed]
            LOGGER.debug("Fetched %s %s item(s) from %s", len(items), kind.label, self._config.vault_name)
            fetched.append(items)
        keys, secrets, certificates = fetched
        return keys, secrets, certificates
