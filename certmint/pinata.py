# certmint/pinata.py
import json
from typing import Dict, Optional

import requests

from .errors import MetadataNotFound, StorageError
from .settings import settings

PINATA_BASE_URL = "https://api.pinata.cloud"
PIN_FILE_URL = f"{PINATA_BASE_URL}/pinning/pinFileToIPFS"
PIN_JSON_URL = f"{PINATA_BASE_URL}/pinning/pinJSONToIPFS"

# CIDv1 pins come back as base32 "bafkrei..." (raw leaves), the form the reserve codec rebuilds.
PIN_OPTIONS = {"cidVersion": 1}


class PinataStorage:
    """Content-addressed storage backed by Pinata pinning and an IPFS gateway."""

    def __init__(
        self,
        jwt: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        gateway: str = "https://gateway.pinata.cloud",
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        self.jwt = jwt
        self.api_key = api_key
        self.api_secret = api_secret
        self.gateway = gateway.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls) -> "PinataStorage":
        return cls(
            jwt=settings.PINATA_JWT,
            api_key=settings.PINATA_API_KEY,
            api_secret=settings.PINATA_API_SECRET,
            gateway=settings.IPFS_GATEWAY,
            timeout=settings.UPLOAD_TIMEOUT,
        )

    def _auth_headers(self) -> Dict[str, str]:
        """
        Build authorization headers for Pinata.
        """
        headers = {}
        if self.jwt:
            headers["Authorization"] = f"Bearer {self.jwt}"
        elif self.api_key and self.api_secret:
            headers["pinata_api_key"] = self.api_key
            headers["pinata_secret_api_key"] = self.api_secret
        else:
            raise StorageError("Pinata credentials not configured properly in .env")
        return headers

    def gateway_url(self, cid: str) -> str:
        return f"{self.gateway}/ipfs/{cid}"

    def upload_file(self, content: bytes, name: str, content_type: str = "application/octet-stream") -> dict:
        """
        Pins raw file bytes and returns {"hash", "gateway_url"}.
        """
        try:
            res = self.session.post(
                PIN_FILE_URL,
                files={"file": (name, content, content_type)},
                data={
                    "pinataMetadata": json.dumps({"name": name}),
                    "pinataOptions": json.dumps(PIN_OPTIONS),
                },
                headers=self._auth_headers(),
                timeout=self.timeout,
            )
            res.raise_for_status()
            cid = res.json()["IpfsHash"]
        except (requests.RequestException, KeyError, ValueError) as e:
            raise StorageError(f"Pinata file upload failed for {name}: {e}") from e
        return {"hash": cid, "gateway_url": self.gateway_url(cid)}

    def upload_json(self, doc: dict, name: Optional[str] = None) -> dict:
        """
        Pins a JSON document and returns {"hash"}.
        """
        headers = self._auth_headers()
        headers["Content-Type"] = "application/json"

        payload = {"pinataContent": doc, "pinataOptions": PIN_OPTIONS}
        if name:
            payload["pinataMetadata"] = {"name": name}

        try:
            res = self.session.post(PIN_JSON_URL, headers=headers, data=json.dumps(payload), timeout=self.timeout)
            res.raise_for_status()
            cid = res.json()["IpfsHash"]
        except (requests.RequestException, KeyError, ValueError) as e:
            raise StorageError(f"Pinata JSON upload failed: {e}") from e
        return {"hash": cid}

    def fetch_metadata(self, cid: str) -> dict:
        try:
            res = self.session.get(self.gateway_url(cid), timeout=self.timeout)
        except requests.RequestException as e:
            raise StorageError(f"Gateway fetch of {cid} failed: {e}") from e
        if res.status_code == 404:
            raise MetadataNotFound(f"No content pinned under {cid}")
        try:
            res.raise_for_status()
            return res.json()
        except (requests.RequestException, ValueError) as e:
            raise StorageError(f"Gateway returned unusable metadata for {cid}: {e}") from e
