# certmint/blockchain.py
import logging
from typing import List, Optional, Tuple

from algosdk import account, mnemonic, transaction
from algosdk.error import AlgodHTTPError
from algosdk.v2client import algod

from .errors import AssetLookupError
from .schemas import AssetInfo
from .settings import settings

log = logging.getLogger("blockchain")

MAX_ASSET_NAME_BYTES = 32
MAX_UNIT_NAME_BYTES = 8
MAX_URL_BYTES = 96


class KeySigner:
    """Signs transactions with a locally held key (the minter account)."""

    def __init__(self, private_key: str):
        self.private_key = private_key
        self.address = account.address_from_private_key(private_key)

    @classmethod
    def from_mnemonic(cls, words: str) -> "KeySigner":
        return cls(mnemonic.to_private_key(words))

    def sign_transactions(self, txns: List[transaction.Transaction], signer_address: str) -> list:
        if signer_address != self.address:
            raise ValueError(f"Signer holds the key for {self.address}, not {signer_address}")
        return [txn.sign(self.private_key) for txn in txns]


def truncate_utf8(value: str, limit: int) -> str:
    encoded = value.encode("utf-8")
    if len(encoded) <= limit:
        return value
    return encoded[:limit].decode("utf-8", errors="ignore")


class AlgorandLedger:
    def __init__(self, client: algod.AlgodClient, confirmation_rounds: int = 4):
        self.client = client
        self.confirmation_rounds = confirmation_rounds

    @classmethod
    def from_settings(cls) -> "AlgorandLedger":
        client = algod.AlgodClient(settings.ALGOD_TOKEN, settings.ALGOD_URL)
        return cls(client, settings.CONFIRMATION_ROUNDS)

    def _submit(self, txns: List[transaction.Transaction], signer) -> Tuple[str, dict]:
        if len(txns) > 1:
            transaction.assign_group_id(txns)
        signed = signer.sign_transactions(txns, signer.address)
        tx_id = self.client.send_transactions(signed)
        result = transaction.wait_for_confirmation(self.client, tx_id, self.confirmation_rounds)
        return tx_id, result

    def create_asset(
        self,
        name: str,
        unit_name: str,
        total: int,
        decimals: int,
        default_frozen: bool,
        manager: str,
        reserve: str,
        freeze: str,
        clawback: str,
        url: str,
        note: Optional[bytes],
        signer,
    ) -> Tuple[int, str]:
        if len(url.encode("utf-8")) > MAX_URL_BYTES:
            raise ValueError(f"Asset URL longer than {MAX_URL_BYTES} bytes: {url}")
        txn = transaction.AssetConfigTxn(
            sender=signer.address,
            sp=self.client.suggested_params(),
            total=total,
            decimals=decimals,
            default_frozen=default_frozen,
            unit_name=truncate_utf8(unit_name, MAX_UNIT_NAME_BYTES),
            asset_name=truncate_utf8(name, MAX_ASSET_NAME_BYTES),
            manager=manager,
            reserve=reserve,
            freeze=freeze,
            clawback=clawback,
            url=url,
            note=note,
            strict_empty_address_check=False,
        )
        tx_id, result = self._submit([txn], signer)
        asset_id = result["asset-index"]
        log.info("Created asset %s in round %s (tx %s)", asset_id, result.get("confirmed-round"), tx_id)
        return asset_id, tx_id

    def update_asset_reserve(self, asset_id: int, new_reserve: str, signer) -> Tuple[str, int]:
        # reconfiguration clears any address that is not resent
        current = self.get_asset_info(asset_id)
        txn = transaction.AssetConfigTxn(
            sender=signer.address,
            sp=self.client.suggested_params(),
            index=asset_id,
            manager=current.manager,
            reserve=new_reserve,
            freeze=current.freeze,
            clawback=current.clawback,
            strict_empty_address_check=False,
        )
        tx_id, result = self._submit([txn], signer)
        return tx_id, result["confirmed-round"]

    def get_asset_info(self, asset_id: int) -> AssetInfo:
        try:
            info = self.client.asset_info(asset_id)
        except AlgodHTTPError as e:
            raise AssetLookupError(f"Asset {asset_id} lookup failed: {e}") from e
        params = info.get("params", {})
        return AssetInfo(
            asset_id=info.get("index", asset_id),
            name=params.get("name"),
            unit_name=params.get("unit-name"),
            total=params.get("total", 0),
            decimals=params.get("decimals", 0),
            default_frozen=params.get("default-frozen", False),
            creator=params.get("creator", ""),
            manager=params.get("manager"),
            reserve=params.get("reserve"),
            freeze=params.get("freeze"),
            clawback=params.get("clawback"),
            url=params.get("url"),
        )
