import hashlib
import json
import threading
import time

import pytest
from algosdk import encoding
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from certmint.codec import RAW, SHA2_256, AddressCodec, ContentIdentifier, Multihash
from certmint.crud import CertificationStore
from certmint.errors import AssetLookupError, MetadataNotFound, StorageError
from certmint.minting import MintingOrchestrator
from certmint.schemas import AssetInfo, CertificationFile, Organization
from certmint.uploads import MetadataCache, UploadCoordinator

GATEWAY = "https://gateway.test"


def cid_for(content: bytes) -> str:
    digest = hashlib.sha256(content).digest()
    return ContentIdentifier(1, RAW, Multihash(SHA2_256, 32, digest)).encode()


def make_file(name: str, content: bytes = None, content_type: str = "application/pdf") -> CertificationFile:
    return CertificationFile(name=name, content=content or name.encode() * 3, content_type=content_type)


class FakeStorage:
    def __init__(self, fail_on=(), delay: float = 0.0, json_cid=None):
        self.gateway = GATEWAY
        self.fail_on = set(fail_on)
        self.delay = delay
        self.json_cid = json_cid or (lambda doc: cid_for(json.dumps(doc, sort_keys=True).encode()))
        self.docs = {}
        self.file_calls = []
        self.json_calls = []
        self.fetch_calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def upload_file(self, content, name, content_type="application/octet-stream"):
        with self._lock:
            self.file_calls.append(name)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if name in self.fail_on:
                raise StorageError(f"pinning {name} rejected")
            cid = cid_for(content)
            return {"hash": cid, "gateway_url": f"{GATEWAY}/ipfs/{cid}"}
        finally:
            with self._lock:
                self.active -= 1

    def upload_json(self, doc, name=None):
        cid = self.json_cid(doc)
        self.json_calls.append(cid)
        self.docs[cid] = json.loads(json.dumps(doc))
        return {"hash": cid}

    def fetch_metadata(self, cid):
        self.fetch_calls.append(cid)
        if cid not in self.docs:
            raise MetadataNotFound(cid)
        return json.loads(json.dumps(self.docs[cid]))


class FakeSigner:
    def __init__(self, seed: int = 7):
        self.address = encoding.encode_address(bytes([seed]) * 32)

    def sign_transactions(self, txns, signer_address):
        return list(txns)


class FakeLedger:
    def __init__(self):
        self.assets = {}
        self.next_id = 1001
        self.create_calls = []
        self.update_calls = []
        self.fail_create = False
        self.fail_update = False
        self.create_delay = 0
        self.round = 100

    def create_asset(self, name, unit_name, total, decimals, default_frozen, manager,
                     reserve, freeze, clawback, url, note, signer):
        self.create_calls.append(name)
        if self.create_delay:
            time.sleep(self.create_delay)
        if self.fail_create:
            raise ConnectionError("algod unreachable")
        asset_id = self.next_id
        self.next_id += 1
        self.assets[asset_id] = AssetInfo(
            asset_id=asset_id, name=name, unit_name=unit_name, total=total, decimals=decimals,
            default_frozen=default_frozen, creator=signer.address, manager=manager,
            reserve=reserve, freeze=freeze, clawback=clawback, url=url,
        )
        return asset_id, f"CREATE-{asset_id}"

    def update_asset_reserve(self, asset_id, new_reserve, signer):
        self.update_calls.append((asset_id, new_reserve))
        if self.fail_update:
            raise ConnectionError("node dropped the transaction")
        self.assets[asset_id].reserve = new_reserve
        self.round += 1
        return f"UPDATE-{asset_id}-{len(self.update_calls)}", self.round

    def get_asset_info(self, asset_id):
        if asset_id not in self.assets:
            raise AssetLookupError(f"asset {asset_id} does not exist")
        return self.assets[asset_id].model_copy()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def codec():
    return AddressCodec()


@pytest.fixture
def store():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    s = CertificationStore(engine)
    s.init_db()
    return s


@pytest.fixture
def uploads(storage):
    return UploadCoordinator(storage, MetadataCache(ttl=60), batch_size=3, upload_timeout=5, fetch_timeout=5)


@pytest.fixture
def orchestrator(uploads, ledger, signer, codec, store):
    return MintingOrchestrator(
        uploads, ledger, signer, codec=codec, store=store,
        organization=Organization(name="Acme Certifications"), call_timeout=5,
    )
