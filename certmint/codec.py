# certmint/codec.py
"""
Conversion between IPFS content identifiers and Algorand addresses.

An ARC-19 asset stores the digest of its metadata CID in the reserve field:
the 32-byte sha2-256 digest becomes the public-key part of an address and the
ledger's own checksum is appended. Decoding reverses this and rebuilds a CIDv1
with the content codec used when the metadata was pinned.
"""
import base64
import binascii
from dataclasses import dataclass

import base58
from algosdk import encoding
from algosdk.error import WrongChecksumError, WrongKeyLengthError

from .errors import InvalidChecksum, MalformedAddress, MalformedCid, UnsupportedDigest

SHA2_256 = 0x12
SHA2_256_LENGTH = 32

DAG_PB = 0x70
RAW = 0x55
CODEC_TAGS = {"raw": RAW, "dag-pb": DAG_PB, "dag-cbor": 0x71, "json": 0x0200}

ADDRESS_LENGTH = 58


# ---------- varint ----------
def encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(buf: bytes, offset: int = 0):
    """Returns (value, next_offset)."""
    value = 0
    shift = 0
    while True:
        if offset >= len(buf):
            raise MalformedCid("truncated varint")
        byte = buf[offset]
        offset += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, offset
        shift += 7
        if shift > 63:
            raise MalformedCid("varint too long")


# ---------- CID ----------
@dataclass(frozen=True)
class Multihash:
    code: int
    length: int
    digest: bytes

    def to_bytes(self) -> bytes:
        return encode_varint(self.code) + encode_varint(self.length) + self.digest

    @classmethod
    def from_bytes(cls, buf: bytes) -> "Multihash":
        code, offset = decode_varint(buf)
        length, offset = decode_varint(buf, offset)
        digest = buf[offset:]
        if len(digest) != length:
            raise MalformedCid(f"multihash declares {length} digest bytes, found {len(digest)}")
        return cls(code, length, digest)


@dataclass(frozen=True)
class ContentIdentifier:
    version: int
    codec: int
    multihash: Multihash

    @classmethod
    def parse(cls, text: str) -> "ContentIdentifier":
        text = (text or "").strip()
        if not text:
            raise MalformedCid("empty CID")

        # CIDv0: bare base58btc multihash, implicitly dag-pb
        if len(text) == 46 and text.startswith("Qm"):
            try:
                raw = base58.b58decode(text)
            except ValueError as e:
                raise MalformedCid(f"invalid base58 CID {text!r}") from e
            return cls(0, DAG_PB, Multihash.from_bytes(raw))

        prefix, body = text[0], text[1:]
        try:
            if prefix in ("b", "B"):
                body = body.upper()
                raw = base64.b32decode(body + "=" * (-len(body) % 8))
            elif prefix == "z":
                raw = base58.b58decode(body)
            else:
                raise MalformedCid(f"unsupported multibase prefix {prefix!r}")
        except (binascii.Error, ValueError) as e:
            raise MalformedCid(f"invalid CID text {text!r}") from e

        version, offset = decode_varint(raw)
        if version != 1:
            raise MalformedCid(f"unsupported CID version {version}")
        codec, offset = decode_varint(raw, offset)
        return cls(version, codec, Multihash.from_bytes(raw[offset:]))

    def to_bytes(self) -> bytes:
        if self.version == 0:
            return self.multihash.to_bytes()
        return encode_varint(self.version) + encode_varint(self.codec) + self.multihash.to_bytes()

    def encode(self) -> str:
        if self.version == 0:
            return base58.b58encode(self.multihash.to_bytes()).decode("ascii")
        return "b" + base64.b32encode(self.to_bytes()).decode("ascii").lower().rstrip("=")

    def __str__(self):
        return self.encode()


# ---------- codec ----------
class AddressCodec:
    """Bidirectional CID <-> reserve address conversion. Holds no mutable state."""

    def __init__(self, content_codec: str = "raw"):
        if content_codec not in CODEC_TAGS:
            raise ValueError(f"Unknown content codec {content_codec!r}")
        self.content_codec = content_codec
        self.codec_tag = CODEC_TAGS[content_codec]

    def cid_to_address(self, cid: str) -> str:
        mh = ContentIdentifier.parse(cid).multihash
        if mh.code != SHA2_256 or mh.length != SHA2_256_LENGTH:
            raise UnsupportedDigest(
                f"CID {cid} uses hash 0x{mh.code:x} with a {mh.length}-byte digest; "
                "only sha2-256 with 32 bytes fits in an address"
            )
        return encoding.encode_address(mh.digest)

    def address_to_cid(self, address: str) -> str:
        try:
            payload = encoding.decode_address(address)
        except WrongChecksumError as e:
            raise InvalidChecksum(f"Checksum mismatch for address {address}") from e
        except (WrongKeyLengthError, binascii.Error, ValueError, TypeError) as e:
            raise MalformedAddress(f"Not an Algorand address: {address!r}") from e
        if not isinstance(payload, bytes) or len(payload) != SHA2_256_LENGTH:
            raise MalformedAddress(f"Not an Algorand address: {address!r}")
        mh = Multihash(SHA2_256, SHA2_256_LENGTH, payload)
        return ContentIdentifier(1, self.codec_tag, mh).encode()

    def round_trips(self, cid: str) -> bool:
        return self.address_to_cid(self.cid_to_address(cid)) == cid
