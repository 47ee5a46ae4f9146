"""Extract issuer key IDs from detached package signatures.

Repository databases carry each package's OpenPGP signature base64-encoded.
Key IDs are read from the issuer (type 16) and issuer fingerprint (type 33)
subpackets of every signature packet, as libalpm's ``alpm_extract_keyid``
does. No verification takes place.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import replace
from typing import List, Optional, Tuple

from .errors import KeyExtractionError, SignatureDecodeError
from .models import PackageRecord

logger = logging.getLogger(__name__)

_TAG_SIGNATURE = 2
_SUBPACKET_ISSUER = 16
_SUBPACKET_ISSUER_FPR = 33


def _read_new_length(data: bytes, pos: int) -> Tuple[int, int]:
    """Decode an RFC 4880 new-format length; returns (length, new position)."""
    if pos >= len(data):
        raise KeyExtractionError("truncated length")
    first = data[pos]
    if first < 192:
        return first, pos + 1
    if first < 224:
        if pos + 1 >= len(data):
            raise KeyExtractionError("truncated length")
        return ((first - 192) << 8) + data[pos + 1] + 192, pos + 2
    if first == 255:
        if pos + 4 >= len(data):
            raise KeyExtractionError("truncated length")
        return int.from_bytes(data[pos + 1:pos + 5], "big"), pos + 5
    raise KeyExtractionError("partial body lengths are not supported")


def _iter_packets(data: bytes):
    pos = 0
    while pos < len(data):
        header = data[pos]
        if not header & 0x80:
            raise KeyExtractionError(f"invalid packet header at offset {pos}")
        if header & 0x40:
            tag = header & 0x3F
            length, pos = _read_new_length(data, pos + 1)
        else:
            tag = (header >> 2) & 0x0F
            length_type = header & 0x03
            pos += 1
            if length_type == 3:
                length = len(data) - pos
            else:
                size = 1 << length_type
                if pos + size > len(data):
                    raise KeyExtractionError("truncated packet length")
                length = int.from_bytes(data[pos:pos + size], "big")
                pos += size
        body = data[pos:pos + length]
        if len(body) != length:
            raise KeyExtractionError("truncated packet body")
        yield tag, body
        pos += length


def _subpacket_key_ids(area: bytes) -> List[str]:
    ids = []
    pos = 0
    while pos < len(area):
        length, pos = _read_new_length(area, pos)
        if length == 0 or pos + length > len(area):
            raise KeyExtractionError("malformed signature subpacket")
        kind = area[pos] & 0x7F
        value = area[pos + 1:pos + length]
        if kind == _SUBPACKET_ISSUER and len(value) == 8:
            ids.append(value.hex().upper())
        elif kind == _SUBPACKET_ISSUER_FPR and len(value) > 8:
            # version octet, then the fingerprint: v4 key IDs are its tail,
            # v5 and v6 key IDs its head
            if value[0] == 4:
                ids.append(value[-8:].hex().upper())
            elif value[0] in (5, 6):
                ids.append(value[1:9].hex().upper())
        pos += length
    return ids


def _signature_key_ids(body: bytes) -> List[str]:
    if not body:
        raise KeyExtractionError("empty signature packet")
    version = body[0]
    if version in (2, 3):
        if len(body) < 15:
            raise KeyExtractionError("truncated v3 signature")
        return [body[7:15].hex().upper()]
    if version not in (4, 5):
        raise KeyExtractionError(f"unsupported signature version {version}")

    ids = []
    pos = 4
    for _area in ("hashed", "unhashed"):
        if pos + 2 > len(body):
            raise KeyExtractionError("truncated signature subpackets")
        size = int.from_bytes(body[pos:pos + 2], "big")
        pos += 2
        if pos + size > len(body):
            raise KeyExtractionError("truncated signature subpackets")
        ids.extend(_subpacket_key_ids(body[pos:pos + size]))
        pos += size
    return ids


class SignatureReader:
    """Decodes base64 signatures and reads their issuer key IDs."""

    def decode_signature(self, encoded: str) -> bytes:
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SignatureDecodeError(f"invalid base64 signature: {exc}") from exc
        if not raw:
            raise SignatureDecodeError("empty signature")
        return raw

    def extract_key_ids(self, name: str, signature: bytes) -> List[str]:
        ids: List[str] = []
        try:
            for tag, body in _iter_packets(signature):
                if tag != _TAG_SIGNATURE:
                    continue
                for key_id in _signature_key_ids(body):
                    if key_id not in ids:
                        ids.append(key_id)
        except KeyExtractionError as exc:
            raise KeyExtractionError(f"{name}: {exc}") from exc
        if not ids:
            raise KeyExtractionError(f"{name}: no issuer key ID in signature")
        return ids


def decode_keyid(record: PackageRecord, reader: Optional[SignatureReader] = None) -> PackageRecord:
    """Fill ``record.key_ids`` from its signature.

    Records without a signature are returned unchanged. Failures are stored
    as a one-element diagnostic list instead of being raised.
    """
    if not record.signature:
        return record
    reader = reader or SignatureReader()
    try:
        decoded = reader.decode_signature(record.signature)
        key_ids = reader.extract_key_ids(record.name, decoded)
    except (SignatureDecodeError, KeyExtractionError) as exc:
        logger.warning("Key ID of %s unavailable: %s", record.name, exc)
        key_ids = [f"error: {exc}"]
    return replace(record, key_ids=key_ids)
