"""
SDNS stamp decoder.

Layout after base64url decoding:
    [protocol:1][props:8, little-endian][length-prefixed fields...]

Only the plaintext fields needed for provider matching are extracted; hashes
and public keys are skipped, never verified.  Stamps whose fields cannot be
read at the expected offsets fall back to a scan for the hostname.
"""
import base64
import binascii
import logging
from typing import Optional

from dnsaudit.models.dns import StampInfo
from dnsaudit.services.providers import identify_provider

logger = logging.getLogger(__name__)

STAMP_PREFIX = "sdns://"

PROTO_DNSCRYPT = 0x01
PROTO_DOH = 0x02
PROTO_DOT = 0x03
PROTO_DOQ = 0x04
PROTO_ODOH = 0x05
PROTO_DNSCRYPT_RELAY = 0x81
PROTO_ODOH_RELAY = 0x85

PROTOCOL_NAMES: dict[int, str] = {
    PROTO_DNSCRYPT: "DNSCrypt",
    PROTO_DOH: "DNS-over-HTTPS",
    PROTO_DOT: "DNS-over-TLS",
    PROTO_DOQ: "DNS-over-QUIC",
    PROTO_ODOH: "Oblivious DoH",
    PROTO_DNSCRYPT_RELAY: "DNSCrypt Relay",
    PROTO_ODOH_RELAY: "ODoH Relay",
}

PROP_DNSSEC = 0x01
PROP_NO_LOG = 0x02
PROP_NO_FILTER = 0x04
PROPS_LENGTH = 8


class _Reader:
    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    def read_vlp(self) -> bytes:
        """One length-prefixed field; a zero or overrunning length reads as empty."""
        if self.offset >= len(self.data):
            return b""
        length = self.data[self.offset]
        self.offset += 1
        if length == 0 or self.offset + length > len(self.data):
            return b""
        chunk = self.data[self.offset:self.offset + length]
        self.offset += length
        return chunk

    def read_vlp_vector(self) -> list[bytes]:
        """Hash set: every length byte with the high bit set is followed by another entry."""
        items: list[bytes] = []
        while self.offset < len(self.data):
            length = self.data[self.offset]
            self.offset += 1
            size = length & 0x7F
            if self.offset + size > len(self.data):
                break
            items.append(self.data[self.offset:self.offset + size])
            self.offset += size
            if not length & 0x80:
                break
        return items

    def read_str(self) -> str:
        return self.read_vlp().decode("utf-8", errors="replace")


def _decode_base64url(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)


def _scan_for_hostname(data: bytes) -> tuple[Optional[str], Optional[str]]:
    """Find a 5-50 byte printable dotted name that is not an IP literal."""
    for i in range(2, len(data) - 5):
        length = data[i]
        if not 5 <= length <= 50 or i + 1 + length > len(data):
            continue
        raw = data[i + 1:i + 1 + length]
        if not all(32 <= b < 127 for b in raw) or b"." not in raw:
            continue
        if not any(chr(b).isalpha() for b in raw):
            continue
        hostname = raw.decode("ascii")
        path = None
        path_offset = i + 1 + length
        if path_offset < len(data):
            path_len = data[path_offset]
            if 0 < path_len < 100 and path_offset + 1 + path_len <= len(data):
                path = data[path_offset + 1:path_offset + 1 + path_len].decode("ascii", errors="replace")
        return hostname, path
    return None, None


def decode_stamp(stamp: Optional[str]) -> Optional[StampInfo]:
    if not stamp:
        return None
    body = stamp[len(STAMP_PREFIX):] if stamp.lower().startswith(STAMP_PREFIX) else stamp
    try:
        data = _decode_base64url(body.strip())
    except (binascii.Error, ValueError) as exc:
        logger.debug("Stamp is not valid base64url: %s", exc)
        return None
    if len(data) < 2:
        return None

    protocol = data[0]
    # Only the low byte of the props word carries defined flags
    props = data[1]
    reader = _Reader(data, 1 + PROPS_LENGTH)
    hostname: Optional[str] = None
    path: Optional[str] = None
    address: Optional[str] = None
    port: Optional[int] = None

    if protocol == PROTO_DOH:
        address = reader.read_str()
        reader.read_vlp_vector()
        hostname = reader.read_str()
        path = reader.read_str()
        if not hostname:
            hostname, path = _scan_for_hostname(data)
            logger.debug("DoH stamp fallback scan found hostname=%s path=%s", hostname, path)
    elif protocol in (PROTO_DOT, PROTO_DOQ):
        address = reader.read_str()
        reader.read_vlp_vector()
        hostname = reader.read_str()
        port = 853 if protocol == PROTO_DOT else 8853
    elif protocol == PROTO_DNSCRYPT:
        address = reader.read_str()
        reader.read_vlp()
        hostname = reader.read_str()

    if address and address.count(":") == 1:
        host, _, port_s = address.partition(":")
        if port_s.isdigit():
            address, port = host, int(port_s)

    return StampInfo(
        protocol=protocol,
        protocol_name=PROTOCOL_NAMES.get(protocol, "Unknown"),
        hostname=hostname or None,
        path=path or None,
        ip_address=address or None,
        port=port,
        dnssec=bool(props & PROP_DNSSEC),
        no_logging=bool(props & PROP_NO_LOG),
        no_filtering=bool(props & PROP_NO_FILTER),
        provider=identify_provider(hostname) if hostname else None,
        raw_stamp=stamp,
    )
