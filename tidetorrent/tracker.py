"""Announcing to HTTP trackers and decoding their responses."""

from __future__ import annotations

import enum
import ipaddress
import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any
from urllib.parse import quote

import requests

log = logging.getLogger(__name__)

_INT_RE = re.compile(rb"-?(0|[1-9][0-9]*)")
_COMPACT_ENTRY_LEN = 6


class TrackerError(Exception):
    """Base class of errors that occur while contacting a tracker."""


class BencodeError(TrackerError):
    """The tracker's response is not valid bencode or has unexpected values."""


class HttpError(TrackerError):
    """The HTTP request to the tracker failed."""


class Event(enum.Enum):
    """The optional event sent with an announce."""

    #: The first request to a tracker must carry this event.
    STARTED = "started"
    #: Sent when the client becomes a seed (not if it started as one).
    COMPLETED = "completed"
    #: Sent when the client shuts down gracefully.
    STOPPED = "stopped"


@dataclass
class Announce:
    """Parameters of an announce request."""

    info_hash: bytes
    peer_id: bytes
    #: The port on which we are listening.
    port: int
    #: Bytes downloaded so far.
    downloaded: int = 0
    #: Bytes uploaded so far.
    uploaded: int = 0
    #: Bytes left to download.
    left: int = 0
    #: Our true IP address, if it differs from the request's origin.
    ip: ipaddress.IPv4Address | ipaddress.IPv6Address | str | None = None
    #: The number of peers we want the tracker to return.
    peer_count: int | None = None
    #: The tracker id received in a previous announce, if any.
    tracker_id: str | None = None
    #: The special event of this announce, if any.
    event: Event | None = None


@dataclass
class Response:
    """A tracker's announce response."""

    tracker_id: str | None = None
    #: When set, no other field of the response is valid.
    failure_reason: str | None = None
    warning_message: str | None = None
    #: How long to wait before announcing again.
    interval: timedelta | None = None
    #: The minimum time that must pass before announcing again.
    min_interval: timedelta | None = None
    seeder_count: int | None = None
    leecher_count: int | None = None
    #: Peers as (host, port) pairs.
    peers: list[tuple[str, int]] = field(default_factory=list)


def _decode_item(data: bytes, pos: int) -> tuple[Any, int]:
    if pos >= len(data):
        raise BencodeError("unexpected end of data")
    lead = data[pos : pos + 1]
    if lead == b"i":
        end = data.find(b"e", pos + 1)
        if end < 0:
            raise BencodeError("unterminated integer")
        text = data[pos + 1 : end]
        if not _INT_RE.fullmatch(text) or text == b"-0":
            raise BencodeError(f"invalid integer {text!r}")
        return int(text), end + 1
    if lead.isdigit():
        colon = data.find(b":", pos)
        if colon < 0:
            raise BencodeError("unterminated string length")
        length_text = data[pos:colon]
        if not length_text.isdigit():
            raise BencodeError(f"invalid string length {length_text!r}")
        start = colon + 1
        end = start + int(length_text)
        if end > len(data):
            raise BencodeError("string runs past end of data")
        return data[start:end], end
    if lead == b"l":
        items = []
        pos += 1
        while data[pos : pos + 1] != b"e":
            if pos >= len(data):
                raise BencodeError("unterminated list")
            item, pos = _decode_item(data, pos)
            items.append(item)
        return items, pos + 1
    if lead == b"d":
        mapping: dict[bytes, Any] = {}
        pos += 1
        while data[pos : pos + 1] != b"e":
            if pos >= len(data):
                raise BencodeError("unterminated dictionary")
            key, pos = _decode_item(data, pos)
            if not isinstance(key, bytes):
                raise BencodeError("dictionary key must be a string")
            mapping[key], pos = _decode_item(data, pos)
        return mapping, pos + 1
    raise BencodeError(f"unexpected byte {lead!r} at offset {pos}")


def bdecode(data: bytes) -> Any:
    """Decode a bencoded value.

    Strings and dictionary keys come back as bytes. Raises BencodeError on
    malformed input or trailing data.
    """
    data = bytes(data)
    value, end = _decode_item(data, 0)
    if end != len(data):
        raise BencodeError("trailing data after bencoded value")
    return value


def _check_port(port: Any) -> int:
    if not isinstance(port, int) or not 0 <= port <= 0xFFFF:
        raise BencodeError(f"invalid peer port {port!r}")
    return port


def decode_peers(value: Any) -> list[tuple[str, int]]:
    """Decode a peer list in compact or full (list of dicts) form.

    Full entries whose ip is not an address are skipped.
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) % _COMPACT_ENTRY_LEN:
            raise BencodeError("peers compact string must be a multiple of 6")
        return [
            (
                str(ipaddress.IPv4Address(bytes(value[i : i + 4]))),
                int.from_bytes(value[i + 4 : i + 6], "big"),
            )
            for i in range(0, len(value), _COMPACT_ENTRY_LEN)
        ]
    if isinstance(value, list):
        peers = []
        for entry in value:
            if not isinstance(entry, dict) or b"ip" not in entry or b"port" not in entry:
                raise BencodeError("peer entry must be a dict with ip and port")
            raw_ip = entry[b"ip"]
            port = _check_port(entry[b"port"])
            if not isinstance(raw_ip, bytes):
                raise BencodeError("peer ip must be a string")
            try:
                ip = ipaddress.ip_address(raw_ip.decode())
            except (UnicodeDecodeError, ValueError):
                continue
            peers.append((str(ip), port))
        return peers
    raise BencodeError("a string or list of dicts representing peers expected")


def _text(mapping: dict[bytes, Any], key: bytes) -> str | None:
    value = mapping.get(key)
    if value is None:
        return None
    if not isinstance(value, bytes):
        raise BencodeError(f"{key.decode()!r} must be a string")
    try:
        return value.decode()
    except UnicodeDecodeError as exc:
        raise BencodeError(f"{key.decode()!r} is not valid UTF-8") from exc


def _count(mapping: dict[bytes, Any], key: bytes) -> int | None:
    value = mapping.get(key)
    if value is None:
        return None
    if not isinstance(value, int) or value < 0:
        raise BencodeError(f"{key.decode()!r} must be a non-negative integer")
    return value


def _seconds(mapping: dict[bytes, Any], key: bytes) -> timedelta | None:
    value = _count(mapping, key)
    return None if value is None else timedelta(seconds=value)


def parse_response(data: bytes) -> Response:
    """Parse a bencoded announce response."""
    mapping = bdecode(data)
    if not isinstance(mapping, dict):
        raise BencodeError("tracker response must be a dictionary")
    peers = mapping.get(b"peers")
    return Response(
        tracker_id=_text(mapping, b"tracker id"),
        failure_reason=_text(mapping, b"failure reason"),
        warning_message=_text(mapping, b"warning message"),
        interval=_seconds(mapping, b"interval"),
        min_interval=_seconds(mapping, b"min interval"),
        seeder_count=_count(mapping, b"complete"),
        leecher_count=_count(mapping, b"incomplete"),
        peers=[] if peers is None else decode_peers(peers),
    )


def percent_encode(data: bytes) -> str:
    """Percent-encode raw bytes, leaving only alphanumerics and -_.~ as is."""
    return quote(bytes(data), safe="")


class Tracker:
    """An HTTP tracker to announce progress to and request peers from."""

    def __init__(self, url: str) -> None:
        self.url = str(url)
        self._session = requests.Session()

    def announce(self, params: Announce) -> Response:
        """Send an announce request and return the tracker's response.

        Raises HttpError if the request fails and BencodeError if the
        response cannot be decoded.
        """
        query = [
            ("port", str(params.port)),
            ("downloaded", str(params.downloaded)),
            ("uploaded", str(params.uploaded)),
            ("left", str(params.left)),
            ("compact", "1"),
        ]
        if params.peer_count is not None:
            query.append(("numwant", str(params.peer_count)))
        if params.ip is not None:
            query.append(("ip", str(params.ip)))

        # raw bytes are encoded by hand so they are not mangled as text
        url = (
            f"{self.url}?info_hash={percent_encode(params.info_hash)}"
            f"&peer_id={percent_encode(params.peer_id)}"
        )
        try:
            resp = self._session.get(url, params=query)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise HttpError(str(exc)) from exc
        return parse_response(resp.content)

    def close(self) -> None:
        """Release the underlying HTTP session."""
        self._session.close()

    def __enter__(self) -> Tracker:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __str__(self) -> str:
        return f"'{self.url}'"