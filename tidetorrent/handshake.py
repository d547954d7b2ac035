"""The handshake that opens every peer connection."""

from __future__ import annotations

from dataclasses import dataclass

#: The protocol string of version 1 of the peer wire protocol.
PROTOCOL_STRING = b"BitTorrent protocol"

_RESERVED_LEN = 8
_HASH_LEN = 20
_PEER_ID_LEN = 20
_PAYLOAD_LEN = len(PROTOCOL_STRING) + _RESERVED_LEN + _HASH_LEN + _PEER_ID_LEN


@dataclass(frozen=True)
class Handshake:
    """The message both sides send first on a new peer connection."""

    #: The protocol string; the connection is dropped unless it is
    #: "BitTorrent protocol".
    prot: bytes
    #: Reserved bits, where a client's supported extensions are announced.
    reserved: bytes
    #: The torrent's SHA-1 info hash.
    info_hash: bytes
    #: The peer's arbitrary 20 byte id.
    peer_id: bytes

    def __post_init__(self) -> None:
        for name, expected in (
            ("prot", len(PROTOCOL_STRING)),
            ("reserved", _RESERVED_LEN),
            ("info_hash", _HASH_LEN),
            ("peer_id", _PEER_ID_LEN),
        ):
            value = bytes(getattr(self, name))
            if len(value) != expected:
                raise ValueError(f"{name} must be {expected} bytes long")
            object.__setattr__(self, name, value)

    @classmethod
    def create(cls, info_hash: bytes, peer_id: bytes) -> Handshake:
        """Return a protocol version 1 handshake with no extensions set."""
        return cls(
            prot=PROTOCOL_STRING,
            reserved=bytes(_RESERVED_LEN),
            info_hash=info_hash,
            peer_id=peer_id,
        )

    def __len__(self) -> int:
        """Return the handshake's length in bytes, without the length prefix."""
        return _PAYLOAD_LEN


class HandshakeCodec:
    """Encodes and decodes handshakes.

    A handshake is sent only once, before any other message, so after it
    has been exchanged the connection switches to the message codec while
    keeping the same receive buffer.
    """

    def encode(self, handshake: Handshake) -> bytes:
        """Return the wire form of the handshake."""
        return b"".join(
            (
                bytes([len(handshake.prot)]),
                handshake.prot,
                handshake.reserved,
                handshake.info_hash,
                handshake.peer_id,
            )
        )

    def decode(self, buf: bytearray) -> Handshake | None:
        """Take a handshake off the front of the buffer.

        Returns None, leaving the buffer untouched, while the handshake is
        incomplete. On success the handshake's bytes are removed from the
        buffer. Raises ValueError if the protocol string length is wrong.
        """
        if not buf:
            return None
        prot_len = buf[0]
        if prot_len != len(PROTOCOL_STRING):
            raise ValueError('Handshake must have the string "BitTorrent protocol"')
        if len(buf) <= _PAYLOAD_LEN:
            return None

        payload = bytes(buf[1 : 1 + _PAYLOAD_LEN])
        del buf[: 1 + _PAYLOAD_LEN]

        prot_end = prot_len
        reserved_end = prot_end + _RESERVED_LEN
        hash_end = reserved_end + _HASH_LEN
        return Handshake(
            prot=payload[:prot_end],
            reserved=payload[prot_end:reserved_end],
            info_hash=payload[reserved_end:hash_end],
            peer_id=payload[hash_end:],
        )