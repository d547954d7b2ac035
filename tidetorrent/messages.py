"""Messages exchanged by peers after the handshake, and their wire codec."""

from __future__ import annotations

import enum
import logging
import struct
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import ClassVar

from bitarray import bitarray

log = logging.getLogger(__name__)

_U32_MAX = 0xFFFFFFFF
_LEN_PREFIX = struct.Struct(">I")
_U32 = struct.Struct(">I")
_BLOCK_INFO = struct.Struct(">III")
_BLOCK_HEADER = struct.Struct(">II")


def _u32(value: int, name: str) -> int:
    if not 0 <= value <= _U32_MAX:
        raise ValueError(f"{name} {value} does not fit in 32 bits")
    return value


class MessageId(enum.IntEnum):
    """The id byte that prefixes every message but keep-alive."""

    CHOKE = 0
    UNCHOKE = 1
    INTERESTED = 2
    NOT_INTERESTED = 3
    HAVE = 4
    BITFIELD = 5
    REQUEST = 6
    BLOCK = 7
    CANCEL = 8

    def header_len(self) -> int:
        """Return the fixed length of the message's header, prefix included."""
        return _HEADER_LENS[self]


_HEADER_LENS = {
    MessageId.CHOKE: 4 + 1,
    MessageId.UNCHOKE: 4 + 1,
    MessageId.INTERESTED: 4 + 1,
    MessageId.NOT_INTERESTED: 4 + 1,
    MessageId.HAVE: 4 + 1 + 4,
    MessageId.BITFIELD: 4 + 1,
    MessageId.REQUEST: 4 + 1 + 3 * 4,
    MessageId.BLOCK: 4 + 1 + 2 * 4,
    MessageId.CANCEL: 4 + 1 + 3 * 4,
}


@dataclass(frozen=True)
class BlockInfo:
    """Identifies a block: its piece, offset within the piece and length."""

    piece_index: int
    offset: int
    length: int

    def to_bytes(self) -> bytes:
        """Return the block info in wire format."""
        return _BLOCK_INFO.pack(
            _u32(self.piece_index, "piece index"),
            _u32(self.offset, "offset"),
            _u32(self.length, "length"),
        )

    @classmethod
    def from_bytes(cls, payload: bytes) -> BlockInfo:
        """Parse a block info from its wire format."""
        if len(payload) < _BLOCK_INFO.size:
            raise ValueError("block info payload too short")
        piece_index, offset, length = _BLOCK_INFO.unpack_from(payload)
        return cls(piece_index, offset, length)


class Message:
    """Base class of all peer messages."""

    _message_id: ClassVar[MessageId | None] = None

    def id(self) -> MessageId | None:
        """Return the message's id, or None for a keep-alive."""
        return type(self)._message_id

    def protocol_len(self) -> int:
        """Return the length of the message header.

        For all but the block message this is the whole message; a
        keep-alive counts as 1.
        """
        message_id = self.id()
        if message_id is None:
            return 1
        return message_id.header_len()

    def _payload(self) -> bytes:
        return b""


@dataclass(frozen=True)
class KeepAlive(Message):
    """An empty message that keeps the connection open."""


@dataclass(frozen=True)
class Choke(Message):
    """We will not serve the peer's requests."""

    _message_id: ClassVar[MessageId | None] = MessageId.CHOKE


@dataclass(frozen=True)
class Unchoke(Message):
    """We will serve the peer's requests."""

    _message_id: ClassVar[MessageId | None] = MessageId.UNCHOKE


@dataclass(frozen=True)
class Interested(Message):
    """We want pieces that the peer has."""

    _message_id: ClassVar[MessageId | None] = MessageId.INTERESTED


@dataclass(frozen=True)
class NotInterested(Message):
    """We want nothing that the peer has."""

    _message_id: ClassVar[MessageId | None] = MessageId.NOT_INTERESTED


@dataclass(frozen=True)
class BitfieldMessage(Message):
    """The pieces the sender has, one bit per piece, most significant first."""

    _message_id: ClassVar[MessageId | None] = MessageId.BITFIELD

    bitfield: bitarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "bitfield", bitarray(self.bitfield, endian="big"))

    @classmethod
    def from_bytes(cls, raw: bytes) -> BitfieldMessage:
        """Build the message from the bitfield's raw bytes."""
        bits = bitarray(endian="big")
        bits.frombytes(bytes(raw))
        return cls(bits)

    @classmethod
    def from_bools(cls, bits: Iterable[bool]) -> BitfieldMessage:
        """Build the message from a sequence of flags."""
        return cls(bitarray([bool(b) for b in bits], endian="big"))

    def _payload(self) -> bytes:
        return self.bitfield.tobytes()


@dataclass(frozen=True)
class Have(Message):
    """The sender has just acquired the piece at the index."""

    _message_id: ClassVar[MessageId | None] = MessageId.HAVE

    piece_index: int

    def _payload(self) -> bytes:
        return _U32.pack(_u32(self.piece_index, "piece index"))


@dataclass(frozen=True)
class Request(Message):
    """A request for a block."""

    _message_id: ClassVar[MessageId | None] = MessageId.REQUEST

    block: BlockInfo

    def _payload(self) -> bytes:
        return self.block.to_bytes()


@dataclass(frozen=True)
class Block(Message):
    """The data of a requested block."""

    _message_id: ClassVar[MessageId | None] = MessageId.BLOCK

    piece_index: int
    offset: int
    data: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))

    def _payload(self) -> bytes:
        header = _BLOCK_HEADER.pack(
            _u32(self.piece_index, "piece index"), _u32(self.offset, "offset")
        )
        return header + self.data


@dataclass(frozen=True)
class Cancel(Message):
    """Withdraws an earlier request for a block."""

    _message_id: ClassVar[MessageId | None] = MessageId.CANCEL

    block: BlockInfo

    def _payload(self) -> bytes:
        return self.block.to_bytes()


def _need(payload: bytes, size: int, name: str) -> None:
    if len(payload) < size:
        raise ValueError(f"{name} message payload too short")


def _parse_have(payload: bytes) -> Message:
    _need(payload, _U32.size, "have")
    return Have(_U32.unpack_from(payload)[0])


def _parse_block(payload: bytes) -> Message:
    _need(payload, _BLOCK_HEADER.size, "block")
    piece_index, offset = _BLOCK_HEADER.unpack_from(payload)
    return Block(piece_index, offset, payload[_BLOCK_HEADER.size :])


def _parse_request(payload: bytes) -> Message:
    _need(payload, _BLOCK_INFO.size, "request")
    return Request(BlockInfo.from_bytes(payload))


def _parse_cancel(payload: bytes) -> Message:
    _need(payload, _BLOCK_INFO.size, "cancel")
    return Cancel(BlockInfo.from_bytes(payload))


_PARSERS: dict[MessageId, Callable[[bytes], Message]] = {
    MessageId.CHOKE: lambda _: Choke(),
    MessageId.UNCHOKE: lambda _: Unchoke(),
    MessageId.INTERESTED: lambda _: Interested(),
    MessageId.NOT_INTERESTED: lambda _: NotInterested(),
    MessageId.HAVE: _parse_have,
    MessageId.BITFIELD: BitfieldMessage.from_bytes,
    MessageId.REQUEST: _parse_request,
    MessageId.BLOCK: _parse_block,
    MessageId.CANCEL: _parse_cancel,
}


class PeerCodec:
    """Encodes and decodes the length-prefixed messages following the handshake."""

    def encode(self, msg: Message) -> bytes:
        """Return the wire form of the message.

        Raises ValueError if a numeric field does not fit in 32 bits.
        """
        message_id = msg.id()
        if message_id is None:
            return _LEN_PREFIX.pack(0)
        payload = msg._payload()
        return _LEN_PREFIX.pack(1 + len(payload)) + bytes([message_id]) + payload

    def decode(self, buf: bytearray) -> Message | None:
        """Take a message off the front of the buffer.

        Returns None, leaving the buffer untouched, while the message is
        incomplete. On success the message's bytes are removed from the
        buffer. Raises ValueError on an unknown id or malformed payload.
        """
        if len(buf) < _LEN_PREFIX.size:
            return None
        (msg_len,) = _LEN_PREFIX.unpack_from(buf)
        if len(buf) < _LEN_PREFIX.size + msg_len:
            log.debug(
                "Read buffer is %d bytes long but message is %d bytes long",
                len(buf),
                msg_len,
            )
            return None

        frame = bytes(buf[_LEN_PREFIX.size : _LEN_PREFIX.size + msg_len])
        del buf[: _LEN_PREFIX.size + msg_len]
        if msg_len == 0:
            return KeepAlive()

        try:
            message_id = MessageId(frame[0])
        except ValueError:
            raise ValueError("Unknown message id") from None
        return _PARSERS[message_id](frame[1:])