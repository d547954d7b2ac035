"""Choosing which piece of a torrent to download next."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from bitarray import bitarray

log = logging.getLogger(__name__)


@dataclass
class Piece:
    """What the picker knows about one piece of the torrent."""

    #: How many peers in the swarm have this piece.
    frequency: int = 0
    #: Set once the piece is picked, so it is not picked again while it
    #: is being downloaded.
    is_pending: bool = False


class PiecePicker:
    """Tracks owned and available pieces and picks the next one to download."""

    def __init__(self, own_pieces: Iterable[bool]) -> None:
        self._own_pieces = bitarray(own_pieces)
        self._pieces = [Piece() for _ in range(len(self._own_pieces))]
        self._missing_count = self._own_pieces.count(0)
        self._free_count = self._missing_count

    @property
    def own_pieces(self) -> bitarray:
        """The bitfield of the pieces we have."""
        return self._own_pieces

    @property
    def pieces(self) -> list[Piece]:
        """Swarm metadata of every piece, indexed by piece index."""
        return self._pieces

    @property
    def free_count(self) -> int:
        """The number of pieces that can still be picked."""
        return self._free_count

    @property
    def missing_piece_count(self) -> int:
        """The number of pieces still needed to complete the download."""
        return self._missing_count

    def all_pieces_picked(self) -> bool:
        """Return True if every piece is either picked or received."""
        return self._free_count == 0

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._own_pieces):
            raise IndexError(f"invalid piece index {index}")

    def pick_piece(self) -> int | None:
        """Pick the first missing piece that some peer has and nobody is
        downloading, or return None if there is no such piece."""
        log.debug("Picking next piece")
        for index, (have, piece) in enumerate(zip(self._own_pieces, self._pieces)):
            if not have and piece.frequency > 0 and not piece.is_pending:
                piece.is_pending = True
                self._free_count -= 1
                log.debug("Picked piece %d", index)
                return index
        log.debug("Could not pick piece")
        return None

    def register_peer_pieces(self, pieces: Iterable[bool]) -> bool:
        """Register a peer's piece availability.

        Returns whether the peer has any piece that we do not.
        Raises ValueError if the bitfield's length differs from ours.
        """
        pieces = bitarray(pieces)
        if len(pieces) != len(self._own_pieces):
            raise ValueError("peer's bitfield must be the same length as ours")

        interested = False
        for have, peer_has, piece in zip(self._own_pieces, pieces, self._pieces):
            if peer_has:
                piece.frequency += 1
                if not have:
                    interested = True
        return interested

    def register_peer_piece(self, index: int) -> bool:
        """Increment the availability of a piece a peer announced.

        Returns the owned flag of that piece.
        Raises IndexError if the index is out of range.
        """
        log.debug("Registering newly available piece %d", index)
        self._check_index(index)
        self._pieces[index].frequency += 1
        return bool(self._own_pieces[index])

    def received_piece(self, index: int) -> None:
        """Record that the piece at the index has been downloaded.

        Raises IndexError for an invalid index and ValueError if the piece
        was already received.
        """
        log.debug("Registering received piece %d", index)
        self._check_index(index)
        if self._own_pieces[index]:
            raise ValueError(f"piece {index} already received")

        self._own_pieces[index] = True
        self._missing_count -= 1

        # a piece received without having been picked still stops being free
        if not self._pieces[index].is_pending:
            self._free_count -= 1