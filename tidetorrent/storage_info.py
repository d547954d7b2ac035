"""Layout of a torrent's pieces and files on disk."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileSlice:
    """A range of bytes within a single file."""

    #: The byte offset relative to the start of the file.
    offset: int
    #: The length of the slice, in bytes.
    length: int


@dataclass
class FileInfo:
    """A file of a torrent and its place in the torrent's byte stream."""

    #: The file's path relative to the download directory.
    path: Path
    #: The file's length, in bytes.
    length: int
    #: The file's offset when all files are viewed as one contiguous byte
    #: array; always 0 for a single file torrent.
    torrent_offset: int = 0

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    def torrent_end_offset(self) -> int:
        """Return the offset one past the file's last byte in the torrent."""
        return self.torrent_offset + self.length

    def byte_range(self) -> range:
        """Return the range of torrent offsets that the file covers."""
        return range(self.torrent_offset, self.torrent_end_offset())

    def get_slice(self, torrent_offset: int, length: int) -> FileSlice:
        """Return the part of the file overlapping the range at the offset.

        The length may exceed the file's end, in which case the slice is
        cut short. Raises ValueError if the offset lies outside the file.
        """
        if torrent_offset < self.torrent_offset:
            raise ValueError("torrent offset must be larger than file offset")
        end = self.torrent_end_offset()
        if torrent_offset >= end:
            raise ValueError("torrent offset must be smaller than file end offset")
        return FileSlice(
            offset=torrent_offset - self.torrent_offset,
            length=min(length, end - torrent_offset),
        )


@dataclass
class StorageInfo:
    """Piece and file layout of a torrent."""

    #: The number of pieces in the torrent.
    piece_count: int
    #: The nominal length of a piece.
    piece_len: int
    #: The length of the last piece, which may be shorter than the others.
    last_piece_len: int
    #: The sum of the lengths of all files.
    download_len: int
    #: The directory the torrent is downloaded into.
    download_dir: Path
    #: All files of the torrent, in torrent order.
    files: list[FileInfo] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.download_dir = Path(self.download_dir)

    def piece_length(self, index: int) -> int:
        """Return the length of the piece at the index.

        Raises IndexError if the index is out of range.
        """
        if not 0 <= index < self.piece_count:
            raise IndexError("piece index out of range")
        if index == self.piece_count - 1:
            return self.last_piece_len
        return self.piece_len

    def torrent_piece_offset(self, index: int) -> int:
        """Return the piece's absolute offset in the torrent."""
        return index * self.piece_len

    def files_intersecting_piece(self, index: int) -> range:
        """Return the indices of the files that overlap the piece.

        Raises IndexError if the index is out of range.
        """
        log.debug("Returning files intersecting piece %d", index)
        start = self.torrent_piece_offset(index)
        end = start + self.piece_length(index)
        return self.files_intersecting_bytes(start, end)

    def files_intersecting_bytes(self, start: int, end: int) -> range:
        """Return the indices of the files overlapping bytes [start, end)."""
        if not self.files:
            raise ValueError("torrent has no files")
        if len(self.files) == 1:
            return range(0, 1)

        first = next(
            (i for i, f in enumerate(self.files) if start in f.byte_range()),
            None,
        )
        if first is None:
            return range(0, 0)

        last = first + 1
        for index, file in enumerate(self.files[first + 1 :], start=first + 1):
            if not start <= file.torrent_offset < end:
                break
            last = index + 1
        return range(first, last)