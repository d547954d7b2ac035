# tidetorrent

Building blocks of a BitTorrent client in plain Python:

- `tidetorrent.handshake`: the `Handshake` that opens a peer connection and
  its `HandshakeCodec`.
- `tidetorrent.messages`: the peer messages (`KeepAlive`, `Choke`, `Unchoke`,
  `Interested`, `NotInterested`, `BitfieldMessage`, `Have`, `Request`,
  `Block`, `Cancel`), `BlockInfo`, `MessageId` and the `PeerCodec` that
  encodes and incrementally decodes them.
- `tidetorrent.piece_picker`: `PiecePicker` tracks which pieces are owned,
  how often each one appears in the swarm, and picks the next piece to fetch.
- `tidetorrent.storage_info`: `StorageInfo`, `FileInfo` and `FileSlice` map
  pieces and byte ranges onto the files of a torrent.
- `tidetorrent.tracker`: `bdecode`, `decode_peers` (compact and full peer
  lists), `parse_response`, `percent_encode` and HTTP announces through
  `Tracker`.

## Installation

```
pip install tidetorrent
```

## Examples

Picking pieces:

```python
from bitarray import bitarray
from tidetorrent.piece_picker import PiecePicker

picker = PiecePicker(bitarray("0" * 15))
assert picker.register_peer_pieces(bitarray("1" * 15))  # we are interested

index = picker.pick_piece()          # 0; the piece is now pending
picker.received_piece(index)
print(picker.missing_piece_count)    # 14
print(picker.all_pieces_picked())    # False
```

`pick_piece` only picks pieces that we do not own, that at least one peer
has, and that are not already pending. It returns `None` when nothing can be
picked. `received_piece` raises `ValueError` for a piece already owned and
`IndexError` for an index out of range.

Mapping pieces to files:

```python
from tidetorrent.storage_info import FileInfo, StorageInfo

files = [FileInfo("a", 9, 0), FileInfo("b", 11, 9), FileInfo("c", 4, 20)]
info = StorageInfo(
    piece_count=2, piece_len=16, last_piece_len=8,
    download_len=24, download_dir="downloads", files=files,
)
print(info.files_intersecting_piece(0))     # range(0, 2)
print(files[1].get_slice(12, 100))          # FileSlice(offset=3, length=8)
```

Handshaking and decoding peer messages as bytes arrive:

```python
from tidetorrent.handshake import Handshake, HandshakeCodec
from tidetorrent.messages import Have, PeerCodec

handshake = Handshake.create(b"abcdefghij1234567890", b"tdt-0000-0000-000000")
buf = bytearray(HandshakeCodec().encode(handshake))
assert HandshakeCodec().decode(buf) == handshake

codec = PeerCodec()
buf = bytearray(codec.encode(Have(piece_index=42)))
msg = codec.decode(buf)   # Have(piece_index=42); buf is consumed
```

Both codecs' `decode` return `None` while a message is still incomplete and
leave the buffer untouched, so they can be called again once more bytes have
been added. Malformed input raises `ValueError`.

Announcing to a tracker:

```python
from tidetorrent.tracker import Announce, Tracker

with Tracker("http://tracker.example.com/announce") as tracker:
    response = tracker.announce(Announce(
        info_hash=b"abcdefghij1234567890",
        peer_id=b"tdt-0000-0000-000000",
        port=6881,
        left=1024,
        peer_count=50,
    ))
print(response.interval, response.peers)   # peers are (host, port) pairs
```

Failures are raised as `TrackerError`: `HttpError` when the request fails,
`BencodeError` when the response cannot be decoded.

## What this package does not do

These are parts to build a client from, not a client. There is no command,
no peer connection handling or session loop, no choking or request
scheduling, no reading or writing of pieces on disk, no parsing of
`.torrent` files and no download statistics; `StorageInfo` is built from
values you supply.

## Running the tests

```
pip install -e ".[test]"
pytest
```