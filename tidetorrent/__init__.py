"""Building blocks of a BitTorrent client: peer wire codec, piece picking, storage layout and tracker announces."""

__version__ = "0.1.0"