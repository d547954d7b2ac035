from pathlib import Path

import pytest

from tidetorrent.storage_info import FileInfo, FileSlice, StorageInfo


@pytest.fixture
def file():
    return FileInfo(path=Path("/tmp/does/not/exist"), length=500, torrent_offset=200)


def test_file_get_slice_longer_than_file(file):
    assert file.get_slice(300, 1000) == FileSlice(offset=100, length=400)


def test_file_get_slice_shorter_than_file(file):
    assert file.get_slice(300, 10) == FileSlice(offset=100, length=10)


def test_file_get_slice_whole_file(file):
    assert file.get_slice(200, 500) == FileSlice(offset=0, length=500)


def test_file_get_slice_starting_before_file(file):
    with pytest.raises(ValueError, match="torrent offset must be larger than file offset"):
        file.get_slice(100, 400)


def test_file_get_slice_starting_after_file(file):
    with pytest.raises(
        ValueError, match="torrent offset must be smaller than file end offset"
    ):
        file.get_slice(200 + 500, 400)


def test_file_offsets(file):
    assert file.torrent_end_offset() == 700
    assert file.byte_range() == range(200, 700)


def _info(files, piece_count, piece_len, last_piece_len):
    return StorageInfo(
        piece_count=piece_count,
        piece_len=piece_len,
        last_piece_len=last_piece_len,
        download_len=sum(f.length for f in files),
        download_dir=Path("/"),
        files=files,
    )


def test_files_intersecting_pieces_single_file():
    files = [FileInfo(path=Path("/bogus"), torrent_offset=0, length=3 * 4 + 2)]
    info = _info(files, 4, 4, 2)
    for index in range(4):
        assert info.files_intersecting_piece(index) == range(0, 1)


@pytest.fixture
def multi_piece_info():
    layout = [(0, 9), (9, 11), (20, 7), (27, 9), (36, 12), (48, 16), (64, 8)]
    files = [
        FileInfo(path=Path(f"/{i}"), torrent_offset=off, length=ln)
        for i, (off, ln) in enumerate(layout)
    ]
    return _info(files, 5, 16, 8)


@pytest.mark.parametrize(
    "index, expected",
    [
        (0, range(0, 2)),
        (1, range(1, 4)),
        (2, range(3, 5)),
        (3, range(5, 6)),
        (4, range(6, 7)),
    ],
)
def test_files_intersecting_pieces_multi_file(multi_piece_info, index, expected):
    assert multi_piece_info.files_intersecting_piece(index) == expected


def test_multi_file_lengths_add_up(multi_piece_info):
    total = (multi_piece_info.piece_count - 1) * multi_piece_info.piece_len
    assert total + multi_piece_info.last_piece_len == multi_piece_info.download_len


def test_files_intersecting_bytes_single_file():
    files = [FileInfo(path=Path("/bogus"), torrent_offset=0, length=12341234)]
    info = _info(files, 4, 4, 2)
    assert info.files_intersecting_bytes(0, 0) == range(0, 1)
    assert info.files_intersecting_bytes(0, 1) == range(0, 1)
    assert info.files_intersecting_bytes(0, 12341234) == range(0, 1)


@pytest.fixture
def multi_byte_info():
    layout = [(0, 4), (4, 9), (13, 3), (16, 10)]
    files = [
        FileInfo(path=Path(f"/bogus{i}"), torrent_offset=off, length=ln)
        for i, (off, ln) in enumerate(layout)
    ]
    return _info(files, 4, 4, 2)


@pytest.mark.parametrize(
    "start, end, expected",
    [
        (0, 4, range(0, 1)),
        (0, 5, range(0, 2)),
        (0, 13, range(0, 2)),
        (0, 15, range(0, 3)),
        (0, 18, range(0, 4)),
        (25, 26, range(3, 4)),
        (4, 16, range(1, 3)),
        (8, 14, range(1, 3)),
        (13, 14, range(2, 3)),
        (30, 38, range(0, 0)),
    ],
)
def test_files_intersecting_bytes_multi_file(multi_byte_info, start, end, expected):
    assert multi_byte_info.files_intersecting_bytes(start, end) == expected


def test_piece_length_and_offset(multi_piece_info):
    assert multi_piece_info.piece_length(0) == 16
    assert multi_piece_info.piece_length(4) == 8
    assert multi_piece_info.torrent_piece_offset(3) == 48


def test_piece_length_out_of_range(multi_piece_info):
    with pytest.raises(IndexError, match="piece index out of range"):
        multi_piece_info.piece_length(5)


def test_files_intersecting_piece_out_of_range(multi_piece_info):
    with pytest.raises(IndexError):
        multi_piece_info.files_intersecting_piece(5)