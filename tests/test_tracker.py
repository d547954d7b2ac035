from datetime import timedelta

import pytest
import responses
from responses import matchers

from tidetorrent.tracker import (
    Announce,
    BencodeError,
    HttpError,
    Response,
    Tracker,
    TrackerError,
    bdecode,
    decode_peers,
    parse_response,
    percent_encode,
)

TRACKER_URL = "http://tracker.example.com/announce"

# 192.168.0.10:49123
COMPACT_PEER = b"\xc0\xa8\x00\x0a\xbf\xe3"
# 2.156.201.254:49123
ANNOUNCE_PEER = b"\x02\x9c\xc9\xfe\xbf\xe3"


def _compact_list(raw: bytes) -> bytes:
    return str(len(raw)).encode() + b":" + raw


def _make_announce(**overrides):
    values = dict(
        info_hash=b"abcdefghij1234567890",
        peer_id=b"cbt-2020-03-03-00000",
        port=16,
        downloaded=1234,
        uploaded=1234,
        left=1234,
        peer_count=2,
    )
    values.update(overrides)
    return Announce(**values)


def test_should_parse_compact_peer_list():
    encoded = b"d5:peers" + _compact_list(COMPACT_PEER) + b"e"
    resp = parse_response(encoded)
    assert resp.peers == [("192.168.0.10", 49123)]


def test_should_parse_full_peer_list():
    encoded = (
        b"d5:peersl"
        b"d2:ip12:192.168.1.104:porti55123ee"
        b"d2:ip9:1.45.96.24:porti1234ee"
        b"d2:ip15:123.123.123.1234:porti49950ee"
        b"ee"
    )
    resp = parse_response(encoded)
    assert resp.peers == [
        ("192.168.1.10", 55123),
        ("1.45.96.2", 1234),
        ("123.123.123.123", 49950),
    ]


def test_full_peer_list_skips_invalid_ip():
    value = [{b"ip": b"not-an-ip", b"port": 1}, {b"ip": b"10.0.0.1", b"port": 2}]
    assert decode_peers(value) == [("10.0.0.1", 2)]


def test_compact_peers_must_be_multiple_of_six():
    with pytest.raises(BencodeError, match="multiple of 6"):
        decode_peers(b"\x01\x02\x03\x04\x05")


def test_decode_peers_rejects_other_types():
    with pytest.raises(BencodeError):
        decode_peers(42)


def test_bdecode_values():
    assert bdecode(b"d3:cowi-3e4:spaml1:ai0eee") == {b"cow": -3, b"spam": [b"a", 0]}


@pytest.mark.parametrize("data", [b"i01e", b"i-0e", b"5:ab", b"l1:a", b"i1ei2e", b"x"])
def test_bdecode_rejects_malformed(data):
    with pytest.raises(BencodeError):
        bdecode(data)


def test_parse_response_requires_dict():
    with pytest.raises(BencodeError):
        parse_response(b"li1ee")


def test_parse_response_text_fields():
    resp = parse_response(
        b"d14:failure reason3:bad15:warning message4:warn10:tracker id2:t1e"
    )
    assert resp == Response(tracker_id="t1", failure_reason="bad", warning_message="warn")


def test_bencode_error_is_tracker_error():
    with pytest.raises(TrackerError):
        parse_response(b"d8:intervali-1ee")


def test_percent_encode():
    assert percent_encode(b"\x00ab-_.~ /Z9") == "%00ab-_.~%20%2FZ9"


def test_tracker_str():
    assert str(Tracker(TRACKER_URL)) == f"'{TRACKER_URL}'"


def test_should_return_peers_on_announce():
    encoded = (
        b"d8:completei5e10:incompletei3e8:intervali15e12:min intervali10e"
        b"5:peers" + _compact_list(ANNOUNCE_PEER) + b"e"
    )
    expected = Response(
        interval=timedelta(seconds=15),
        min_interval=timedelta(seconds=10),
        seeder_count=5,
        leecher_count=3,
        peers=[("2.156.201.254", 49123)],
    )
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            TRACKER_URL,
            body=encoded,
            status=200,
            match=[
                matchers.query_param_matcher(
                    {
                        "compact": "1",
                        "info_hash": "abcdefghij1234567890",
                        "peer_id": "cbt-2020-03-03-00000",
                        "port": "16",
                        "downloaded": "1234",
                        "uploaded": "1234",
                        "left": "1234",
                        "numwant": "2",
                    }
                )
            ],
        )
        with Tracker(TRACKER_URL) as tracker:
            resp = tracker.announce(_make_announce())
    assert resp == expected


def test_announce_sends_ip_without_numwant():
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            TRACKER_URL,
            body=b"de",
            status=200,
            match=[
                matchers.query_param_matcher(
                    {
                        "compact": "1",
                        "info_hash": "abcdefghij1234567890",
                        "peer_id": "cbt-2020-03-03-00000",
                        "port": "16",
                        "downloaded": "1234",
                        "uploaded": "1234",
                        "left": "1234",
                        "ip": "10.1.2.3",
                    }
                )
            ],
        )
        resp = Tracker(TRACKER_URL).announce(_make_announce(peer_count=None, ip="10.1.2.3"))
    assert resp == Response()


def test_announce_http_error_status():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, TRACKER_URL, body=b"", status=500)
        with pytest.raises(HttpError):
            Tracker(TRACKER_URL).announce(_make_announce())


def test_announce_bad_body():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, TRACKER_URL, body=b"garbage", status=200)
        with pytest.raises(BencodeError):
            Tracker(TRACKER_URL).announce(_make_announce())