import pytest

from microboot.intelhex import HexParser, ParseStatus

WIKI_RECORD = ":10010000214601360121470136007EFE09D2190140"
WIKI_DATA = bytes.fromhex("214601360121470136007EFE09D21901")
EOF_RECORD = ":00000001FF"


def record(address: int, record_type: int, payload: bytes) -> str:
    body = bytes([len(payload), address >> 8, address & 0xFF, record_type]) + payload
    return ":" + (body + bytes([-sum(body) & 0xFF])).hex().upper() + "\n"


def test_unaligned_first_record_is_delivered_next_call():
    parser = HexParser()
    blob = WIKI_RECORD + "\n" + EOF_RECORD + "\n"
    first = parser.parse(blob, 64)
    assert first.status is ParseStatus.UNALIGNED
    assert first.count == 0
    assert first.consumed == len(WIKI_RECORD)

    second = parser.parse(blob[first.consumed:], 64)
    assert second.status is ParseStatus.EOF
    assert second.address == 0x0100
    assert second.count == 16
    assert second.data[:16] == WIKI_DATA
    assert second.data[16:] == b"\xff" * 48


def test_aligned_records_accumulate():
    parser = HexParser()
    blob = record(0, 0, b"\x01\x02\x03\x04") + record(4, 0, b"\x05\x06")
    result = parser.parse(blob, 8)
    assert result.status is ParseStatus.OK
    assert result.consumed == len(blob)
    assert result.address == 0
    assert result.data == b"\x01\x02\x03\x04\x05\x06\xff\xff"


def test_checksum_failure():
    parser = HexParser()
    bad = WIKI_RECORD[:-1] + "1"
    result = parser.parse(bad, 16)
    assert result.status is ParseStatus.CKSUM_FAIL
    assert result.count == 0


def test_extended_linear_address_sets_upper_bits():
    parser = HexParser()
    ext = ":020000040800F2"
    first = parser.parse(ext + "\n", 16)
    assert first.status is ParseStatus.UNALIGNED
    assert first.address == 0

    rest = ext[first.consumed:] + "\n" + record(0, 0, b"\xaa\xbb")
    second = parser.parse(rest, 16)
    assert second.status is ParseStatus.OK
    assert second.address == 0x08000000
    assert second.data[:2] == b"\xaa\xbb"


def test_data_before_extended_address_is_flushed():
    parser = HexParser()
    blob = record(0, 0, b"\x11\x22") + ":020000040800F2\n"
    result = parser.parse(blob, 4)
    assert result.status is ParseStatus.UNALIGNED
    assert result.address == 0
    assert result.data == b"\x11\x22\xff\xff"


def test_lowercase_matches_uppercase():
    upper = HexParser().parse(record(0, 0, b"\xab\xcd"), 2)
    lower = HexParser().parse(record(0, 0, b"\xab\xcd").lower(), 2)
    assert upper.data == lower.data == b"\xab\xcd"


def test_other_board_block_is_skipped():
    parser = HexParser(board_id=0x9901)
    meta = record(0, 0x0A, b"\x99\x00")
    result = parser.parse(meta + record(0, 0, b"\x01"), 4)
    assert result.status is ParseStatus.OK
    assert result.count == 0

    skipped = parser.parse("0000", 4)
    assert skipped.status is ParseStatus.OK
    assert skipped.consumed == 0

    parser.reset()
    taken = parser.parse(record(0, 0, b"\x07"), 4)
    assert taken.data[:1] == b"\x07"


def test_matching_board_block_is_kept():
    parser = HexParser(board_id=0x9901)
    blob = record(0, 0x0A, b"\x99\x01") + record(0, 0x0D, b"\x42")
    result = parser.parse(blob, 2)
    assert result.data == b"\x42\xff"


def test_reset_clears_address_state():
    parser = HexParser()
    parser.parse(":020000040800F2\n", 4)
    parser.reset()
    result = parser.parse(record(0, 0, b"\x01"), 4)
    assert result.address == 0
    assert result.status is ParseStatus.OK


def test_oversized_record_reports_overrun():
    parser = HexParser()
    result = parser.parse(":FF000000", 4)
    assert result.status is ParseStatus.LINE_OVERRUN


@pytest.mark.parametrize("size", [0, 1, 16])
def test_empty_input(size):
    result = HexParser().parse(b"", size)
    assert result.status is ParseStatus.OK
    assert result.data == b"\xff" * size