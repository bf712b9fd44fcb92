from datetime import datetime

from trustcota.services.numbering import (
    ORDER_PREFIX,
    REQUEST_PREFIX,
    bucket_prefix,
    format_number,
    next_number,
    parse_sequence,
)

OCT = datetime(2026, 10, 17)


def test_first_number_of_a_bucket():
    assert next_number(REQUEST_PREFIX, [], OCT) == "REQ-202610-001"


def test_next_number_follows_highest_in_bucket():
    issued = ["REQ-202610-001", "REQ-202610-007", "REQ-202610-003"]
    assert next_number(REQUEST_PREFIX, issued, OCT) == "REQ-202610-008"


def test_other_buckets_and_garbage_are_ignored():
    issued = ["REQ-202609-041", "PO-202610-009", "REQ-202610-abc", None, ""]
    assert next_number(REQUEST_PREFIX, issued, OCT) == "REQ-202610-001"


def test_sequence_grows_past_three_digits():
    assert next_number(ORDER_PREFIX, ["PO-202610-999"], OCT) == "PO-202610-1000"


def test_helpers():
    assert bucket_prefix(ORDER_PREFIX, OCT) == "PO-202610-"
    assert format_number(REQUEST_PREFIX, datetime(2027, 1, 2), 12) == "REQ-202701-012"
    assert parse_sequence("REQ-202610-042") == 42
    assert parse_sequence("REQ-202610") is None
