import uuid

from collector.core.ids import batch_trace_id, find_identifier, is_valid_identifier, new_trace_id


def test_valid_identifier_pattern():
    assert is_valid_identifier("urn:li:activity:7123456789")
    assert not is_valid_identifier("urn:li:share:7123456789")
    assert not is_valid_identifier("urn:li:activity:")
    assert not is_valid_identifier("urn:li:activity:123abc")
    assert not is_valid_identifier(None)


def test_find_identifier_variants():
    href = "https://www.linkedin.com/feed/update/urn:li:activity:1234567890/?tracking=foo"
    assert find_identifier(href) == "urn:li:activity:1234567890"
    assert find_identifier("https://www.linkedin.com/posts/jdupont_activity-1234567890-abcd") == "urn:li:activity:1234567890"
    assert find_identifier("https://www.linkedin.com/activity/1234567890/") == "urn:li:activity:1234567890"
    assert find_identifier("urn:li:share:555") is None
    assert find_identifier("") is None


def test_trace_ids():
    tid = new_trace_id()
    assert uuid.UUID(tid).version == 4
    assert new_trace_id() != tid
    assert batch_trace_id(tid, 1) == f"{tid}-batch-1"
    assert batch_trace_id(tid, 3).endswith("-batch-3")
