from __future__ import annotations

import pytest

from link2attach.attachments import (
    AttachmentRecord,
    Verification,
    attachment_count,
    build_attachment_set,
    coerce_attachments,
    verify_write,
)
from link2attach.models import FetchedPayload

PAYLOAD = FetchedPayload(content=b"abc", size=3, content_type="image/png")


def test_overwrite_always_yields_single_record():
    existing = [{"token": "old1"}, {"token": "old2"}]

    result = build_attachment_set(existing, PAYLOAD, "img.png", "NEW", overwrite=True)

    assert len(result) == 1
    assert result[0]["token"] == "NEW"
    assert result[0]["name"] == "img.png"
    assert result[0]["size"] == 3
    assert result[0]["type"] == "image/png"
    assert result[0]["timeStamp"] > 0


def test_append_to_empty_existing():
    assert [item["token"] for item in build_attachment_set([], PAYLOAD, "a", "NEW", False)] == ["NEW"]
    assert [item["token"] for item in build_attachment_set(None, PAYLOAD, "a", "NEW", False)] == ["NEW"]


def test_append_preserves_existing_tokens_and_order():
    existing = [
        {"token": "a", "name": "one.pdf", "size": 10, "type": "application/pdf", "timeStamp": 5},
        {"token": "b"},
    ]

    result = build_attachment_set(existing, PAYLOAD, "img.png", "NEW", overwrite=False)

    assert [item["token"] for item in result] == ["a", "b", "NEW"]
    assert result[0] == {
        "token": "a",
        "name": "one.pdf",
        "size": 10,
        "type": "application/pdf",
        "timeStamp": 5,
    }
    assert result[1]["name"] == "file"
    assert result[1]["size"] == 0
    assert result[1]["type"] == "application/octet-stream"
    assert result[1]["timeStamp"] > 0


def test_attachment_record_from_raw_defaults():
    record = AttachmentRecord.from_raw({"token": "t"})
    assert record.token == "t"
    assert record.name == "file"
    assert record.type == "application/octet-stream"


def test_coerce_attachments():
    assert coerce_attachments(None) is None
    assert coerce_attachments("text") is None
    assert coerce_attachments({"token": "t"}) is None
    assert coerce_attachments([]) == []
    assert coerce_attachments([{"token": "t"}, "junk"]) == [{"token": "t"}]


def test_attachment_count_includes_unrecognised_items():
    assert attachment_count(None) == 0
    assert attachment_count("text") == 0
    assert attachment_count([]) == 0
    assert attachment_count(["junk"]) == 1
    assert attachment_count([{"token": "t"}, 7]) == 2


@pytest.mark.parametrize(
    "read_back, expected_count, overwrite, verdict",
    [
        ([{"token": "NEW"}], 1, True, Verification.CONFIRMED),
        ([{"token": "a"}, {"token": "NEW"}], 2, False, Verification.CONFIRMED),
        ([{"token": "rekeyed"}], 1, True, Verification.COUNT_MATCH),
        ([{"token": "a"}, {"token": "rekeyed"}], 2, False, Verification.COUNT_MATCH),
        ([{"token": "a"}], 2, False, Verification.MISMATCH),
        (["junk", {"token": "rekeyed"}], 2, False, Verification.COUNT_MATCH),
        ([], 1, True, Verification.EMPTY),
        ([], 1, False, Verification.EMPTY),
        (None, 1, True, Verification.EMPTY),
        (None, 1, False, Verification.UNVERIFIABLE),
        ("garbage", 1, False, Verification.UNVERIFIABLE),
    ],
)
def test_verify_write_decision_table(read_back, expected_count, overwrite, verdict):
    assert verify_write(read_back, "NEW", expected_count, overwrite) is verdict


def test_verification_success_flags():
    assert Verification.CONFIRMED.succeeded
    assert Verification.COUNT_MATCH.succeeded
    assert Verification.UNVERIFIABLE.succeeded
    assert not Verification.MISMATCH.succeeded
    assert not Verification.EMPTY.succeeded
