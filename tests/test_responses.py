"""Response parsing and extraction."""

import base64

import pytest

import nano_banana_client as nbc
from conftest import PNG_SIGNATURE


def test_text_response_deserialization():
    response = nbc.parse_response(
        {"candidates": [{"content": {"parts": [{"text": "Hello back!"}]}}]}
    )
    assert len(response.candidates) == 1
    assert response.candidates[0].content.parts[0].text == "Hello back!"
    assert nbc.extract_text(response) == "Hello back!"


def test_image_response_deserialization():
    response = nbc.parse_response({
        "candidates": [{
            "content": {
                "parts": [{"inlineData": {"mimeType": "image/png", "data": "iVBORw0KGgo="}}]
            }
        }]
    })
    inline_data = response.candidates[0].content.parts[0].inline_data
    assert inline_data.mime_type == "image/png"
    assert inline_data.data == "iVBORw0KGgo="
    assert base64.b64decode(inline_data.data) == PNG_SIGNATURE


def test_missing_candidates_is_empty_list():
    assert nbc.parse_response({}).candidates == []


def test_unknown_fields_are_ignored():
    response = nbc.parse_response({
        "candidates": [{
            "content": {"role": "model", "parts": [{"text": "hi", "thought": False}]},
            "finishReason": "STOP",
        }],
        "usageMetadata": {"totalTokenCount": 3},
    })
    assert nbc.extract_text(response) == "hi"


@pytest.mark.parametrize("body", [
    [],
    "not an object",
    {"candidates": "nope"},
    {"candidates": [{"content": {"parts": [{"inlineData": {"data": "abc"}}]}}]},
])
def test_unexpected_shape_raises(body):
    with pytest.raises(nbc.DeserializationError):
        nbc.parse_response(body)


def test_extract_text_uses_first_candidate_only():
    response = nbc.parse_response({"candidates": [
        {"content": {"parts": [{"text": "first"}, {"text": "second"}]}},
        {"content": {"parts": [{"text": "other"}]}},
    ]})
    assert nbc.extract_text(response) == "first"


@pytest.mark.parametrize("body", [
    {"candidates": []},
    {"candidates": [{"content": {"parts": []}}]},
    {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": ""}}, {"text": "late"}]}}]},
])
def test_extract_text_without_text(body):
    with pytest.raises(nbc.NoTextDataError):
        nbc.extract_text(nbc.parse_response(body))


def test_extract_inline_data_scans_all_candidates():
    response = nbc.parse_response({"candidates": [
        {"content": {"parts": [{"text": "Here is your image"}]}},
        {"content": {"parts": [
            {"text": "caption"},
            {"inlineData": {"mimeType": "image/jpeg", "data": "AAAA"}},
            {"inlineData": {"mimeType": "image/png", "data": "BBBB"}},
        ]}},
    ]})
    inline_data = nbc.extract_inline_data(response)
    assert inline_data.mime_type == "image/jpeg"
    assert inline_data.data == "AAAA"


@pytest.mark.parametrize("body", [
    {"candidates": []},
    {"candidates": [{"content": {"parts": [{"text": "sorry, no image"}]}}]},
])
def test_extract_inline_data_without_image(body):
    with pytest.raises(nbc.NoImageDataError):
        nbc.extract_inline_data(nbc.parse_response(body))


def test_save_image_writes_decoded_bytes(tmp_path):
    path = nbc.save_image(nbc.InlineData(mime_type="image/png", data="iVBORw0KGgo="), tmp_path / "out.png")
    assert path.read_bytes()[:8] == PNG_SIGNATURE


def test_save_image_overwrites(tmp_path):
    target = tmp_path / "out.png"
    target.write_bytes(b"old contents that are longer")
    nbc.save_image(nbc.InlineData(mime_type="image/png", data="iVBORw0KGgo="), target)
    assert target.read_bytes() == PNG_SIGNATURE


def test_save_image_invalid_base64(tmp_path):
    target = tmp_path / "out.png"
    with pytest.raises(nbc.DecodeError):
        nbc.save_image(nbc.InlineData(mime_type="image/png", data="not base64!!"), target)
    assert not target.exists()


def test_save_image_missing_directory(tmp_path):
    with pytest.raises(nbc.FileWriteError):
        nbc.save_image(
            nbc.InlineData(mime_type="image/png", data="iVBORw0KGgo="),
            tmp_path / "missing" / "out.png"
        )
