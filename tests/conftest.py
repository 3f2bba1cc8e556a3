import base64
from unittest import mock

import pytest

import nano_banana_client as nbc


PNG_SIGNATURE = bytes([0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A])


def fake_response(status_code=200, body=None, text=""):
    response = mock.Mock()
    response.status_code = status_code
    response.text = text
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


def image_body(data=None, mime_type="image/png"):
    if data is None:
        data = base64.b64encode(PNG_SIGNATURE).decode()
    return {
        "candidates": [{
            "content": {
                "parts": [{"inlineData": {"mimeType": mime_type, "data": data}}]
            }
        }]
    }


@pytest.fixture
def client():
    client = nbc.GeminiClient("test-key")
    client._session = mock.Mock()
    return client


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.delenv(nbc.API_KEY_ENV_VAR, raising=False)
    monkeypatch.delenv(nbc.SECRETS_TOOL_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)
