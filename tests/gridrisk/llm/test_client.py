"""
Tests for Text Generation Client
"""
import threading
from unittest.mock import MagicMock

import pytest
import requests

from src.gridrisk.exceptions import TextGenerationError
from src.gridrisk.llm.client import TextGenerationClient


def response(status_code=200, payload=None, text=""):
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.text = text
    mock_response.json.return_value = payload
    return mock_response


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def client(http):
    return TextGenerationClient(api_key="test-key", api_url="https://llm.test/v1/chat", model="test-model", http=http)


class TestTextGenerationClient:
    """Tests for the chat completion wrapper."""

    def test_generate_success(self, client, http):
        """Test a successful completion and the request payload."""
        http.post.return_value = response(payload={"choices": [{"message": {"content": "  Summary text \n"}}]})

        text = client.generate("system", "user", max_tokens=100, temperature=0.1)

        assert text == "Summary text"
        call = http.post.call_args
        assert call[0][0] == "https://llm.test/v1/chat"
        assert call[1]["headers"]["Authorization"] == "Bearer test-key"
        assert call[1]["json"]["model"] == "test-model"
        assert call[1]["json"]["max_tokens"] == 100
        assert call[1]["json"]["messages"][0] == {"role": "system", "content": "system"}

    def test_missing_key(self, http):
        """Test that an unconfigured client fails without a request."""
        client = TextGenerationClient(api_key="", http=http)

        assert client.is_configured is False
        with pytest.raises(TextGenerationError):
            client.generate("system", "user")
        http.post.assert_not_called()

    def test_transport_error(self, client, http):
        http.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(TextGenerationError):
            client.generate("system", "user")

    def test_bad_status(self, client, http):
        http.post.return_value = response(status_code=429, text="rate limited")

        with pytest.raises(TextGenerationError, match="429"):
            client.generate("system", "user")

    @pytest.mark.parametrize("payload", [
        {},
        {"choices": []},
        {"choices": [{"message": {}}]},
        {"choices": [{"message": {"content": "   "}}]},
    ])
    def test_malformed_or_empty_body(self, client, http, payload):
        http.post.return_value = response(payload=payload)

        with pytest.raises(TextGenerationError):
            client.generate("system", "user")

    def test_default_sessions_are_per_thread(self):
        """Test that concurrent callers never share a default session."""
        client = TextGenerationClient(api_key="test-key")
        seen = {}

        def grab(name):
            seen[name] = (client._session(), client._session())

        workers = [threading.Thread(target=grab, args=(name,)) for name in ("a", "b")]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert seen["a"][0] is seen["a"][1]
        assert seen["a"][0] is not seen["b"][0]
        assert isinstance(seen["a"][0], requests.Session)

    def test_injected_session_is_used(self, client, http):
        assert client._session() is http
