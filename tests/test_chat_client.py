import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest
import requests

from chat_client import (
    QUOTA_MESSAGE,
    RATE_LIMIT_MESSAGE,
    ChatServiceError,
    GatewayChatClient,
    OpenAIChatClient,
    QuotaExhaustedError,
    RateLimitError,
    SSEParser,
    build_system_prompt,
)
from schema_normalizer import normalize


def _data(content):
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n"


class TestSSEParser:
    def test_fragments_in_order(self):
        parser = SSEParser()

        assert parser.feed(_data("Hello") + _data(", ") + _data("world")) == ["Hello", ", ", "world"]

    def test_line_split_across_chunks(self):
        parser = SSEParser()
        line = _data("Link 3")

        assert parser.feed(line[:20]) == []
        assert parser.feed(line[20:]) == ["Link 3"]

    def test_comments_blank_and_crlf(self):
        parser = SSEParser()
        text = ": keep-alive\n\n" + _data("a").replace("\n", "\r\n") + "event: ping\n" + _data("b")

        assert parser.feed(text) == ["a", "b"]

    def test_done_stops_parsing(self):
        parser = SSEParser()

        assert parser.feed(_data("x") + "data: [DONE]\n" + _data("ignored")) == ["x"]
        assert parser.done
        assert parser.feed(_data("later")) == []

    def test_unparsable_line_is_rebuffered(self):
        parser = SSEParser()

        assert parser.feed('data: {"choices": [\n') == []
        assert parser.buffer.startswith('data: {"choices": [')

    def test_finish_drops_bad_lines(self, caplog):
        parser = SSEParser()
        parser.feed('data: {"choices": [\n' + _data("tail"))

        with caplog.at_level("WARNING"):
            assert parser.finish() == ["tail"]
        assert parser.buffer == ""
        assert "Dropping unparsable" in caplog.text

    def test_finish_flushes_last_line_without_newline(self):
        parser = SSEParser()
        parser.feed(_data("end").rstrip("\n"))

        assert parser.finish() == ["end"]

    def test_chunks_without_content(self):
        parser = SSEParser()
        role_only = "data: " + json.dumps({"choices": [{"delta": {"role": "assistant"}}]}) + "\n"

        assert parser.feed(role_only + 'data: {"choices": []}\n') == []


def _gateway_response(status=200, chunks=(), error=None):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.iter_content.return_value = list(chunks)
    response.json.return_value = {"error": error} if error else {}
    response.__enter__.return_value = response
    return response


class TestGatewayChatClient:
    def test_streams_content(self):
        body = (_data("Cell 4") + _data(" is ") + _data("the top contributor") + "data: [DONE]\n").encode()
        session = MagicMock()
        session.post.return_value = _gateway_response(chunks=[body[:17], body[17:50], body[50:]])
        client = GatewayChatClient(url="https://chat.test", api_key="k", session=session)

        reply = "".join(client.stream([{"role": "user", "content": "hi"}]))

        assert reply == "Cell 4 is the top contributor"
        kwargs = session.post.call_args.kwargs
        assert kwargs["json"] == {"messages": [{"role": "user", "content": "hi"}]}
        assert kwargs["headers"]["Authorization"] == "Bearer k"
        assert kwargs["stream"] is True

    def test_multibyte_split_across_chunks(self):
        line = {"choices": [{"delta": {"content": "Δ 5%"}}]}
        body = ("data: " + json.dumps(line, ensure_ascii=False) + "\n").encode()
        cut = body.index("Δ".encode()) + 1
        session = MagicMock()
        session.post.return_value = _gateway_response(chunks=[body[:cut], body[cut:]])

        reply = "".join(GatewayChatClient(url="u", session=session).stream([]))

        assert reply == "Δ 5%"

    @pytest.mark.parametrize("status, error_cls, message", [
        (429, RateLimitError, RATE_LIMIT_MESSAGE),
        (402, QuotaExhaustedError, QUOTA_MESSAGE),
        (500, ChatServiceError, "upstream exploded"),
    ])
    def test_status_errors(self, status, error_cls, message):
        session = MagicMock()
        session.post.return_value = _gateway_response(status=status, error="upstream exploded")

        with pytest.raises(error_cls, match=message):
            list(GatewayChatClient(url="u", session=session).stream([]))

    def test_error_without_body(self):
        session = MagicMock()
        response = _gateway_response(status=503)
        response.json.side_effect = ValueError("no json")
        session.post.return_value = response

        with pytest.raises(ChatServiceError, match="Failed to get response"):
            list(GatewayChatClient(url="u", session=session).stream([]))

    def test_connection_failure(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("down")

        with pytest.raises(ChatServiceError):
            list(GatewayChatClient(url="u", session=session).stream([]))

    def test_partial_output_before_interruption(self):
        def chunks():
            yield _data("partial").encode()
            raise requests.ConnectionError("reset")

        session = MagicMock()
        response = _gateway_response()
        response.iter_content.return_value = chunks()
        session.post.return_value = response

        received = []
        with pytest.raises(ChatServiceError):
            for fragment in GatewayChatClient(url="u", session=session).stream([]):
                received.append(fragment)

        assert received == ["partial"]


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


def _status_response(status):
    return httpx.Response(status, request=httpx.Request("POST", "https://api.openai.test/v1/chat/completions"))


class TestOpenAIChatClient:
    def test_streams_with_system_prompt(self):
        fake = MagicMock()
        fake.chat.completions.create.return_value = iter([_chunk("Link "), _chunk(None), _chunk("3")])
        client = OpenAIChatClient(model="m", system_prompt="ctx", client=fake)

        reply = "".join(client.stream([{"role": "user", "content": "q"}]))

        assert reply == "Link 3"
        kwargs = fake.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "ctx"}
        assert kwargs["stream"] is True

    def test_rate_limit(self):
        fake = MagicMock()
        fake.chat.completions.create.side_effect = openai.RateLimitError(
            "slow down", response=_status_response(429), body=None)

        with pytest.raises(RateLimitError):
            list(OpenAIChatClient(client=fake).stream([]))

    def test_quota(self):
        fake = MagicMock()
        fake.chat.completions.create.side_effect = openai.RateLimitError(
            "quota", response=_status_response(429), body={"code": "insufficient_quota"})

        with pytest.raises(QuotaExhaustedError):
            list(OpenAIChatClient(client=fake).stream([]))

    def test_server_error(self):
        fake = MagicMock()
        fake.chat.completions.create.side_effect = openai.InternalServerError(
            "boom", response=_status_response(500), body=None)

        with pytest.raises(ChatServiceError):
            list(OpenAIChatClient(client=fake).stream([]))


def test_system_prompt_uses_loaded_analysis(sample_payload):
    prompt = build_system_prompt(normalize(sample_payload))

    assert "Link 1: Cells 4 (67% confidence)" in prompt
    assert "5.27 Gbps (with buffer)" in prompt
    assert "Link 2: 5 events" in prompt
