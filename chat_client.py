"""
Streaming chat for the AI assistant.

Two transports yield reply fragments as they arrive:

* `GatewayChatClient` posts to the hosted chat function and parses its
  `text/event-stream` body (OpenAI-style `data: {...}` chunks).
* `OpenAIChatClient` talks to OpenAI directly with a system prompt built from
  the loaded analysis.
"""

import codecs
import json
import logging
from typing import Iterator, List, Mapping, Optional, Sequence

import openai
import requests

from config import CHAT_API_KEY, CHAT_TIMEOUT_SEC, CHAT_URL, OPENAI_API_KEY, OPENAI_MODEL
from event_aggregator import cell_contribution_totals, group_by_link
from schema_normalizer import NormalizedAnalysis, format_gbps, format_pct

log = logging.getLogger(__name__)

SUGGESTED_QUESTIONS = [
    "Which cells cause the most congestion?",
    "What's the capacity of Link 3?",
    "How can I optimize Link 1?",
    "Explain the topology confidence scores",
]

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
QUOTA_MESSAGE = "AI credits exhausted. Please add credits to continue."


class ChatError(Exception):
    pass


class RateLimitError(ChatError):
    pass


class QuotaExhaustedError(ChatError):
    pass


class ChatServiceError(ChatError):
    pass


class SSEParser:
    """
    Incremental parser for `data: {json}` event-stream lines.

    Feed decoded text as it arrives; each call returns the new
    `choices[0].delta.content` fragments. A data line whose JSON does not
    parse stays in the buffer and is retried on the next feed.
    """

    def __init__(self):
        self.buffer = ""
        self.done = False

    def feed(self, text: str) -> List[str]:
        self.buffer += text
        fragments = []
        while not self.done:
            newline = self.buffer.find("\n")
            if newline == -1:
                break
            line = self.buffer[:newline]
            self.buffer = self.buffer[newline + 1:]

            if line.endswith("\r"):
                line = line[:-1]
            if line.startswith(":") or line.strip() == "":
                continue
            if not line.startswith("data: "):
                continue

            data = line[6:].strip()
            if data == "[DONE]":
                self.done = True
                break
            try:
                parsed = json.loads(data)
            except json.JSONDecodeError:
                self.buffer = line + "\n" + self.buffer
                break
            content = _delta_content(parsed)
            if content:
                fragments.append(content)
        return fragments

    def finish(self) -> List[str]:
        """Flush at end of stream; lines that still do not parse are dropped."""
        fragments = []
        lines = self.buffer.splitlines()
        self.buffer = ""
        for line in lines:
            if self.done:
                break
            if not line.startswith("data: "):
                continue
            data = line[6:].strip()
            if data == "[DONE]":
                self.done = True
                break
            try:
                content = _delta_content(json.loads(data))
            except json.JSONDecodeError:
                log.warning("Dropping unparsable stream line: %.80s", line)
                continue
            if content:
                fragments.append(content)
        return fragments


def _delta_content(parsed) -> Optional[str]:
    try:
        return parsed["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None


def _error_for_status(status_code: int, message: Optional[str]) -> ChatError:
    if status_code == 429:
        return RateLimitError(RATE_LIMIT_MESSAGE)
    if status_code == 402:
        return QuotaExhaustedError(QUOTA_MESSAGE)
    return ChatServiceError(message or "Failed to get response")


class GatewayChatClient:
    def __init__(self, url: str = CHAT_URL, api_key: str = CHAT_API_KEY,
                 session: Optional[requests.Session] = None, timeout: float = CHAT_TIMEOUT_SEC):
        self.url = url
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def stream(self, messages: Sequence[Mapping[str, str]]) -> Iterator[str]:
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"}
        try:
            response = self.session.post(
                self.url,
                json={"messages": list(messages)},
                headers=headers,
                stream=True,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log.error("Chat request failed: %s", e)
            raise ChatServiceError("Failed to send message. Please try again.") from e

        with response:
            if not response.ok:
                try:
                    message = response.json().get("error")
                except (ValueError, AttributeError):
                    message = None
                log.warning("Chat endpoint returned %s", response.status_code)
                raise _error_for_status(response.status_code, message)

            parser = SSEParser()
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            try:
                for chunk in response.iter_content(chunk_size=None):
                    yield from parser.feed(decoder.decode(chunk))
                    if parser.done:
                        return
            except requests.RequestException as e:
                log.error("Chat stream interrupted: %s", e)
                raise ChatServiceError("Connection lost while streaming the reply.") from e
            yield from parser.feed(decoder.decode(b"", final=True))
            yield from parser.finish()


class OpenAIChatClient:
    def __init__(self, api_key: str = OPENAI_API_KEY, model: str = OPENAI_MODEL,
                 system_prompt: str = "", client=None):
        self.model = model
        self.system_prompt = system_prompt
        self.client = client or openai.OpenAI(api_key=api_key)

    def stream(self, messages: Sequence[Mapping[str, str]]) -> Iterator[str]:
        full = [{"role": "system", "content": self.system_prompt}] if self.system_prompt else []
        full.extend(dict(m) for m in messages)
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=full,
                temperature=0.7,
                stream=True,
            )
            for chunk in response:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except openai.RateLimitError as e:
            if getattr(e, "code", None) == "insufficient_quota":
                raise QuotaExhaustedError(QUOTA_MESSAGE) from e
            raise RateLimitError(RATE_LIMIT_MESSAGE) from e
        except openai.APIStatusError as e:
            log.error("OpenAI error %s: %s", e.status_code, e)
            raise _error_for_status(e.status_code, "AI service error") from e
        except openai.APIError as e:
            log.error("OpenAI request failed: %s", e)
            raise ChatServiceError("Failed to send message. Please try again.") from e


def build_system_prompt(analysis: NormalizedAnalysis) -> str:
    """Network context for the assistant, generated from the loaded snapshot."""
    lines = [
        "You are an AI assistant for the O-RAN Fronthaul Optimizer, a network analysis "
        "dashboard for telecom operators.",
        "",
        "You have access to the following network data context:",
        "",
        "TOPOLOGY:",
    ]
    for link_id in analysis.links:
        cells = ", ".join(str(c) for c in analysis.topology[link_id])
        confidence = analysis.confidence.get(link_id)
        conf_text = f" ({confidence:.0f}% confidence)" if confidence is not None else ""
        lines.append(f"- Link {link_id}: Cells {cells}{conf_text}")

    lines += ["", "CAPACITY:"]
    for link_id in analysis.links:
        lines.append(
            f"- Link {link_id}: {format_gbps(analysis.capacity_no_buffer.get(link_id))} (no buffer) / "
            f"{format_gbps(analysis.capacity_with_buffer.get(link_id))} (with buffer)"
        )

    lines += ["", "BANDWIDTH SAVINGS:"]
    for link_id in analysis.links:
        lines.append(f"- Link {link_id}: {format_pct(analysis.bandwidth_savings.get(link_id))}")

    lines += ["", "CONGESTION EVENTS:"]
    grouped = group_by_link(analysis.events)
    for link_id in analysis.links:
        link_events = grouped.get(link_id, [])
        totals = cell_contribution_totals(link_events)
        top = ", ".join(str(c) for c in totals["cell_id"].head(6))
        suffix = f", top contributors are Cells {top}" if top else ""
        lines.append(f"- Link {link_id}: {len(link_events)} events{suffix}")

    if analysis.outliers:
        lines += ["", "OUTLIERS: " + ", ".join(f"Cell {o.cell_id} (Link {o.link_id})" for o in analysis.outliers)]

    lines += [
        "",
        "You help users understand network topology and cell-to-link mappings, capacity "
        "planning and buffer impacts, congestion root causes, optimization recommendations "
        "and what-if scenario analysis.",
        "",
        "Keep responses concise, technical but accessible. Use specific data from the "
        "context when answering questions.",
    ]
    return "\n".join(lines)


def make_chat_client(analysis: NormalizedAnalysis):
    """Gateway when CHAT_URL is configured, else OpenAI when a key is set, else None."""
    if CHAT_URL:
        return GatewayChatClient()
    if OPENAI_API_KEY:
        return OpenAIChatClient(system_prompt=build_system_prompt(analysis))
    return None
