import base64
import json
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from voxscribe.errors import ProviderError
from voxscribe.models.transcription import TimingSource
from voxscribe.services.providers import Feature, TranscriptionOptions
from voxscribe.services.providers.assemblyai import AssemblyAIProvider
from voxscribe.services.providers.commonvoice import CommonVoiceProvider
from voxscribe.services.providers.openai_provider import OpenAIProvider

BASE_URL = "https://assembly.test/v2"


# --- AssemblyAI -------------------------------------------------------------


class AssemblyStub:
    """Minimal AssemblyAI API: upload, submit, then a scripted sequence of statuses."""

    def __init__(self, statuses, final_payload=None):
        self.statuses = list(statuses)
        self.final_payload = final_payload or {}
        self.polls = 0
        self.submitted = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "aai-key"
        if request.url.path.endswith("/upload"):
            return httpx.Response(200, json={"upload_url": "https://cdn.test/audio"})
        if request.method == "POST" and request.url.path.endswith("/transcript"):
            self.submitted = json.loads(request.content)
            return httpx.Response(200, json={"id": "tr_1", "status": "queued"})
        if request.method == "GET" and request.url.path.endswith("/transcript/tr_1"):
            status = self.statuses[min(self.polls, len(self.statuses) - 1)]
            self.polls += 1
            payload = {"id": "tr_1", "status": status}
            if status == "completed":
                payload.update(self.final_payload)
            if status == "error":
                payload["error"] = "Audio file could not be decoded"
            return httpx.Response(200, json=payload)
        return httpx.Response(404)


def _assembly(stub, max_attempts=5, sleeps=None):
    return AssemblyAIProvider(
        api_key="aai-key",
        base_url=BASE_URL,
        poll_interval=2,
        max_poll_attempts=max_attempts,
        transport=httpx.MockTransport(stub),
        sleep=(sleeps.append if sleeps is not None else lambda _s: None),
    )


def test_assemblyai_completes_after_polling():
    stub = AssemblyStub(["queued", "processing", "completed"], {"text": "Hello world."})
    sleeps = []
    provider = _assembly(stub, sleeps=sleeps)

    assert provider.transcribe(b"audio", "clip.mp3") == "Hello world."
    assert stub.polls == 3
    assert sleeps == [2, 2]
    assert stub.submitted["audio_url"] == "https://cdn.test/audio"
    assert stub.submitted["speaker_labels"] is False


def test_assemblyai_poll_budget_exhausted():
    stub = AssemblyStub(["processing"])
    sleeps = []
    provider = _assembly(stub, max_attempts=4, sleeps=sleeps)

    with pytest.raises(ProviderError) as excinfo:
        provider.transcribe(b"audio", "clip.mp3")

    assert excinfo.value.is_timeout
    assert stub.polls == 4
    assert len(sleeps) == 3


def test_assemblyai_remote_error():
    provider = _assembly(AssemblyStub(["processing", "error"]))

    with pytest.raises(ProviderError) as excinfo:
        provider.transcribe(b"audio", "clip.mp3")

    assert excinfo.value.kind == "remote"
    assert "could not be decoded" in excinfo.value.detail


def test_assemblyai_upload_http_error():
    provider = _assembly(lambda request: httpx.Response(401, json={"error": "bad key"}))

    with pytest.raises(ProviderError) as excinfo:
        provider.transcribe(b"audio", "clip.mp3")

    assert excinfo.value.kind == "upload"
    assert excinfo.value.provider == "assemblyai"


def test_assemblyai_diarization_and_timestamps():
    final = {
        "text": "Hi. Hello.",
        "language_code": "en",
        "utterances": [
            {"speaker": "A", "text": "Hi.", "start": 0, "end": 800, "confidence": 0.9},
            {"speaker": "B", "text": "Hello.", "start": 900, "end": 1500, "confidence": 0.8},
        ],
    }
    stub = AssemblyStub(["completed"], final)
    provider = _assembly(stub)
    options = TranscriptionOptions(
        language="en",
        features=frozenset({Feature.SPEAKER_DIARIZATION, Feature.TIMESTAMPS, Feature.CONFIDENCE_SCORES}),
    )

    result = provider.transcribe_detailed(b"audio", "clip.mp3", options)

    assert result.text == "Speaker A: Hi.\nSpeaker B: Hello."
    assert [(s.start_ms, s.end_ms, s.confidence) for s in result.segments] == [(0, 800, 0.9), (900, 1500, 0.8)]
    assert stub.submitted["speaker_labels"] is True
    assert stub.submitted["language_code"] == "en"


def test_assemblyai_groups_words_into_sentences():
    final = {
        "text": "Good morning. Bye.",
        "words": [
            {"text": "Good", "start": 0, "end": 300, "confidence": 0.9},
            {"text": "morning.", "start": 300, "end": 700, "confidence": 0.7},
            {"text": "Bye.", "start": 900, "end": 1200, "confidence": 1.0},
        ],
    }
    provider = _assembly(AssemblyStub(["completed"], final))
    options = TranscriptionOptions(features=frozenset({Feature.TIMESTAMPS}))

    result = provider.transcribe_detailed(b"audio", "clip.mp3", options)

    assert [(s.text, s.start_ms, s.end_ms) for s in result.segments] == [
        ("Good morning.", 0, 700),
        ("Bye.", 900, 1200),
    ]
    assert all(s.confidence is None for s in result.segments)
    assert all(s.timing_source is TimingSource.PROVIDER for s in result.segments)


def test_assemblyai_translation_unsupported():
    provider = _assembly(AssemblyStub(["completed"]))
    assert not provider.supports_feature(Feature.TRANSLATION)
    with pytest.raises(ProviderError):
        provider.translate("text", "es")


# --- OpenAI -----------------------------------------------------------------


def test_openai_plain_transcription():
    client = MagicMock()
    client.audio.transcriptions.create.return_value = {"text": "  Hello from whisper.  "}
    provider = OpenAIProvider(api_key="sk-test", client=client, model="whisper-1")

    assert provider.transcribe(b"audio", "clip.mp3") == "Hello from whisper."

    kwargs = client.audio.transcriptions.create.call_args.kwargs
    assert kwargs["file"] == ("clip.mp3", b"audio")
    assert kwargs["model"] == "whisper-1"
    assert "response_format" not in kwargs


def test_openai_timestamps_requested_and_parsed():
    client = MagicMock()
    client.audio.transcriptions.create.return_value = {
        "text": "One. Two.",
        "language": "english",
        "segments": [{"text": " One.", "start": 0.0, "end": 1.25}, {"text": " Two.", "start": 1.25, "end": 2.5}],
    }
    provider = OpenAIProvider(api_key="sk-test", client=client)
    options = TranscriptionOptions(language="en", features=frozenset({Feature.TIMESTAMPS, Feature.SPEAKER_DIARIZATION}))

    result = provider.transcribe_detailed(b"audio", "clip.mp3", options)

    kwargs = client.audio.transcriptions.create.call_args.kwargs
    assert kwargs["response_format"] == "verbose_json"
    assert kwargs["timestamp_granularities"] == ["segment"]
    assert kwargs["language"] == "en"
    assert [(s.text, s.start_ms, s.end_ms) for s in result.segments] == [("One.", 0, 1250), ("Two.", 1250, 2500)]
    assert result.language == "english"


def test_openai_errors_become_provider_errors():
    client = MagicMock()
    client.audio.transcriptions.create.side_effect = openai.OpenAIError("Incorrect API key provided")
    provider = OpenAIProvider(api_key="sk-bad", client=client)

    with pytest.raises(ProviderError) as excinfo:
        provider.transcribe(b"audio", "clip.mp3")
    assert excinfo.value.detail == "[openai] Incorrect API key provided"


def test_openai_translate():
    client = MagicMock()
    client.chat.completions.create.return_value = {"choices": [{"message": {"content": " Hola mundo. "}}]}
    provider = OpenAIProvider(api_key="sk-test", client=client, translate_model="gpt-4o-mini")

    assert provider.translate("Hello world.", "es") == "Hola mundo."
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert "Translate to es" in kwargs["messages"][-1]["content"]


# --- CommonVoice ------------------------------------------------------------


def test_commonvoice_sends_base64_audio():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"text": "Hallo Welt."})

    provider = CommonVoiceProvider(api_url="https://cv.test/api", transport=httpx.MockTransport(handler))
    options = TranscriptionOptions(language="de", features=frozenset({Feature.TIMESTAMPS}))

    result = provider.transcribe_detailed(b"\x00\x01audio", "clip.mp3", options)

    assert result.text == "Hallo Welt."
    assert result.segments == ()
    assert seen["path"] == "/api/transcribe"
    assert base64.b64decode(seen["body"]["audio"]) == b"\x00\x01audio"
    assert seen["body"]["language"] == "de"


def test_commonvoice_defaults_language():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"text": "Hi."})

    provider = CommonVoiceProvider(
        api_url="https://cv.test/api", default_language="en", transport=httpx.MockTransport(handler)
    )
    provider.transcribe(b"audio", "clip.mp3")
    assert seen["body"]["language"] == "en"


def test_commonvoice_http_error():
    provider = CommonVoiceProvider(
        api_url="https://cv.test/api",
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="down")),
    )
    with pytest.raises(ProviderError) as excinfo:
        provider.transcribe(b"audio", "clip.mp3")
    assert "503" in excinfo.value.detail
