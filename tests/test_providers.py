"""
Tests for STT and completion providers.

Unit tests mock requests/faster-whisper. Live tests need a running server
and are opt-in via WHISPER_API_URL / OLLAMA_URL.
"""

import os
from unittest.mock import Mock, patch

import numpy as np
import pytest
import requests


def http_response(status=200, json_data=None, text=""):
    response = Mock()
    response.status_code = status
    response.text = text
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


class TestOpenAiCompatibleStt:

    def test_posts_wav_and_filters_text(self):
        from whispertray.providers.stt import OpenAiCompatibleSttProvider

        provider = OpenAiCompatibleSttProvider.openai_cloud("sk-test", "whisper-1")
        samples = np.zeros(1600, dtype=np.float32)

        with patch("whispertray.providers.stt.requests.post") as mock_post:
            mock_post.return_value = http_response(json_data={"text": " Hello there. "})
            text = provider.transcribe(samples, "en")

        assert text == "Hello there."
        args, kwargs = mock_post.call_args
        assert args[0] == "https://api.openai.com/v1/audio/transcriptions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["data"] == {"model": "whisper-1", "language": "en"}
        assert kwargs["files"]["file"][1][:4] == b"RIFF"

    def test_artifact_only_response_is_empty(self):
        from whispertray.providers.stt import OpenAiCompatibleSttProvider

        provider = OpenAiCompatibleSttProvider.self_hosted("http://localhost:8000", "small")
        with patch("whispertray.providers.stt.requests.post") as mock_post:
            mock_post.return_value = http_response(json_data={"text": "[BLANK_AUDIO]"})
            assert provider.transcribe(np.zeros(160, dtype=np.float32)) == ""

    def test_self_hosted_sends_no_auth(self):
        from whispertray.providers.stt import OpenAiCompatibleSttProvider

        provider = OpenAiCompatibleSttProvider.self_hosted("http://localhost:8000/", "small")
        with patch("whispertray.providers.stt.requests.post") as mock_post:
            mock_post.return_value = http_response(json_data={"text": "hi"})
            provider.transcribe(np.zeros(160, dtype=np.float32), None)

        kwargs = mock_post.call_args.kwargs
        assert "Authorization" not in kwargs["headers"]
        assert "language" not in kwargs["data"]

    @pytest.mark.parametrize("response,side_effect", [
        (http_response(status=500, text="boom"), None),
        (http_response(json_data=ValueError("not json")), None),
        (http_response(json_data={"error": "x"}), None),
        (None, requests.ConnectionError("refused")),
    ])
    def test_failures_raise_transcription_failed(self, response, side_effect):
        from whispertray.errors import TranscriptionFailed
        from whispertray.providers.stt import OpenAiCompatibleSttProvider

        provider = OpenAiCompatibleSttProvider.self_hosted("http://localhost:8000", "small")
        with patch("whispertray.providers.stt.requests.post") as mock_post:
            mock_post.return_value = response
            mock_post.side_effect = side_effect
            with pytest.raises(TranscriptionFailed):
                provider.transcribe(np.zeros(160, dtype=np.float32))


class TestWhisperLocalProvider:

    def fake_faster_whisper(self, texts=None, error=None):
        model = Mock()
        if error is not None:
            model.transcribe.side_effect = error
        else:
            segments = [Mock(text=t) for t in texts]
            model.transcribe.return_value = (iter(segments), Mock())
        module = Mock()
        module.WhisperModel.return_value = model
        return module, model

    def test_joins_segments_without_artifacts(self, tmp_path):
        from whispertray.providers import stt

        module, model = self.fake_faster_whisper([" Hello", " [BLANK_AUDIO]", " world."])
        with patch.dict("sys.modules", {"faster_whisper": module}), \
                patch.dict(stt._model_cache, clear=True):
            text = stt.WhisperLocalProvider(tmp_path / "whisper-base.en").transcribe(
                np.zeros(16000, dtype=np.float32), "en"
            )

        assert text == "Hello world."
        assert model.transcribe.call_args.kwargs["language"] == "en"

    def test_model_is_loaded_once(self, tmp_path):
        from whispertray.providers import stt

        module, model = self.fake_faster_whisper(["a"])
        with patch.dict("sys.modules", {"faster_whisper": module}), \
                patch.dict(stt._model_cache, clear=True):
            provider = stt.WhisperLocalProvider(tmp_path)
            provider.transcribe(np.zeros(16, dtype=np.float32))
            model.transcribe.return_value = (iter([Mock(text="b")]), Mock())
            stt.WhisperLocalProvider(tmp_path).transcribe(np.zeros(16, dtype=np.float32))

        assert module.WhisperModel.call_count == 1

    def test_inference_error_raises_transcription_failed(self, tmp_path):
        from whispertray.errors import TranscriptionFailed
        from whispertray.providers import stt

        module, _ = self.fake_faster_whisper(error=RuntimeError("bad audio"))
        with patch.dict("sys.modules", {"faster_whisper": module}), \
                patch.dict(stt._model_cache, clear=True):
            with pytest.raises(TranscriptionFailed, match="bad audio"):
                stt.WhisperLocalProvider(tmp_path).transcribe(np.zeros(16, dtype=np.float32))


class TestLlmProviders:

    def test_ollama_generate(self):
        from whispertray.providers.llm import OllamaProvider

        with patch("whispertray.providers.llm.requests.post") as mock_post:
            mock_post.return_value = http_response(json_data={"response": "  Done.\n"})
            result = OllamaProvider("llama3.2", "http://localhost:11434/").complete("prompt")

        assert result == "Done."
        args, kwargs = mock_post.call_args
        assert args[0] == "http://localhost:11434/api/generate"
        assert kwargs["json"]["stream"] is False
        assert kwargs["json"]["prompt"] == "prompt"

    def test_openai_chat(self):
        from whispertray.providers.llm import OPENAI_CHAT_URL, OpenAIProvider

        body = {"choices": [{"message": {"content": "Hi!"}}]}
        with patch("whispertray.providers.llm.requests.post") as mock_post:
            mock_post.return_value = http_response(json_data=body)
            assert OpenAIProvider("sk-test", "").complete("p") == "Hi!"

        args, kwargs = mock_post.call_args
        assert args[0] == OPENAI_CHAT_URL
        assert kwargs["json"]["model"] == "gpt-4o-mini"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"

    def test_anthropic_joins_text_blocks(self):
        from whispertray.providers.llm import ANTHROPIC_VERSION, AnthropicProvider

        body = {"content": [
            {"type": "text", "text": "Part one. "},
            {"type": "tool_use", "id": "x"},
            {"type": "text", "text": "Part two."},
        ]}
        with patch("whispertray.providers.llm.requests.post") as mock_post:
            mock_post.return_value = http_response(json_data=body)
            result = AnthropicProvider("key", "claude-3-5-haiku-latest").complete("p")

        assert result == "Part one. Part two."
        headers = mock_post.call_args.kwargs["headers"]
        assert headers["x-api-key"] == "key"
        assert headers["anthropic-version"] == ANTHROPIC_VERSION

    @pytest.mark.parametrize("response,side_effect", [
        (http_response(status=401, text="unauthorized"), None),
        (http_response(json_data=ValueError("bad")), None),
        (http_response(json_data={"response": "   "}), None),
        (http_response(json_data={}), None),
        (None, requests.Timeout("slow")),
    ])
    def test_ollama_failures_raise_completion_failed(self, response, side_effect):
        from whispertray.errors import CompletionFailed
        from whispertray.providers.llm import OllamaProvider

        with patch("whispertray.providers.llm.requests.post") as mock_post:
            mock_post.return_value = response
            mock_post.side_effect = side_effect
            with pytest.raises(CompletionFailed):
                OllamaProvider("llama3.2").complete("p")

    def test_openai_unexpected_shape(self):
        from whispertray.errors import CompletionFailed
        from whispertray.providers.llm import OpenAIProvider

        with patch("whispertray.providers.llm.requests.post") as mock_post:
            mock_post.return_value = http_response(json_data={"choices": []})
            with pytest.raises(CompletionFailed):
                OpenAIProvider("sk", "gpt-4o-mini").complete("p")

    @pytest.mark.parametrize("provider_cls,args", [
        ("OllamaProvider", ("llama3.2",)),
        ("OpenAIProvider", ("sk", "gpt-4o-mini")),
        ("AnthropicProvider", ("key", "claude-3-5-haiku-latest")),
    ])
    def test_non_object_json_raises_completion_failed(self, provider_cls, args):
        from whispertray.errors import CompletionFailed
        from whispertray.providers import llm

        provider = getattr(llm, provider_cls)(*args)
        with patch("whispertray.providers.llm.requests.post") as mock_post:
            mock_post.return_value = http_response(json_data=["not", "a", "dict"])
            with pytest.raises(CompletionFailed, match="Unexpected response: list"):
                provider.complete("p")

    def test_anthropic_non_list_content(self):
        from whispertray.errors import CompletionFailed
        from whispertray.providers.llm import AnthropicProvider

        with patch("whispertray.providers.llm.requests.post") as mock_post:
            mock_post.return_value = http_response(json_data={"content": "plain string"})
            with pytest.raises(CompletionFailed, match="Unexpected content"):
                AnthropicProvider("key", "").complete("p")


@pytest.mark.skipif(not os.getenv("WHISPER_API_URL"), reason="WHISPER_API_URL not set")
class TestLiveWhisperServer:

    def test_silence_transcribes_to_empty_or_short_text(self):
        from whispertray.providers.stt import OpenAiCompatibleSttProvider

        provider = OpenAiCompatibleSttProvider.self_hosted(
            os.environ["WHISPER_API_URL"], os.getenv("WHISPER_MODEL", "Systran/faster-whisper-small")
        )
        text = provider.transcribe(np.zeros(16000, dtype=np.float32), "en")
        assert isinstance(text, str)
