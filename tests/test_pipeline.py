"""
Tests for the result pipeline and clipboard delivery.
"""

import logging
from unittest.mock import Mock, patch

import numpy as np
import pytest


def make_session(mode_key="voice_to_text", **kwargs):
    from whispertray.config import Config
    from whispertray.modes import ModeRegistry
    from whispertray.session import Session

    settings = Config("unused").snapshot()
    session = Session(
        id="sess-1",
        mode=ModeRegistry().get(mode_key),
        settings=settings,
        context=kwargs.pop("context", None),
    )
    session.samples = np.zeros(8000, dtype=np.float32)
    session.transcript = "raw words"
    session.output = kwargs.pop("output", "raw words")
    return session


class TestResultPipeline:

    def test_record_without_post_processing(self):
        from whispertray.pipeline import ResultPipeline

        pipeline = ResultPipeline(Mock(), Mock(), save_audio=False)
        record = pipeline.finish(make_session())

        assert record.id == "sess-1"
        assert record.mode_key == "voice_to_text"
        assert record.transcript_raw == "raw words"
        assert record.llm_provider is None
        assert record.llm_model is None
        assert record.duration_ms == 500
        assert record.audio_path is None
        assert record.metadata == {"context_captured": False}
        pipeline.history.insert.assert_called_once_with(record)

    def test_record_with_post_processing(self):
        from whispertray.pipeline import ResultPipeline

        pipeline = ResultPipeline(Mock(), Mock(), save_audio=False)
        record = pipeline.finish(make_session("email", output="Subject: Hi", context="clip"))

        assert record.output_final == "Subject: Hi"
        assert record.llm_provider == "ollama"
        assert record.llm_model == "llama3.2"
        assert record.metadata == {"context_captured": True}

    def test_persists_before_delivering(self):
        from whispertray.pipeline import ResultPipeline

        calls = Mock()
        pipeline = ResultPipeline(calls.history, calls.delivery, save_audio=False)
        pipeline.finish(make_session())

        assert [c[0] for c in calls.mock_calls] == ["history.insert", "delivery.copy_and_deliver"]
        calls.delivery.copy_and_deliver.assert_called_once_with("raw words", True)

    def test_saves_audio(self, tmp_path):
        from whispertray.pipeline import ResultPipeline

        pipeline = ResultPipeline(Mock(), Mock(), tmp_path / "audio")
        with patch("whispertray.pipeline.save_wav") as mock_save:
            record = pipeline.finish(make_session())

        expected = tmp_path / "audio" / "sess-1.wav"
        assert record.audio_path == str(expected)
        assert mock_save.call_args.args[1] == expected

    def test_audio_save_failure_is_logged(self, tmp_path, caplog):
        from whispertray.pipeline import ResultPipeline

        pipeline = ResultPipeline(Mock(), Mock(), tmp_path)
        with patch("whispertray.pipeline.save_wav", side_effect=OSError("read-only")):
            with caplog.at_level(logging.WARNING):
                record = pipeline.finish(make_session())

        assert record.audio_path is None
        assert "read-only" in caplog.text
        pipeline.history.insert.assert_called_once()

    def test_persistence_failure_still_delivers(self, caplog):
        from whispertray.errors import PersistenceFailed
        from whispertray.pipeline import ResultPipeline

        history = Mock()
        history.insert.side_effect = PersistenceFailed("database is locked")
        delivery = Mock()

        with caplog.at_level(logging.ERROR):
            ResultPipeline(history, delivery, save_audio=False).finish(make_session())

        delivery.copy_and_deliver.assert_called_once()
        assert "database is locked" in caplog.text

    def test_delivery_failure_is_logged(self, caplog):
        from whispertray.errors import DeliveryFailed
        from whispertray.pipeline import ResultPipeline

        delivery = Mock()
        delivery.copy_and_deliver.side_effect = DeliveryFailed("no clipboard")

        with caplog.at_level(logging.ERROR):
            record = ResultPipeline(Mock(), delivery, save_audio=False).finish(make_session())

        assert record.output_final == "raw words"
        assert "no clipboard" in caplog.text


class TestClipboardDelivery:

    def test_copy_only(self):
        from whispertray.output import ClipboardDelivery

        with patch("whispertray.output.copy_to_clipboard") as mock_copy, \
                patch("whispertray.output.send_paste_keystroke") as mock_paste:
            ClipboardDelivery().copy_and_deliver("text", auto_paste=False)

        mock_copy.assert_called_once_with("text")
        mock_paste.assert_not_called()

    def test_copy_and_paste(self):
        from whispertray.output import ClipboardDelivery

        with patch("whispertray.output.copy_to_clipboard") as mock_copy, \
                patch("whispertray.output.send_paste_keystroke") as mock_paste, \
                patch("whispertray.output.time.sleep"):
            ClipboardDelivery().copy_and_deliver("text", auto_paste=True)

        mock_copy.assert_called_once_with("text")
        mock_paste.assert_called_once()

    def test_empty_text_is_not_delivered(self):
        from whispertray.output import ClipboardDelivery

        with patch("whispertray.output.copy_to_clipboard") as mock_copy:
            ClipboardDelivery().copy_and_deliver("", auto_paste=True)
        mock_copy.assert_not_called()

    def test_clipboard_failure_raises_delivery_failed(self):
        import pyperclip
        from whispertray.errors import DeliveryFailed
        from whispertray.output import copy_to_clipboard

        with patch("pyperclip.copy", side_effect=pyperclip.PyperclipException("no backend")):
            with pytest.raises(DeliveryFailed, match="no backend"):
                copy_to_clipboard("text")

    def test_get_clipboard(self):
        import pyperclip
        from whispertray.output import get_clipboard

        with patch("pyperclip.paste", return_value="copied"):
            assert get_clipboard() == "copied"
        with patch("pyperclip.paste", return_value=""):
            assert get_clipboard() is None
        with patch("pyperclip.paste", side_effect=pyperclip.PyperclipException("no backend")):
            assert get_clipboard() is None
