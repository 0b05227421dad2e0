"""Regression tests for lazy import behavior."""

from __future__ import annotations

import importlib
import sys
import types

import pytest


def _clear_stt_modules(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop STT modules from sys.modules (restored after the test)."""
    monkeypatch.delitem(sys.modules, "streamscribe.core.stt.engine", raising=False)
    monkeypatch.delitem(sys.modules, "streamscribe.core.stt", raising=False)


def test_importing_stt_does_not_load_engine(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_stt_modules(monkeypatch)

    importlib.import_module("streamscribe.core.stt")

    assert "streamscribe.core.stt.engine" not in sys.modules


def test_lazy_stt_exports_resolve_engine(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_stt_modules(monkeypatch)

    fake_engine = types.ModuleType("streamscribe.core.stt.engine")

    class FakeSession:  # pragma: no cover - simple sentinel class
        pass

    def fake_load_session(config):  # pragma: no cover - sentinel
        return None

    fake_engine.FasterWhisperSession = FakeSession
    fake_engine.load_session = fake_load_session
    monkeypatch.setitem(sys.modules, "streamscribe.core.stt.engine", fake_engine)

    from streamscribe.core.stt import FasterWhisperSession, load_session

    assert FasterWhisperSession is FakeSession
    assert load_session is fake_load_session


def test_unknown_attribute_raises() -> None:
    import streamscribe
    import streamscribe.core

    with pytest.raises(AttributeError):
        streamscribe.does_not_exist
    with pytest.raises(AttributeError):
        streamscribe.core.does_not_exist


def test_package_exports_resolve() -> None:
    import streamscribe
    from streamscribe.config import TranscriptionConfig
    from streamscribe.core.transcriber import Transcriber, transcribe_stream

    assert streamscribe.TranscriptionConfig is TranscriptionConfig
    assert streamscribe.Transcriber is Transcriber
    assert streamscribe.transcribe_stream is transcribe_stream
    assert streamscribe.__version__
