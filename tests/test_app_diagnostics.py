from __future__ import annotations

from saralcap.app.diagnostics import error_caption_text, hint_for_exception, summarize_exception
from saralcap.nlp.transform.base import TransformExhausted


def test_summarize_exception_picks_last_meaningful_line() -> None:
    detail = (
        "Traceback (most recent call last):\n"
        '  File "x.py", line 1, in <module>\n'
        "    boom()\n"
        "RuntimeError: failed to start session"
    )
    assert summarize_exception(detail) == "RuntimeError: failed to start session"


def test_summarize_exception_truncates_long_line() -> None:
    detail = "ValueError: " + ("x" * 500)
    out = summarize_exception(detail, max_len=60)
    assert out.startswith("ValueError: ")
    assert out.endswith("...")
    assert len(out) <= 60


def test_error_caption_text_uses_last_error_and_truncates() -> None:
    exc = TransformExhausted(ConnectionError("x" * 80), attempts=3)
    assert error_caption_text(exc) == f"Error: Could not process or translate. ({'x' * 50}...)"
    assert error_caption_text(RuntimeError(), max_len=5) == "Error: Could not process or translate. (Runti...)"


def test_hint_for_exception_api_key() -> None:
    hint = hint_for_exception("ValueError: GEMINI_API_KEY is not set")
    assert "Gemini API key" in hint


def test_hint_for_exception_default() -> None:
    hint = hint_for_exception("RuntimeError: unknown")
    assert hint == "Check logs for full traceback."
