from __future__ import annotations

from saralcap.nlp.transform.base import TransformExhausted


def summarize_exception(detail: str, *, max_len: int = 220) -> str:
    text = str(detail or "").strip()
    if not text:
        return "Unknown runtime error."
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    if not lines:
        return "Unknown runtime error."
    for ln in reversed(lines):
        if ln.startswith(("File ", "^", "Traceback ")):
            continue
        out = ln
        break
    else:
        out = lines[-1]
    if len(out) > max_len:
        return out[: max_len - 3].rstrip() + "..."
    return out


def error_message(exc: BaseException) -> str:
    if isinstance(exc, TransformExhausted):
        exc = exc.last_error
    return str(exc) or type(exc).__name__


def error_caption_text(exc: BaseException, *, max_len: int = 50) -> str:
    return f"Error: Could not process or translate. ({error_message(exc)[:max_len]}...)"


def hint_for_exception(summary: str) -> str:
    s = str(summary or "").lower()
    if "gemini_api_key" in s or "api key not valid" in s or "http 403" in s:
        return "The Gemini API key is missing or invalid. Export GEMINI_API_KEY and retry."
    if "http 429" in s or "quota" in s:
        return "The transform service is rate limiting requests. Wait a minute or lower the speaking rate."
    if "no module named" in s or "faster-whisper" in s:
        return "A required package is missing in this virtualenv. Reinstall dependencies and retry."
    if "config file not found" in s:
        return "Configured JSON file is missing. Update the config path or restore the file."
    if "audio-capture" in s or ("sounddevice" in s and "failed" in s):
        return "Microphone init failed. Check input device selection and app mic permissions."
    return "Check logs for full traceback."
