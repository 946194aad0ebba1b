from __future__ import annotations

import argparse
import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from saralcap.nlp.transform.gemini import DEFAULT_BASE_URL, DEFAULT_MODEL

DEFAULTS: dict[str, Any] = {
    "target_language": "Hindi",
    "transform": "gemini",
    "gemini_model": DEFAULT_MODEL,
    "gemini_base_url": DEFAULT_BASE_URL,
    "request_timeout_sec": 15.0,
    "max_retries": 3,
    "retry_base_ms": 1000.0,
    "retry_jitter_ms": 1000.0,
    "speech": "whisper",
    "replay_path": None,
    "replay_pause_sec": 0.8,
    "silence_timeout_sec": None,
    "whisper_model": "tiny",
    "device": None,
    "sr": 16000,
    "chunk_sec": 0.5,
    "rms_th": 250.0,
    "silence_chunks": 2,
    "idle_timeout_sec": 8.0,
    "max_auto_restarts": None,
    "error_preview_chars": 50,
    "print_status": True,
    "debug": False,
}
CONFIG_KEYS: tuple[str, ...] = tuple(DEFAULTS.keys())


@dataclass(frozen=True)
class AppPaths:
    config_dir: Path
    config_path: Path


def app_paths() -> AppPaths:
    config_dir = Path(user_config_dir("SaralCap", "SaralCap"))
    return AppPaths(config_dir=config_dir, config_path=config_dir / "config.json")


def _load_json_dict(path: Path) -> dict[str, Any]:
    # Accept UTF-8 with or without BOM for Windows-edited config files.
    with path.open("r", encoding="utf-8-sig") as f:
        loaded = json.load(f)
    if not isinstance(loaded, dict):
        raise ValueError(f"config must be a JSON object: {path}")
    return loaded


def _write_json_dict(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write("\n")


def _known_only(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: payload[key] for key in CONFIG_KEYS if key in payload}


def load_default_config() -> dict[str, Any]:
    return copy.deepcopy(DEFAULTS)


def ensure_user_config_exists(defaults: dict[str, Any] | None = None) -> Path:
    paths = app_paths()
    if paths.config_path.exists():
        return paths.config_path
    _write_json_dict(paths.config_path, defaults or load_default_config())
    return paths.config_path


def load_user_config(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    defaults = load_default_config()
    if config_path:
        chosen = Path(config_path)
        if not chosen.exists():
            raise SystemExit(f"Config file not found: {chosen}")
    else:
        chosen = ensure_user_config_exists(defaults)
    merged = dict(defaults)
    merged.update(_known_only(_load_json_dict(chosen)))
    return merged, chosen


def save_user_config(values: dict[str, Any], config_path: str | None = None) -> Path:
    if config_path:
        path = Path(config_path)
    else:
        path = ensure_user_config_exists(load_default_config())
    existing = _known_only(_load_json_dict(path)) if path.exists() else {}
    merged = load_default_config()
    merged.update(existing)
    merged.update(_known_only(values))
    _write_json_dict(path, merged)
    return path


def resolve_defaults(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    return load_user_config(config_path=config_path)


def _optional_float(value: str) -> float | None:
    if value.lower() in ("", "none", "off"):
        return None
    return float(value)


def _optional_int(value: str) -> int | None:
    if value.lower() in ("", "none", "off"):
        return None
    return int(value)


def parser_with_defaults(defaults: dict[str, Any]) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="saralcap", description="Live simplified + translated captions")
    p.add_argument("--config", default=None, help="JSON config path (CLI flags override config)")
    p.add_argument("--list-devices", action="store_true", help="print audio devices and exit")
    p.add_argument(
        "--target-language",
        "--lang",
        dest="target_language",
        default=defaults["target_language"],
        help="caption language, e.g. Hindi, Tamil, Bengali",
    )
    p.add_argument(
        "--transform",
        default=defaults["transform"],
        choices=["gemini", "stub"],
        help="simplification/translation backend",
    )
    p.add_argument("--gemini-model", default=defaults["gemini_model"], help="Gemini model id")
    p.add_argument("--gemini-base-url", default=defaults["gemini_base_url"], help="Gemini API base URL")
    p.add_argument(
        "--request-timeout-sec",
        type=float,
        default=defaults["request_timeout_sec"],
        help="per-call HTTP timeout",
    )
    p.add_argument("--max-retries", type=int, default=defaults["max_retries"], help="transform attempts per caption")
    p.add_argument("--retry-base-ms", type=float, default=defaults["retry_base_ms"], help="backoff base delay")
    p.add_argument("--retry-jitter-ms", type=float, default=defaults["retry_jitter_ms"], help="backoff jitter bound")
    p.add_argument(
        "--speech",
        default=defaults["speech"],
        choices=["whisper", "replay"],
        help="speech source: live mic (whisper) or a transcript script (replay)",
    )
    p.add_argument("--replay-path", default=defaults["replay_path"], help="transcript script for --speech replay")
    p.add_argument(
        "--replay-pause-sec",
        type=float,
        default=defaults["replay_pause_sec"],
        help="pause after each replayed line",
    )
    p.add_argument(
        "--silence-timeout-sec",
        type=_optional_float,
        default=defaults["silence_timeout_sec"],
        help="replay: end the engine after this much scripted silence (none = never)",
    )
    p.add_argument("--whisper-model", default=defaults["whisper_model"], help="faster-whisper model size")
    p.add_argument("--device", type=_optional_int, default=defaults["device"], help="sounddevice input device id")
    p.add_argument("--sr", type=int, default=defaults["sr"], help="sample rate (Hz)")
    p.add_argument("--chunk-sec", type=float, default=defaults["chunk_sec"], help="mic chunk size in seconds")
    p.add_argument("--rms-th", type=float, default=defaults["rms_th"], help="RMS threshold for speech VAD")
    p.add_argument(
        "--silence-chunks",
        type=int,
        default=defaults["silence_chunks"],
        help="finalize an utterance after this many non-speech chunks",
    )
    p.add_argument(
        "--idle-timeout-sec",
        type=_optional_float,
        default=defaults["idle_timeout_sec"],
        help="mic: engine ends after this long without speech (none = never)",
    )
    p.add_argument(
        "--max-auto-restarts",
        type=_optional_int,
        default=defaults["max_auto_restarts"],
        help="cap on automatic engine restarts (none = unlimited)",
    )
    p.add_argument(
        "--error-preview-chars",
        type=int,
        default=defaults["error_preview_chars"],
        help="error text kept in error captions",
    )
    p.add_argument(
        "--print-status",
        action=argparse.BooleanOptionalAction,
        default=defaults["print_status"],
        help="print status messages to the console",
    )
    p.add_argument("--debug", action="store_true", help="debug logging")
    return p


def resolve_args(argv: list[str] | None = None) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    pre_args, _ = pre.parse_known_args(argv)
    defaults, _ = resolve_defaults(config_path=pre_args.config)
    parser = parser_with_defaults(defaults)
    args = parser.parse_args(argv)
    if defaults.get("debug"):
        args.debug = True
    return args
