from __future__ import annotations

from typing import Any

from saralcap.asr.source_base import SpeechSource, SpeechUnsupportedError


def get_speech_source(name: str, args: Any) -> SpeechSource:
    name = (name or "").lower().strip()

    if name == "replay":
        from saralcap.asr.replay import ReplaySpeechSource

        if not args.replay_path:
            raise SpeechUnsupportedError("replay source needs --replay-path")
        try:
            return ReplaySpeechSource.from_file(
                args.replay_path,
                pause_sec=float(args.replay_pause_sec),
                silence_timeout_sec=(
                    None if args.silence_timeout_sec is None else float(args.silence_timeout_sec)
                ),
            )
        except OSError as e:
            raise SpeechUnsupportedError(f"cannot read replay script: {e}") from e
    if name == "whisper":
        from saralcap.asr.whisper_mic import WhisperMicSpeechSource

        return WhisperMicSpeechSource(
            model_size=str(args.whisper_model),
            sample_rate=int(args.sr),
            chunk_sec=float(args.chunk_sec),
            device=args.device,
            rms_threshold=float(args.rms_th),
            silence_chunks=int(args.silence_chunks),
            idle_timeout_sec=None if args.idle_timeout_sec is None else float(args.idle_timeout_sec),
        )

    raise SpeechUnsupportedError(f"Unknown speech source: {name}")
