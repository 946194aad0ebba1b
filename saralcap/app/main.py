from __future__ import annotations

import asyncio
import traceback

from saralcap.app.config import resolve_args
from saralcap.app.diagnostics import hint_for_exception, summarize_exception
from saralcap.app.logging_setup import setup_app_logger
from saralcap.app.runtime import run_session
from saralcap.asr.source_base import SpeechUnsupportedError
from saralcap.ui.sink import ConsoleCaptionSink


def main(argv: list[str] | None = None) -> int:
    args = resolve_args(argv)
    logger, _log_dir, log_path = setup_app_logger(
        debug=bool(args.debug),
        context={"speech": args.speech, "transform": args.transform},
    )
    logger.info("app_start", extra={"config_path": str(getattr(args, "config", "")), "argv": argv or []})

    if args.list_devices:
        from saralcap.asr.whisper_mic import WhisperMicSpeechSource

        try:
            print(WhisperMicSpeechSource.list_devices())
        except SpeechUnsupportedError as e:
            print(e)
            return 2
        return 0

    sink = ConsoleCaptionSink(show_status=bool(args.print_status))
    print(f"SaralCap: captions in {args.target_language}. Press Ctrl+C to stop.")
    try:
        code = asyncio.run(run_session(args, sink))
    except KeyboardInterrupt:
        logger.info("app_keyboard_interrupt")
        print("\nStopped.")
        code = 0
    except Exception:
        detail = traceback.format_exc()
        logger.exception("app_crash")
        summary = summarize_exception(detail)
        print(f"SaralCap stopped: {summary}")
        print(hint_for_exception(summary))
        code = 1
    print(f"Logs: {log_path}")
    logger.info("app_quit", extra={"exit_code": code})
    return code


if __name__ == "__main__":
    raise SystemExit(main())
