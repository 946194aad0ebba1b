from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from saralcap.app.bootstrap import IdentityBootstrap
from saralcap.asr.factory import get_speech_source
from saralcap.asr.source_base import SpeechSource
from saralcap.nlp.transform.base import TransformService
from saralcap.nlp.transform.factory import get_transform_service


@dataclass(frozen=True)
class CaptionServices:
    source: SpeechSource
    transform: TransformService
    bootstrap: IdentityBootstrap


def build_caption_services(args: Any) -> CaptionServices:
    transform = get_transform_service(
        str(args.transform),
        model=str(args.gemini_model),
        base_url=str(args.gemini_base_url),
        timeout=float(args.request_timeout_sec),
    )
    source = get_speech_source(str(args.speech), args)
    bootstrap = IdentityBootstrap(
        os.getenv("SARALCAP_FIREBASE_API_KEY"),
        custom_token=os.getenv("SARALCAP_FIREBASE_CUSTOM_TOKEN"),
    )
    return CaptionServices(source=source, transform=transform, bootstrap=bootstrap)
