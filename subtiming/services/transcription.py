"""Word timing generation with Whisper."""

import json
from pathlib import Path
from typing import List, Optional

from subtiming.config import WHISPER_MODEL
from subtiming.services.media import extract_audio
from subtiming.services.subtitles import WordTiming
from subtiming.services.timestamps import seconds_to_ms


def transcribe_words(
    media_path: Path, model_name: str = WHISPER_MODEL, language: Optional[str] = None
) -> List[WordTiming]:
    """Transcribe a media file and return word timings with their probabilities."""
    import whisper

    model = whisper.load_model(model_name)
    audio_path = extract_audio(media_path)
    try:
        result = model.transcribe(str(audio_path), fp16=False, word_timestamps=True, language=language)
    finally:
        audio_path.unlink(missing_ok=True)

    words: List[WordTiming] = []
    for segment in result.get("segments", []):
        for word in segment.get("words", []):
            word_text = str(word.get("word", "")).strip()
            if not word_text:
                continue
            probability = word.get("probability")
            words.append(
                WordTiming(
                    text=word_text,
                    start_ms=seconds_to_ms(word.get("start", segment["start"])),
                    stop_ms=seconds_to_ms(word.get("end", segment["end"])),
                    confidence=float(probability) if probability is not None else None,
                )
            )
    return words


def save_word_data(words: List[WordTiming], path: Path) -> None:
    """Write word timings as ``{"words": [...]}`` JSON."""
    payload = {"words": [word.to_dict() for word in words]}
    Path(path).write_text(json.dumps(payload, indent=2), encoding="utf-8")
