import base64
import binascii
import json
import logging
import time
from typing import Any, Dict, Optional

from fastapi import HTTPException
from openai import OpenAI
from supabase import Client

from app.config import settings
from app.config.learning_config import EVALUATION_LEVELS
from app.modules.ai import prompts
from app.modules.ai.schemas import FeedbackRequest, ImproveTranscriptionRequest, SimilarityRequest, SpeechRequest

logger = logging.getLogger(__name__)

FALLBACK_SUGGESTIONS = [
    "Pay attention to word stress and intonation",
    "Practice difficult sounds and word combinations",
    "Read at a natural pace",
]
NOTE_NO_AI = "Using basic similarity analysis - AI feedback not available"
NOTE_AI_FAILED = "AI analysis failed - using basic similarity check"

MIN_TRANSCRIPT_WORDS = 3
SHORT_RESPONSE_FEEDBACK = (
    "Your response is too short. Please introduce yourself with your name, "
    "where you're from, and what you like to do."
)
NOT_RECOGNIZED_ERROR = "Your speech was not recognized, please speak louder"

# Target length of an improved transcript; the accepted band is +/- IMPROVED_WORD_BAND
MIN_WORDS_BY_LEVEL = {"A1": 20, "A2": 20, "B1": 40, "B2": 40, "C1": 60, "C2": 60}
DEFAULT_MIN_WORDS = 20
IMPROVED_WORD_BAND = 20

DEFAULT_VOICE = "alloy"
SPEECH_UPLOADED_MESSAGE = "TTS audio generated and uploaded successfully"


class AIResponseError(Exception):
    """The model returned something we cannot use."""


def word_overlap_similarity(first: str, second: str) -> float:
    """Jaccard similarity of the lowercase word sets."""
    words_first = set(first.lower().split())
    words_second = set(second.lower().split())
    union = words_first | words_second
    if not union:
        return 0.0
    return len(words_first & words_second) / len(union)


def min_words_for_level(level: Optional[str]) -> int:
    return MIN_WORDS_BY_LEVEL.get(level, DEFAULT_MIN_WORDS)


def criteria_list(criteria: Optional[Dict[str, Any]]) -> str:
    """Comma separated names of the enabled criteria, or the default set."""
    if criteria:
        enabled = ", ".join(name for name, on in criteria.items() if on)
        if enabled:
            return enabled
    return prompts.DEFAULT_FEEDBACK_CRITERIA


def audio_extension(mime_type: Optional[str]) -> str:
    if not mime_type:
        return "m4a"
    mime = mime_type.lower().split(";")[0].strip()
    if "mp4" in mime or "m4a" in mime:
        return "m4a"
    if "webm" in mime:
        return "webm"
    if mime in ("audio/wav", "audio/wave", "audio/x-wav"):
        return "wav"
    if mime in ("audio/mp3", "audio/mpeg"):
        return "mp3"
    return "m4a"


def _json_completion(client: OpenAI, model: str, system: str, user: str, max_tokens: int) -> Dict[str, Any]:
    response = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        temperature=0.7,
        max_tokens=max_tokens,
        response_format={"type": "json_object"},
    )
    if not response.choices or not response.choices[0].message or not response.choices[0].message.content:
        raise AIResponseError("Empty response from model")
    try:
        parsed = json.loads(response.choices[0].message.content)
    except json.JSONDecodeError as e:
        raise AIResponseError(f"Model returned invalid JSON: {e}")
    if not isinstance(parsed, dict):
        raise AIResponseError("Model returned a non-object JSON value")
    return parsed


class SimilarityService:
    def __init__(self, client: Optional[OpenAI]):
        self.client = client

    def _fallback(self, target_text: str, user_text: str, threshold: float, note: str) -> Dict[str, Any]:
        similarity = word_overlap_similarity(target_text, user_text)
        passed = similarity >= threshold
        if passed:
            feedback = "Good effort! Your reading shows understanding of the text."
        else:
            feedback = f"Try to match the target text more closely. Similarity: {similarity * 100:.1f}%"
        return {
            "similarity": similarity,
            "passed": passed,
            "feedback": feedback,
            "suggestions": list(FALLBACK_SUGGESTIONS),
            "note": note,
        }

    def compare(self, data: SimilarityRequest) -> Dict[str, Any]:
        target_text = (data.target_text or "").strip()
        user_text = (data.user_text or "").strip()
        if not target_text or not user_text:
            raise HTTPException(status_code=400, detail="Missing target text or user text")
        threshold = data.threshold if data.threshold is not None else 0.7

        if self.client is None:
            logger.warning("OpenRouter API key not configured, using word overlap similarity")
            return self._fallback(target_text, user_text, threshold, NOTE_NO_AI)

        try:
            analysis = _json_completion(
                self.client,
                settings.openrouter_model,
                prompts.SIMILARITY_SYSTEM_PROMPT,
                prompts.SIMILARITY_USER_PROMPT.format(
                    target_text=target_text, user_text=user_text, threshold=threshold
                ),
                max_tokens=600,
            )
            similarity = analysis.get("similarity")
            if (
                isinstance(similarity, bool)
                or not isinstance(similarity, (int, float))
                or not isinstance(analysis.get("passed"), bool)
                or not isinstance(analysis.get("feedback"), str)
                or not isinstance(analysis.get("suggestions"), list)
            ):
                raise AIResponseError("Model response missing required fields")
            analysis["similarity"] = max(0.0, min(1.0, float(similarity)))
            return analysis
        except Exception as e:
            logger.error(f"AI similarity analysis failed: {e}")
            return self._fallback(target_text, user_text, threshold, NOTE_AI_FAILED)


class FeedbackService:
    def __init__(self, client: Optional[OpenAI]):
        self.client = client

    def transcribe(self, audio: bytes, mime_type: Optional[str]) -> str:
        extension = audio_extension(mime_type)
        result = self.client.audio.transcriptions.create(
            model=settings.openai_transcription_model,
            file=(f"audio.{extension}", audio, mime_type or "audio/webm"),
            language="en",
            response_format="json",
            temperature=0,
        )
        return (result.text or "").strip()

    def analyze(self, data: FeedbackRequest) -> Dict[str, Any]:
        if not data.prompt:
            raise HTTPException(status_code=400, detail="Missing prompt")
        if not data.audio_blob:
            raise HTTPException(status_code=400, detail="Missing audio_blob")
        if self.client is None:
            logger.error("OpenAI API key is not configured")
            raise HTTPException(status_code=500, detail="AI feedback service is not configured")
        try:
            audio = base64.b64decode(data.audio_blob, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=400, detail="Invalid audio_blob encoding")

        try:
            transcript = self.transcribe(audio, data.audio_mime_type)
        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            raise HTTPException(status_code=500, detail="Transcription failed")

        if not transcript:
            return {"success": False, "error": NOT_RECOGNIZED_ERROR, "transcript": ""}
        if len(transcript.split()) < MIN_TRANSCRIPT_WORDS:
            return {
                "success": True,
                "transcript": transcript,
                "overall_score": 10,
                "is_off_topic": True,
                "feedback": SHORT_RESPONSE_FEEDBACK,
                "grammar_corrections": [],
                "vocabulary_corrections": [],
            }

        criteria = criteria_list(data.criteria)
        try:
            feedback = _json_completion(
                self.client,
                settings.openai_feedback_model,
                prompts.FEEDBACK_SYSTEM_PROMPT,
                prompts.FEEDBACK_USER_PROMPT.format(prompt=data.prompt, criteria=criteria, transcript=transcript),
                max_tokens=800,
            )
            score = feedback.get("overall_score")
            if isinstance(score, bool) or not isinstance(score, (int, float)) or not isinstance(feedback.get("feedback"), str):
                raise AIResponseError("Model response missing required fields")
        except Exception as e:
            logger.error(f"AI feedback analysis failed: {e}")
            raise HTTPException(status_code=500, detail="AI feedback service unavailable")

        for field in ("grammar_corrections", "vocabulary_corrections"):
            if field in feedback and not isinstance(feedback[field], list):
                logger.warning(f"AI response field {field} is not a list")
                feedback[field] = []
        if feedback.get("assessed_level") and feedback["assessed_level"] not in EVALUATION_LEVELS:
            logger.warning(f"Dropping invalid assessed_level from AI: {feedback['assessed_level']}")
            feedback.pop("assessed_level")

        return {"success": True, "transcript": transcript, **feedback}

    def improve(self, data: ImproveTranscriptionRequest) -> Dict[str, Any]:
        """Rewrite a transcript as a model answer at the learner's level."""
        text = (data.text or "").strip()
        level = (data.level or "").strip()
        if not text or not level:
            raise HTTPException(status_code=400, detail="Missing text or level")
        if self.client is None:
            logger.error("OpenAI API key is not configured")
            raise HTTPException(status_code=500, detail="AI feedback service is not configured")

        target_words = min_words_for_level(level)
        try:
            response = self.client.chat.completions.create(
                model=settings.openai_feedback_model,
                messages=[
                    {"role": "system", "content": prompts.IMPROVE_SYSTEM_PROMPT},
                    {"role": "user", "content": prompts.IMPROVE_USER_PROMPT.format(
                        level=level,
                        prompt=data.prompt or "General speaking practice",
                        criteria=criteria_list(data.criteria),
                        target_words=target_words,
                        min_words=max(0, target_words - IMPROVED_WORD_BAND),
                        max_words=target_words + IMPROVED_WORD_BAND,
                        text=text,
                    )},
                ],
                temperature=0.3,
                max_tokens=1000,
            )
            content = response.choices[0].message.content if response.choices else None
            if not content or not content.strip():
                raise AIResponseError("Empty response from model")
        except Exception as e:
            logger.error(f"Transcription improvement failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to improve transcription")

        return {"success": True, "improved_text": content.strip()}


class SpeechService:
    def __init__(self, client: Optional[OpenAI], supabase: Client):
        self.client = client
        self.supabase = supabase

    def generate(self, data: SpeechRequest) -> Dict[str, Any]:
        """Synthesize mp3 speech and store it in the audio bucket."""
        text = (data.text or "").strip()
        if not text:
            raise HTTPException(status_code=400, detail="Text is required")
        if self.client is None:
            logger.error("OpenAI API key is not configured")
            raise HTTPException(status_code=500, detail="Text-to-speech service is not configured")

        try:
            speech = self.client.audio.speech.create(
                model=settings.openai_tts_model,
                voice=data.voice or DEFAULT_VOICE,
                input=text,
                response_format="mp3",
            )
            audio = speech.content
        except Exception as e:
            logger.error(f"TTS generation failed: {e}")
            raise HTTPException(status_code=500, detail="TTS generation failed")

        file_name = f"tts-{int(time.time() * 1000)}.mp3"
        bucket = self.supabase.storage.from_(settings.tts_storage_bucket)
        try:
            bucket.upload(
                file_name,
                audio,
                file_options={"content-type": "audio/mpeg", "cache-control": "3600", "upsert": "false"}
            )
            public_url = bucket.get_public_url(file_name)
        except Exception as e:
            logger.error(f"Supabase Storage upload failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to upload generated audio")

        logger.info(f"Uploaded generated speech to {settings.tts_storage_bucket}/{file_name}")
        return {
            "success": True,
            "message": SPEECH_UPLOADED_MESSAGE,
            "file_path": file_name,
            "public_url": public_url,
            "file_name": file_name,
        }
