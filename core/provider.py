"""
Image provider client. Sends a text prompt to the Gemini image model over
REST and returns raw image bytes plus token usage.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import requests

from core.errors import ErrorCategory, GenerationError
from core.prompts import construct_generation_prompt
from core.state import GenerationStats


logger = logging.getLogger(__name__)

GENERATION_MODEL_NAME = "gemini-2.5-flash-image"
API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT_SECONDS = 90

USER_MESSAGES = {
    ErrorCategory.INVALID_CREDENTIAL: "Check your Magic Key (API Key is invalid or expired).",
    ErrorCategory.PERMISSION_DENIED: "Magic Key doesn't have permission.",
    ErrorCategory.RATE_LIMITED: "The magic pencil is tired. Wait a few seconds!",
    ErrorCategory.SAFETY_REJECTED: "That idea is a bit too wild! Try a different animal.",
    ErrorCategory.NETWORK: "Could not connect to the magic cloud. Check your internet!",
    ErrorCategory.MISSING_KEY: "Missing Magic Key. Please add your Google AI Key in the settings.",
    ErrorCategory.EMPTY_RESPONSE: "No image was returned by the AI.",
}


@dataclass
class GenerationResult:
    image: bytes
    mime_type: str
    stats: GenerationStats


class ImageProvider(Protocol):
    def generate(self, subject: str, style: str, modifiers: Optional[str] = None) -> GenerationResult: ...


def categorize_error(message: str, status_code: Optional[int] = None) -> ErrorCategory:
    """Map a provider failure onto an ErrorCategory (status code first, then message text)."""
    msg = (message or "").lower()
    if status_code == 401 or "api key" in msg or "api_key" in msg:
        return ErrorCategory.INVALID_CREDENTIAL
    if status_code == 403 or "403" in msg or "permission" in msg:
        return ErrorCategory.PERMISSION_DENIED
    if status_code == 429 or "429" in msg or "resource_exhausted" in msg:
        return ErrorCategory.RATE_LIMITED
    if "safety" in msg or "blocked" in msg:
        return ErrorCategory.SAFETY_REJECTED
    if "fetch failed" in msg or "connection" in msg or "timed out" in msg:
        return ErrorCategory.NETWORK
    return ErrorCategory.UNKNOWN


def _error(message: str, status_code: Optional[int] = None) -> GenerationError:
    category = categorize_error(message, status_code)
    return GenerationError(USER_MESSAGES.get(category, message), category=category, status_code=status_code)


def clean_api_key(key: Optional[str]) -> Optional[str]:
    if not key:
        return None
    cleaned = key.replace('"', "").replace("'", "").strip()
    return cleaned or None


def parse_generation_response(payload: dict, model: str = GENERATION_MODEL_NAME) -> GenerationResult:
    """Pull the first inline image and usage counters out of a generateContent response."""
    feedback = payload.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        raise _error(f"Prompt blocked by safety filter: {feedback.get('blockReason')}")

    candidates = payload.get("candidates") or []
    if not candidates:
        raise GenerationError("The magic paintbrush failed to start. Try again!", category=ErrorCategory.EMPTY_RESPONSE)

    usage = payload.get("usageMetadata") or {}
    stats = GenerationStats(
        input_tokens=int(usage.get("promptTokenCount", 0) or 0),
        output_tokens=int(usage.get("candidatesTokenCount", 0) or 0),
        total_tokens=int(usage.get("totalTokenCount", 0) or 0),
        model=model,
    )

    first = candidates[0]
    if str(first.get("finishReason", "")).upper() in {"SAFETY", "PROHIBITED_CONTENT", "IMAGE_SAFETY"}:
        raise _error("Response blocked by safety filter")

    for part in (first.get("content") or {}).get("parts") or []:
        inline = part.get("inlineData") or part.get("inline_data")
        if not inline:
            continue
        try:
            data = base64.b64decode(inline.get("data", ""), validate=True)
        except (binascii.Error, ValueError) as e:
            raise GenerationError(f"Invalid image payload: {e}", category=ErrorCategory.EMPTY_RESPONSE) from e
        mime = inline.get("mimeType") or inline.get("mime_type") or "image/png"
        return GenerationResult(image=data, mime_type=mime, stats=stats)

    logger.error("Provider response had no image part: %s", json.dumps(first)[:500])
    raise GenerationError(USER_MESSAGES[ErrorCategory.EMPTY_RESPONSE], category=ErrorCategory.EMPTY_RESPONSE)


class GeminiImageProvider:
    def __init__(
        self,
        api_key: Optional[str],
        model: str = GENERATION_MODEL_NAME,
        api_base: str = API_BASE,
        timeout: int = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = clean_api_key(api_key)
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._http = session or requests.Session()

    def generate(self, subject: str, style: str = "cute", modifiers: Optional[str] = None) -> GenerationResult:
        if not self.api_key:
            logger.error("Image generation requested without an API key")
            raise GenerationError(USER_MESSAGES[ErrorCategory.MISSING_KEY], category=ErrorCategory.MISSING_KEY)

        prompt = construct_generation_prompt(subject, style, modifiers)
        url = f"{self.api_base}/models/{self.model}:generateContent"
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        logger.debug("Provider request model=%s style=%s modifiers=%r", self.model, style, modifiers)

        try:
            resp = self._http.post(
                url,
                json=body,
                headers={"x-goog-api-key": self.api_key},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            err_body = e.response.text[:500] if e.response is not None and e.response.text else ""
            logger.warning("Provider HTTP %s: %s", status, err_body)
            raise _error(f"{e} {err_body}", status) from e
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            logger.warning("Provider connection failed: %s", e)
            err = GenerationError(USER_MESSAGES[ErrorCategory.NETWORK], category=ErrorCategory.NETWORK)
            raise err from e

        try:
            payload = resp.json()
        except ValueError as e:
            raise GenerationError(f"Invalid JSON response: {e}", category=ErrorCategory.UNKNOWN) from e
        result = parse_generation_response(payload, self.model)
        logger.info(
            "Generated image %s bytes tokens=%s model=%s",
            len(result.image),
            result.stats.total_tokens,
            self.model,
        )
        return result
