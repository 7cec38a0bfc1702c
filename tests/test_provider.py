from __future__ import annotations

import base64
import unittest
from unittest import mock

import requests

from core.errors import ErrorCategory, GenerationError
from core.prompts import STYLE_PROMPTS, construct_generation_prompt, subject_prompt
from core.provider import (
    GeminiImageProvider,
    categorize_error,
    clean_api_key,
    parse_generation_response,
)


class StubRandom:
    def __init__(self, value: float) -> None:
        self._value = value

    def random(self) -> float:
        return self._value

    def choice(self, seq):
        return seq[0]


def _payload(data: bytes = b"\x89PNG fake") -> dict:
    return {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "here you go"},
                        {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(data).decode("ascii")}},
                    ]
                },
                "finishReason": "STOP",
            }
        ],
        "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 1290, "totalTokenCount": 1302},
    }


def _response(status: int = 200, payload=None, text: str = "") -> mock.Mock:
    resp = mock.Mock()
    resp.status_code = status
    resp.text = text
    resp.json.return_value = payload if payload is not None else {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} Error", response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


class PromptTests(unittest.TestCase):
    def test_prompt_includes_style_subject_and_adjustments(self) -> None:
        text = construct_generation_prompt("A lion", "pixel", "active pose")
        lines = text.split("\n")
        self.assertEqual(lines[0], STYLE_PROMPTS["pixel"])
        self.assertEqual(lines[1], "Subject: A lion.")
        self.assertEqual(lines[2], "ADJUSTMENTS: active pose.")
        self.assertIn("Do NOT use a white background", text)

    def test_unknown_style_falls_back_to_cute(self) -> None:
        text = construct_generation_prompt("A cat", "watercolor")
        self.assertTrue(text.startswith(STYLE_PROMPTS["cute"]))
        self.assertNotIn("ADJUSTMENTS", text)

    def test_subject_for_character(self) -> None:
        self.assertEqual(subject_prompt("animals", "Lion", "lion", rng=StubRandom(0.9)), "A lion")
        self.assertEqual(
            subject_prompt("space", "Astronaut", "astronaut spaceman", rng=StubRandom(0.9)),
            "An astronaut spaceman",
        )

    def test_subject_with_companion(self) -> None:
        text = subject_prompt("vehicles", "Train", "steam train", rng=StubRandom(0.9))
        self.assertEqual(text, "A cute puppy riding in a steam train")
        self.assertEqual(
            subject_prompt("vehicles", "Train", "steam train", allow_extras=False, rng=StubRandom(0.9)),
            "A steam train",
        )


class CategorizeErrorTests(unittest.TestCase):
    def test_categories(self) -> None:
        self.assertEqual(categorize_error("API key not valid"), ErrorCategory.INVALID_CREDENTIAL)
        self.assertEqual(categorize_error("", 403), ErrorCategory.PERMISSION_DENIED)
        self.assertEqual(categorize_error("RESOURCE_EXHAUSTED"), ErrorCategory.RATE_LIMITED)
        self.assertEqual(categorize_error("", 429), ErrorCategory.RATE_LIMITED)
        self.assertEqual(categorize_error("Blocked by SAFETY"), ErrorCategory.SAFETY_REJECTED)
        self.assertEqual(categorize_error("connection reset"), ErrorCategory.NETWORK)
        self.assertEqual(categorize_error("something odd"), ErrorCategory.UNKNOWN)

    def test_clean_api_key(self) -> None:
        self.assertEqual(clean_api_key('  "abc123" '), "abc123")
        self.assertIsNone(clean_api_key("''"))
        self.assertIsNone(clean_api_key(None))


class ParseResponseTests(unittest.TestCase):
    def test_inline_image_and_usage(self) -> None:
        result = parse_generation_response(_payload(b"img"))
        self.assertEqual(result.image, b"img")
        self.assertEqual(result.mime_type, "image/png")
        self.assertEqual(result.stats.input_tokens, 12)
        self.assertEqual(result.stats.total_tokens, 1302)

    def test_no_candidates(self) -> None:
        with self.assertRaises(GenerationError) as ctx:
            parse_generation_response({"candidates": []})
        self.assertEqual(ctx.exception.category, ErrorCategory.EMPTY_RESPONSE)

    def test_no_image_part(self) -> None:
        payload = {"candidates": [{"content": {"parts": [{"text": "sorry"}]}}]}
        with self.assertRaises(GenerationError) as ctx:
            parse_generation_response(payload)
        self.assertEqual(ctx.exception.category, ErrorCategory.EMPTY_RESPONSE)

    def test_blocked_prompt(self) -> None:
        with self.assertRaises(GenerationError) as ctx:
            parse_generation_response({"promptFeedback": {"blockReason": "SAFETY"}})
        self.assertEqual(ctx.exception.category, ErrorCategory.SAFETY_REJECTED)


class GeminiProviderTests(unittest.TestCase):
    def test_missing_key(self) -> None:
        provider = GeminiImageProvider(None, session=mock.Mock())
        with self.assertRaises(GenerationError) as ctx:
            provider.generate("A cat")
        self.assertEqual(ctx.exception.category, ErrorCategory.MISSING_KEY)

    def test_successful_request(self) -> None:
        http = mock.Mock()
        http.post.return_value = _response(payload=_payload(b"png"))
        provider = GeminiImageProvider("key-1", session=http, timeout=5)

        result = provider.generate("A cat", "anime", "active pose")

        self.assertEqual(result.image, b"png")
        self.assertEqual(result.stats.model, "gemini-2.5-flash-image")
        url = http.post.call_args.args[0]
        kwargs = http.post.call_args.kwargs
        self.assertTrue(url.endswith("/models/gemini-2.5-flash-image:generateContent"))
        self.assertEqual(kwargs["headers"], {"x-goog-api-key": "key-1"})
        self.assertEqual(kwargs["timeout"], 5)
        prompt = kwargs["json"]["contents"][0]["parts"][0]["text"]
        self.assertIn("Subject: A cat.", prompt)
        self.assertIn("ADJUSTMENTS: active pose.", prompt)

    def test_http_errors_are_categorized(self) -> None:
        http = mock.Mock()
        http.post.return_value = _response(status=429, text="RESOURCE_EXHAUSTED")
        provider = GeminiImageProvider("key-1", session=http)
        with self.assertRaises(GenerationError) as ctx:
            provider.generate("A cat")
        self.assertEqual(ctx.exception.category, ErrorCategory.RATE_LIMITED)
        self.assertEqual(ctx.exception.status_code, 429)

    def test_connection_error(self) -> None:
        http = mock.Mock()
        http.post.side_effect = requests.exceptions.ConnectionError("no route")
        provider = GeminiImageProvider("key-1", session=http)
        with self.assertRaises(GenerationError) as ctx:
            provider.generate("A cat")
        self.assertEqual(ctx.exception.category, ErrorCategory.NETWORK)


if __name__ == "__main__":
    unittest.main()
