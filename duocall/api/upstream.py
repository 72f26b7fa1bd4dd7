"""
Proxies to the third-party speech and translation REST APIs.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import ServerConfig
from .schemas import SpeechToTextRequest, SpeechToTextResponse, TranslateRequest, TranslateResponse

LOG = logging.getLogger(__name__)

USER_AGENT = "duocall/1.0"


class UpstreamError(RuntimeError):
    """Raised when the upstream API cannot serve a request."""

    status_code = 502


class MissingCredentials(UpstreamError):
    """Raised when no API key is configured."""

    status_code = 503


class SpeechServices:
    """
    Stateless request/response wrapper around Google Cloud Speech-to-Text and
    Translation v2.

    ``transport`` lets callers substitute the network layer, e.g. with
    :class:`httpx.MockTransport`.
    """

    def __init__(self, config: ServerConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.config = config
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self.config.upstream_timeout, connect=10.0)
        return httpx.AsyncClient(
            timeout=timeout,
            transport=self._transport,
            headers={"User-Agent": USER_AGENT},
        )

    def _api_key(self) -> str:
        key = self.config.google_api_key
        if not key:
            raise MissingCredentials("speech services are not configured")
        return key

    async def _post(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        params = {"key": self._api_key()}
        async with self._client() as client:
            try:
                response = await client.post(url, params=params, json=body)
            except httpx.HTTPError as exc:
                raise UpstreamError(f"Upstream request failed: {exc}") from exc

        if response.status_code >= 400:
            LOG.warning("Upstream %s returned %s: %s", url, response.status_code, response.text[:200])
            raise UpstreamError(f"Upstream returned {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError("Upstream returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise UpstreamError("Upstream returned an unexpected payload")
        return payload

    async def transcribe(self, request: SpeechToTextRequest) -> SpeechToTextResponse:
        recognition_config: Dict[str, Any] = {
            "encoding": request.encoding,
            "languageCode": request.language_code,
            "enableAutomaticPunctuation": True,
        }
        if request.sample_rate_hertz is not None:
            recognition_config["sampleRateHertz"] = request.sample_rate_hertz

        payload = await self._post(
            self.config.speech_endpoint,
            {"config": recognition_config, "audio": {"content": request.audio}},
        )

        transcripts = []
        language_code = None
        for result in payload.get("results") or []:
            alternatives = result.get("alternatives") or []
            if alternatives:
                transcripts.append(str(alternatives[0].get("transcript") or "").strip())
            language_code = language_code or result.get("languageCode")

        return SpeechToTextResponse(
            transcript=" ".join(part for part in transcripts if part),
            language_code=language_code or request.language_code,
        )

    async def translate(self, request: TranslateRequest) -> TranslateResponse:
        body: Dict[str, Any] = {
            "q": request.text,
            "target": request.target_language,
            "format": "text",
        }
        if request.source_language:
            body["source"] = request.source_language

        payload = await self._post(self.config.translate_endpoint, body)
        translations = (payload.get("data") or {}).get("translations") or []
        if not translations:
            raise UpstreamError("Upstream returned no translations")

        first = translations[0]
        detected = first.get("detectedSourceLanguage")
        return TranslateResponse(
            translated_text=str(first.get("translatedText") or ""),
            source_language=request.source_language or detected,
            target_language=request.target_language,
            detected_language=detected,
        )


__all__ = ["MissingCredentials", "SpeechServices", "UpstreamError"]
