"""
Pydantic schemas for the HTTP side-channel and the translation frame.
"""

from __future__ import annotations

import base64
import binascii
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SpeechToTextRequest(BaseModel):
    audio: str = Field(..., description="Base64-encoded audio clip")
    language_code: str = Field(default="en-US", alias="languageCode")
    encoding: str = "WEBM_OPUS"
    sample_rate_hertz: Optional[int] = Field(default=None, alias="sampleRateHertz", gt=0)
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("audio")
    @classmethod
    def _check_base64(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("audio is required")
        try:
            base64.b64decode(stripped, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("audio must be base64 encoded") from None
        return stripped


class SpeechToTextResponse(BaseModel):
    transcript: str = ""
    language_code: Optional[str] = Field(default=None, alias="languageCode")
    model_config = ConfigDict(populate_by_name=True)


class TranslateRequest(BaseModel):
    text: str = Field(..., min_length=1)
    target_language: str = Field(..., alias="targetLanguage", min_length=1)
    source_language: Optional[str] = Field(default=None, alias="sourceLanguage")
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("text")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be blank")
        return value


class TranslateResponse(BaseModel):
    translated_text: str = Field(alias="translatedText")
    source_language: Optional[str] = Field(default=None, alias="sourceLanguage")
    target_language: str = Field(alias="targetLanguage")
    detected_language: Optional[str] = Field(default=None, alias="detectedLanguage")
    model_config = ConfigDict(populate_by_name=True)


class TranslationMessage(TranslateResponse):
    """The ``translation`` frame relayed between call participants."""

    type: Literal["translation"] = "translation"
