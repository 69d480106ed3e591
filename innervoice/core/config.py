from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


class GeminiConfig(BaseModel):
    """Connection settings for the Gemini ``generateContent`` REST API."""

    api_key: str = ""
    model: str = "gemini-2.0-flash"
    endpoint: str = GEMINI_ENDPOINT
    timeout: float = 60.0
    temperature: float | None = None

    @property
    def url(self) -> str:
        return self.endpoint.format(model=self.model)


class PromptConfig(BaseModel):
    """Persona prompt assembly switches."""

    persona_name: str = "Rex"
    multi_pass: bool = False
    enforce_guidelines: bool = False
    content_keep: int = 11
    memory_keep: int = 11


def load_gemini_config(env_file: str | Path | None = None) -> GeminiConfig:
    """Build ``GeminiConfig`` from the environment, loading ``.env`` first.

    Variables already set in the process environment take precedence.
    """
    load_dotenv(env_file)
    overrides: dict[str, object] = {"api_key": os.getenv("GEMINI_API_KEY", "")}
    if model := os.getenv("INNERVOICE_GEMINI_MODEL"):
        overrides["model"] = model
    if timeout := os.getenv("INNERVOICE_GEMINI_TIMEOUT"):
        overrides["timeout"] = float(timeout)
    return GeminiConfig(**overrides)
