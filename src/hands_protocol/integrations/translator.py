"""Natural-language to directive translation through an LLM endpoint.

The model output is untrusted: it is only ever parsed into a
``TranslatedDirective`` and never executed directly.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Protocol

import requests

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```[A-Za-z]*")

PROMPT = (
    "Convert the request below into a Hands Protocol directive. Reply with one JSON "
    "object only, no markdown. Keys: \"description\" (string), \"workingDirectory\" "
    "(string or null), \"templates\" (list of strings), \"warnings\" (list of strings), "
    "\"steps\" (list of objects with \"type\" = \"command\" or \"write\", \"action\" = the "
    "shell command or a short summary, and for writes \"path\" and \"content\").\n"
    "Request: {text}"
)


class TranslationError(Exception):
    """Raised when the translator cannot produce a usable directive."""


@dataclass
class TranslatedDirective:
    description: str = ""
    steps: list = field(default_factory=list)
    templates: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    working_directory: str | None = None


class Translator(Protocol):
    def translate(self, text: str) -> TranslatedDirective: ...


def strip_fences(raw: str) -> str:
    return _FENCE.sub("", raw).strip()


def _string_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if isinstance(v, (str, int, float))]


def parse_directive(raw: str) -> TranslatedDirective:
    """Validate raw model output. Raises TranslationError if it is not JSON."""
    try:
        data = json.loads(strip_fences(raw or ""))
    except json.JSONDecodeError as e:
        raise TranslationError(f"Translator returned invalid JSON: {e}") from e

    if isinstance(data, list):
        data = {"steps": data}
    if not isinstance(data, dict):
        raise TranslationError("Translator returned a non-object JSON value")

    # a bare step object instead of a directive
    if "steps" not in data and "plan" not in data and data.get("type"):
        data = {"description": data.get("description", ""), "steps": [data]}

    steps = data.get("steps", data.get("plan"))
    if not isinstance(steps, list):
        steps = []
    steps = [s for s in steps if isinstance(s, (dict, str))]

    working_directory = data.get("workingDirectory") or data.get("working_directory")
    return TranslatedDirective(
        description=str(data.get("description") or data.get("originalCommand") or ""),
        steps=steps,
        templates=_string_list(data.get("templates")),
        warnings=_string_list(data.get("warnings")),
        working_directory=str(working_directory) if working_directory else None,
    )


class GeminiTranslator:
    """Translator backed by the Google Generative Language REST API."""

    def __init__(
        self,
        api_key: str | None,
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1/models",
        timeout: float = 15.0,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def translate(self, text: str) -> TranslatedDirective:
        if not self.api_key:
            raise TranslationError("No LLM API key configured")

        url = f"{self.base_url}/{self.model}:generateContent"
        payload = {"contents": [{"role": "user", "parts": [{"text": PROMPT.format(text=text)}]}]}
        try:
            resp = requests.post(
                url, params={"key": self.api_key}, json=payload, timeout=self.timeout
            )
        except requests.Timeout as e:
            raise TranslationError(f"Translator timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise TranslationError(f"Translator request failed: {e}") from e

        if resp.status_code >= 300:
            raise TranslationError(f"LLM error {resp.status_code}: {resp.text[:200]}")

        try:
            raw = resp.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise TranslationError(f"Unexpected translator response shape: {e}") from e

        return parse_directive(raw)
