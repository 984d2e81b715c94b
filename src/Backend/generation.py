import json
import logging
import re
import time

import requests

from graph import LEVELS, LearningMap
from settings import Settings

"""
Learning-map generation (Gemini REST API)
-----------------------------------------
Asks the model for a JSON roadmap, pulls the JSON object out of whatever
text comes back and validates its structure through LearningMap.from_dict.
The content itself (titles, resources, categories) is taken as-is.
"""

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
_SESSION = requests.Session()
_SESSION.headers.update({
	"User-Agent": "Cerebra/1.0 (learning-map generator) Python-requests",
	"Content-Type": "application/json",
})

_RETRY_DELAY = 1.0  # seconds between retries


class GenerationError(RuntimeError):
	"""The generation service could not produce a usable learning map."""


def _post(url: str, payload: dict, timeout: float, **kwargs) -> requests.Response:
	"""POST with one retry on transient failure."""
	last_exc: Exception | None = None
	for attempt in range(2):
		try:
			resp = _SESSION.post(url, json=payload, timeout=timeout, **kwargs)
			if resp.status_code == 429:
				last_exc = GenerationError("generation service rate-limited the request")
				time.sleep(_RETRY_DELAY * (attempt + 1))
				continue
			resp.raise_for_status()
			return resp
		except requests.exceptions.RequestException as e:
			last_exc = e
			if attempt == 0:
				time.sleep(_RETRY_DELAY)
			else:
				log.warning("generation request failed: %s", e)
	raise GenerationError(f"generation request failed: {last_exc}") from last_exc


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------
CATEGORIES: tuple[str, ...] = ("general", "frontend", "backend", "database", "fundamentals", "tools")


def build_prompt(topic: str, difficulty: str) -> str:
	return f"""You are an expert learning path designer. Create a comprehensive learning roadmap specifically for "{topic}" at {difficulty} level.

CRITICAL: The roadmap MUST be about "{topic}" and nothing else.

Return ONLY a valid JSON object (no markdown, no code blocks) with this EXACT structure:

{{
  "topic": "{topic}",
  "nodes": [
    {{
      "id": "1",
      "title": "Main concept for {topic}",
      "description": "Brief 10-15 word description",
      "level": "{difficulty}",
      "category": "general",
      "resources": [
        {{"type": "article", "title": "Resource name", "url": "https://example.com"}}
      ],
      "children": ["2", "3"]
    }}
  ],
  "edges": [
    {{"from": "1", "to": "2"}}
  ]
}}

Requirements:
- Create 7-10 nodes specifically about "{topic}"
- Each node must have unique id (numbers as strings)
- Include 1-2 real resources per node (MDN, official docs, YouTube)
- Use categories: {", ".join(CATEGORIES)}
- Keep descriptions under 15 words
- Create logical parent-child hierarchy
- Topic field must be exactly: "{topic}"

IMPORTANT: Generate content ONLY about "{topic}". Do not substitute with similar topics."""


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------
_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"```\s*$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f]+")
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_generated_text(text: str) -> dict:
	"""Strip fences / control chars and decode the outermost JSON object."""
	cleaned = _FENCE_START.sub("", (text or "").strip())
	cleaned = _FENCE_END.sub("", cleaned)
	cleaned = _CONTROL_CHARS.sub("", cleaned)

	match = _JSON_OBJECT.search(cleaned)
	if match is None:
		log.error("model did not return JSON: %s", cleaned[:500])
		raise GenerationError("No valid JSON found in model response")
	try:
		return json.loads(match.group(0))
	except json.JSONDecodeError as e:
		raise GenerationError(f"model returned malformed JSON: {e}") from e


def _response_text(body: dict) -> str:
	"""Concatenate the text parts of the first candidate."""
	for cand in body.get("candidates", []):
		parts = cand.get("content", {}).get("parts", [])
		text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
		if text:
			return text
	raise GenerationError("No response from generation service")


# ---------------------------------------------------------------------------
# Master function
# ---------------------------------------------------------------------------
def generate_map(topic: str, difficulty: str, settings: Settings) -> LearningMap:
	"""
	Generate a learning map for *topic* at *difficulty*.

	Raises GenerationError when the service is unconfigured, unreachable or
	returns something that is not a structurally valid map.
	"""
	if difficulty not in LEVELS:
		raise ValueError(f"unknown difficulty {difficulty!r}")
	if not settings.gemini_api_key:
		raise GenerationError("Server misconfiguration: API key missing")

	url = f"{str(settings.gemini_base_url).rstrip('/')}/models/{settings.gemini_model}:generateContent"
	payload = {"contents": [{"parts": [{"text": build_prompt(topic, difficulty)}]}]}

	log.info("generating  topic=%r  difficulty=%s  model=%s", topic, difficulty, settings.gemini_model)
	t0 = time.time()
	resp = _post(
		url, payload, settings.request_timeout,
		headers={"x-goog-api-key": settings.gemini_api_key},
	)
	try:
		body = resp.json()
	except ValueError as e:
		raise GenerationError(f"generation service returned non-JSON body: {e}") from e

	data = parse_generated_text(_response_text(body))
	data["topic"] = topic
	try:
		lm = LearningMap.from_dict(data)
	except ValueError as e:
		raise GenerationError(str(e)) from e

	log.info(
		"generated  topic=%r  nodes=%d  edges=%d  elapsed=%.2fs",
		topic, lm.num_nodes, len(lm.edges), time.time() - t0,
	)
	return lm
