# python/school_recommender/utils/schema_enforcer.py
"""
JSON Schema Enforcement for provider output
Single place where raw generated text becomes a validated RecommendationList.

- Balanced bracket extraction (not regex scraping)
- Deterministic, conservative repairs
- Strict pydantic validation; malformed output fails, never returns partial data
"""

from __future__ import annotations
import json
import re
import logging
from typing import Any, Dict, Optional, Type
from pydantic import BaseModel, ValidationError

from ..models import RecommendationList

logger = logging.getLogger(__name__)

class JSONEnforceError(Exception):
    """Exception raised during JSON enforcement stages"""
    def __init__(self, stage: str, detail: str):
        super().__init__(f"{stage}: {detail}")
        self.stage = stage
        self.detail = detail

_FENCES = (
    r"```json\s*([\[{].*?[\]}])\s*```",
    r"```\s*([\[{].*?[\]}])\s*```",
)

_CLOSERS = {"[": "]", "{": "}"}

def _extract_fenced_json(text: str) -> Optional[str]:
    """Extract JSON from code fences like ```json ... ``` or ``` ... ```"""
    for pat in _FENCES:
        m = re.search(pat, text, re.DOTALL | re.IGNORECASE)
        if m:
            return m.group(1).strip()
    return None

def _extract_json_anywhere(text: str, opener: str = "[") -> Optional[str]:
    """Find the first balanced top-level JSON array (or object) using bracket balancing"""
    start = text.find(opener)
    if start < 0:
        return None
    closer = _CLOSERS[opener]

    depth = 0
    in_str = False
    esc = False

    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
        else:
            if ch == '"':
                in_str = True
            elif ch == opener:
                depth += 1
            elif ch == closer:
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
    return None

def _simple_repairs(raw: str) -> str:
    """Apply common LLM output repairs without being overly aggressive"""
    s = raw.strip()

    s = s.replace("“", '"').replace("”", '"')  # Smart quotes
    s = s.replace("‘", "'").replace("’", "'")  # Smart apostrophes

    # Remove leading/trailing backticks
    s = re.sub(r"^`+|`+$", "", s.strip())

    # Fix trailing commas in objects/arrays
    s = re.sub(r",\s*([}\]])", r"\1", s)

    return s

def parse_json_payload(text: str) -> Any:
    """
    extract → parse → (repair → parse). Valid JSON is never rewritten.
    Raises JSONEnforceError(stage='json_decode').
    """
    if not text or not text.strip():
        raise JSONEnforceError("empty", "provider returned no text")

    j = _extract_fenced_json(text) or _extract_json_anywhere(text, "[") or text

    try:
        return json.loads(j)
    except json.JSONDecodeError:
        logger.debug("Provider text is not valid JSON as extracted, applying repairs")

    try:
        return json.loads(_simple_repairs(j))
    except json.JSONDecodeError as e:
        raise JSONEnforceError("json_decode", str(e))

def extract_and_validate(model_cls: Type[BaseModel], text: str) -> BaseModel:
    """
    One-pass: extract → repair → parse → validate.
    Raises JSONEnforceError with stage info on failure.
    """
    data = parse_json_payload(text)

    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise JSONEnforceError("schema_validate", e.json())

def enforce_recommendations(text: str) -> RecommendationList:
    """Validate provider text as a RecommendationList, order preserved"""
    result = extract_and_validate(RecommendationList, text)
    logger.debug(f"Validated {len(result.root)} recommendations")
    return result

def to_provider_schema(model_cls: Type[BaseModel]) -> Dict[str, Any]:
    """
    Inline the pydantic JSON schema into the OpenAPI subset accepted by
    Gemini's responseSchema (no $ref/$defs, no titles, upper-case types).
    """
    schema = model_cls.model_json_schema(by_alias=True)
    defs = schema.pop("$defs", {})

    def _convert(node: Dict[str, Any]) -> Dict[str, Any]:
        if "$ref" in node:
            return _convert(defs[node["$ref"].split("/")[-1]])
        if "anyOf" in node:
            # Optional[X] is rendered as anyOf [X, null]
            branches = [b for b in node["anyOf"] if b.get("type") != "null"]
            out = _convert(branches[0])
            out["nullable"] = True
            if "description" in node:
                out["description"] = node["description"]
            return out

        out: Dict[str, Any] = {}
        if "enum" in node:
            out["type"] = "STRING"
            out["enum"] = list(node["enum"])
        elif "const" in node:
            out["type"] = "STRING"
            out["enum"] = [node["const"]]
        else:
            out["type"] = str(node.get("type", "string")).upper()
        if "description" in node:
            out["description"] = node["description"]
        if out["type"] == "OBJECT":
            out["properties"] = {k: _convert(v) for k, v in node.get("properties", {}).items()}
            if node.get("required"):
                out["required"] = list(node["required"])
        elif out["type"] == "ARRAY":
            out["items"] = _convert(node.get("items", {}))
            if "minItems" in node:
                out["minItems"] = node["minItems"]
        return out

    return _convert(schema)
