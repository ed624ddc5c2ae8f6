import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException
from groq import Groq

from appbuilder.config import GROQ_API_KEY, GROQ_MODEL, GROQ_MODEL_ALIASES
from appbuilder.schemas import PlannedFile
from appbuilder.services.sanitizer import clean_content

logger = logging.getLogger(__name__)

STRUCTURE_SYSTEM_PROMPT = """You are an expert at creating React applications. Given a description of an app, generate a file structure with a list of necessary files for a complete, working application.
Respond with a JSON object that has a "files" property containing an array of file objects. Each file object should have "name", "path", and "description" properties.
The files should form a complete, working application that meets the user's requirements.
For React apps, include .jsx or .tsx files. Include CSS files where needed.
The main component must be a function named App.
ONLY respond with the JSON object and nothing else."""

FILE_SYSTEM_PROMPT = """You are an expert React developer. Generate the contents of the file described below for an app with this description: "{description}".
The file should be well-structured, properly commented, and follow best practices.
Only output the code, no explanations."""

MAX_FILES = 20


def resolve_model(selector: Optional[str]) -> str:
    """Map a friendly selector ("default", "fast", ...) to a Groq model id."""
    if not selector:
        return GROQ_MODEL
    return GROQ_MODEL_ALIASES.get(selector.lower(), selector)


class AppGenerator:
    def __init__(self, api_key: Optional[str] = None, client: Any = None) -> None:
        if client is not None:
            self._groq_client = client
            return

        api_key = api_key or GROQ_API_KEY
        if not api_key:
            raise RuntimeError("GROQ_API_KEY is missing.")

        self._groq_client = Groq(api_key=api_key)

    def generate_files(self, description: str, model: Optional[str] = None) -> List[Tuple[PlannedFile, str]]:
        """
        Two passes: plan the file list, then write every file. Contents are
        returned as the model produced them; fences are cleaned later by
        whoever renders them.
        """
        model_id = resolve_model(model)
        plan = self.plan_files(description, model_id)
        logger.info("Planned %d file(s) with %s", len(plan), model_id)

        generated = []
        for planned in plan:
            content = self.write_file(description, planned, model_id)
            generated.append((planned, content))
            logger.info("Generated %s (%d chars)", _full_path(planned), len(content))
        return generated

    def plan_files(self, description: str, model_id: str) -> List[PlannedFile]:
        raw_output = self._call_groq_with_retry(
            model_id,
            STRUCTURE_SYSTEM_PROMPT,
            f"Create a file structure for the following app: {description}",
            json_mode=True,
        )
        structure = self._safe_parse_json(raw_output)

        files = structure.get("files")
        if not isinstance(files, list) or not files:
            raise HTTPException(status_code=502, detail="Invalid file structure generated")

        plan = []
        for item in files[:MAX_FILES]:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            plan.append(
                PlannedFile(
                    name=str(item["name"]),
                    path=str(item.get("path") or "").strip("/"),
                    description=str(item.get("description") or ""),
                )
            )

        if not plan:
            raise HTTPException(status_code=502, detail="Invalid file structure generated")
        return plan

    def write_file(self, description: str, planned: PlannedFile, model_id: str) -> str:
        return self._call_groq_with_retry(
            model_id,
            FILE_SYSTEM_PROMPT.format(description=description),
            f"Generate the contents for: {_full_path(planned)}\nDescription: {planned.description}",
        )

    def _call_groq_with_retry(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        json_mode: bool = False,
        max_retries: int = 3,
    ) -> str:
        kwargs: Dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        for attempt in range(max_retries):
            try:
                response = self._groq_client.chat.completions.create(
                    model=model_id,
                    temperature=0.2,
                    max_tokens=4000,
                    timeout=60,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    **kwargs,
                )
                return (response.choices[0].message.content or "").strip()
            except Exception as e:
                rate_limited = "rate_limit" in str(e).lower()
                if attempt < max_retries - 1:
                    wait_time = (attempt + 1) * 3 if rate_limited else 1
                    logger.warning("Groq call failed (attempt %d/%d): %s", attempt + 1, max_retries, e)
                    time.sleep(wait_time)
                    continue
                if rate_limited:
                    raise HTTPException(status_code=429, detail="Rate limit exceeded")
                logger.error("Groq call failed after %d attempts: %s", max_retries, e)
                raise HTTPException(status_code=502, detail=f"LLM request failed: {e}")
        raise HTTPException(status_code=429, detail="Rate limit exceeded")

    def _safe_parse_json(self, raw: str) -> Dict[str, Any]:
        cleaned = clean_content(raw.strip())
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.warning("LLM returned invalid JSON: %s", cleaned[:200])
            raise HTTPException(status_code=502, detail="Failed to parse AI response")

        if not isinstance(parsed, dict):
            raise HTTPException(status_code=502, detail="LLM returned invalid JSON.")
        return parsed


def _full_path(planned: PlannedFile) -> str:
    return f"{planned.path}/{planned.name}" if planned.path else planned.name
