from __future__ import annotations

import json
import logging
import os
import re
from typing import Any

import httpx

from medibot_core.errors import BoundaryFailure, BoundaryTimeout

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", flags=re.DOTALL)
_PROVIDER_ALIASES = {
    "claude": "anthropic",
    "anthropic": "anthropic",
    "openrouter": "openrouter",
    "openai": "openai",
}


def llm_timeout_seconds() -> float:
    raw = (os.getenv("MEDIBOT_LLM_TIMEOUT_SECONDS") or "25").strip()
    try:
        value = float(raw)
    except ValueError:
        return 25.0
    return value if value > 0 else 25.0


def preview(text: str, limit: int = 64) -> str:
    cleaned = " ".join((text or "").split())
    if len(cleaned) <= limit:
        return cleaned
    return cleaned[: limit - 3] + "..."


def provider_error_message(response: httpx.Response) -> str:
    message = response.text.strip()
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        msg = payload.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return message or f"HTTP {response.status_code}"


def extract_json_object(raw_text: str) -> dict[str, Any] | None:
    text = (raw_text or "").strip()
    if not text:
        return None
    try:
        payload = json.loads(text)
        if isinstance(payload, dict):
            return payload
    except json.JSONDecodeError:
        pass

    for start_idx in [idx for idx, char in enumerate(text) if char == "{"]:
        depth = 0
        for end_idx in range(start_idx, len(text)):
            char = text[end_idx]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
            if depth == 0:
                candidate = text[start_idx : end_idx + 1]
                try:
                    payload = json.loads(candidate)
                    if isinstance(payload, dict):
                        return payload
                except json.JSONDecodeError:
                    break
    return None


def _coerce_completion_text(response_json: dict[str, Any]) -> str:
    choices = response_json.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    message = choices[0].get("message", {})
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text_value = item.get("text")
                if isinstance(text_value, str):
                    parts.append(text_value)
        return "\n".join(parts)
    return ""


def _coerce_anthropic_text(response_json: dict[str, Any]) -> str:
    content = response_json.get("content")
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for item in content:
        if not isinstance(item, dict) or item.get("type") != "text":
            continue
        text_value = item.get("text")
        if isinstance(text_value, str) and text_value.strip():
            parts.append(text_value.strip())
    return "\n".join(parts).strip()


def chat_provider_candidates() -> list[dict[str, Any]]:
    provider_preference = (os.getenv("MEDIBOT_CHAT_PROVIDER") or "auto").strip().lower()
    candidates: list[dict[str, Any]] = []

    anthropic_api_key = (os.getenv("ANTHROPIC_API_KEY") or "").strip()
    if anthropic_api_key:
        candidates.append(
            {
                "provider": "anthropic",
                "base_url": os.getenv("ANTHROPIC_API_BASE_URL", "https://api.anthropic.com/v1").rstrip("/"),
                "api_key": anthropic_api_key,
                "model": (os.getenv("ANTHROPIC_MODEL") or "claude-3-5-sonnet-latest").strip(),
            }
        )

    openrouter_api_key = (os.getenv("OPENROUTER_API_KEY") or "").strip()
    if openrouter_api_key:
        candidates.append(
            {
                "provider": "openrouter",
                "base_url": os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/"),
                "api_key": openrouter_api_key,
                "model": (os.getenv("OPENROUTER_MODEL") or "openai/gpt-4o-mini").strip(),
            }
        )

    openai_api_key = (os.getenv("OPENAI_API_KEY") or "").strip()
    if openai_api_key:
        candidates.append(
            {
                "provider": "openai",
                "base_url": os.getenv("OPENAI_API_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
                "api_key": openai_api_key,
                "model": (os.getenv("MEDIBOT_CHAT_MODEL") or "gpt-4o-mini").strip(),
            }
        )

    if provider_preference in {"", "auto"}:
        return candidates
    canonical = _PROVIDER_ALIASES.get(provider_preference)
    if not canonical:
        return candidates
    preferred = [candidate for candidate in candidates if candidate["provider"] == canonical]
    others = [candidate for candidate in candidates if candidate["provider"] != canonical]
    return preferred + others


def split_data_uri(data_uri: str) -> tuple[str, str]:
    match = _DATA_URI_RE.match((data_uri or "").strip())
    if not match:
        raise BoundaryFailure("Document data URI is not base64 encoded.")
    return match.group("mime").lower(), match.group("data").strip()


def _openai_attachment_part(data_uri: str) -> dict[str, Any]:
    mime_type, _ = split_data_uri(data_uri)
    if mime_type == "application/pdf":
        return {"type": "file", "file": {"filename": "document.pdf", "file_data": data_uri}}
    return {"type": "image_url", "image_url": {"url": data_uri}}


def _anthropic_attachment_part(data_uri: str) -> dict[str, Any]:
    mime_type, data = split_data_uri(data_uri)
    part_type = "document" if mime_type == "application/pdf" else "image"
    return {"type": part_type, "source": {"type": "base64", "media_type": mime_type, "data": data}}


def _openai_compatible_chat(
    *,
    provider: dict[str, Any],
    system_prompt: str,
    user_text: str,
    attachment: str | None,
    timeout_seconds: float,
) -> str | None:
    user_content: str | list[dict[str, Any]] = user_text
    if attachment:
        user_content = [{"type": "text", "text": user_text}, _openai_attachment_part(attachment)]
    payload = {
        "model": provider["model"],
        "temperature": 0.35,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ],
    }
    headers: dict[str, str] = {
        "Authorization": f"Bearer {provider['api_key']}",
        "Content-Type": "application/json",
    }
    if provider["provider"] == "openrouter":
        site_url = (os.getenv("OPENROUTER_SITE_URL") or "").strip()
        app_name = (os.getenv("OPENROUTER_APP_NAME") or "MediBot").strip()
        if site_url:
            headers["HTTP-Referer"] = site_url
        if app_name:
            headers["X-Title"] = app_name
    with httpx.Client(timeout=httpx.Timeout(timeout_seconds, connect=8.0)) as client:
        response = client.post(f"{provider['base_url']}/chat/completions", headers=headers, json=payload)
    if response.status_code >= 400:
        raise BoundaryFailure(provider_error_message(response))
    text = _coerce_completion_text(response.json()).strip()
    return text or None


def _anthropic_chat(
    *,
    provider: dict[str, Any],
    system_prompt: str,
    user_text: str,
    attachment: str | None,
    timeout_seconds: float,
) -> str | None:
    user_content: str | list[dict[str, Any]] = user_text
    if attachment:
        user_content = [_anthropic_attachment_part(attachment), {"type": "text", "text": user_text}]
    payload = {
        "model": provider["model"],
        "max_tokens": 1200,
        "temperature": 0.35,
        "system": system_prompt,
        "messages": [{"role": "user", "content": user_content}],
    }
    headers = {
        "x-api-key": str(provider["api_key"]),
        "anthropic-version": os.getenv("ANTHROPIC_API_VERSION", "2023-06-01"),
        "Content-Type": "application/json",
    }
    with httpx.Client(timeout=httpx.Timeout(timeout_seconds, connect=8.0)) as client:
        response = client.post(f"{provider['base_url']}/messages", headers=headers, json=payload)
    if response.status_code >= 400:
        raise BoundaryFailure(provider_error_message(response))
    text = _coerce_anthropic_text(response.json())
    return text or None


def complete_text(
    *,
    system_prompt: str,
    user_text: str,
    attachment: str | None = None,
    purpose: str = "chat",
) -> str:
    """Run one completion against the first provider that answers.

    Ordinary provider errors fall through to the next candidate. A timeout
    stops the chain and raises ``BoundaryTimeout``; exhausting every
    candidate raises ``BoundaryFailure`` with the last error seen.
    """
    providers = chat_provider_candidates()
    if not providers:
        logger.warning("%s llm unavailable: no provider key found in runtime env", purpose)
        raise BoundaryFailure("No LLM provider is configured.")

    timeout_seconds = llm_timeout_seconds()
    last_error = "LLM provider returned an empty response."
    for provider in providers:
        provider_name = str(provider.get("provider") or "unknown")
        try:
            if provider_name == "anthropic":
                text = _anthropic_chat(
                    provider=provider,
                    system_prompt=system_prompt,
                    user_text=user_text,
                    attachment=attachment,
                    timeout_seconds=timeout_seconds,
                )
            else:
                text = _openai_compatible_chat(
                    provider=provider,
                    system_prompt=system_prompt,
                    user_text=user_text,
                    attachment=attachment,
                    timeout_seconds=timeout_seconds,
                )
        except httpx.TimeoutException as exc:
            logger.warning("%s llm call timed out (%s) after %.1fs", purpose, provider_name, timeout_seconds)
            raise BoundaryTimeout(f"LLM provider {provider_name} timed out.") from exc
        except (httpx.HTTPError, BoundaryFailure, ValueError) as exc:
            logger.warning("%s llm call failed (%s): %s", purpose, provider_name, exc)
            last_error = str(exc) or exc.__class__.__name__
            continue
        if text:
            logger.info("%s llm provider used (%s)", purpose, provider_name)
            return text
        logger.info("%s llm provider empty response (%s)", purpose, provider_name)
    raise BoundaryFailure(last_error)
