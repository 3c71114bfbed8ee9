"""
insights.py — AI Chart Summaries
Excel Analytics API

Sends a truncated sample of a chart's rows to an OpenAI-compatible
chat-completion endpoint and relays the short summary it writes.
"""

import json
from typing import AsyncGenerator, Dict, List, Optional

import httpx
from loguru import logger

from excel_analytics.config import settings
from excel_analytics.errors import UpstreamError

FALLBACK_INSIGHT = "No clear insight generated."
SYSTEM_PROMPT = "You are a data analyst who explains chart data clearly."


# ── Prompting ─────────────────────────────────────────────────────────────────
def sample_rows(data: List[Dict], limit: Optional[int] = None) -> List[Dict]:
    return list(data[: settings.INSIGHT_SAMPLE_ROWS if limit is None else limit])


def build_prompt(chart_type: str, x_key: str, y_key: str, sample: List[Dict]) -> str:
    return (
        "Analyze the following chart data and provide a clear, short business insight.\n\n"
        f"Chart Type: {chart_type}\n"
        f"X-Axis: {x_key}\n"
        f"Y-Axis: {y_key}\n"
        f"Data (sample): {json.dumps(sample, default=str)}\n\n"
        "Write the insight in 2-3 sentences, professional tone."
    )


def extract_text(body: Dict) -> str:
    """Pull the completion text out of a chat-completions response body."""
    choices = body.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message") or {}
    content = message.get("content") if isinstance(message, dict) else None
    return content.strip() if isinstance(content, str) else ""


# ── Client ────────────────────────────────────────────────────────────────────
async def get_llm_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """FastAPI dependency: one short-lived HTTP client per insight request."""
    async with httpx.AsyncClient(
        base_url=settings.LLM_API_URL.rstrip("/"),
        timeout=settings.LLM_TIMEOUT_SECONDS,
    ) as client:
        yield client


async def generate_insight(
    client: httpx.AsyncClient,
    chart_type: str,
    x_key: str,
    y_key: str,
    data: List[Dict],
) -> str:
    """
    Request a 2-3 sentence summary of the chart.

    Only the first INSIGHT_SAMPLE_ROWS rows leave the process. An empty
    dataset still goes upstream. Any transport or protocol failure becomes
    an UpstreamError; the detail is logged, never returned.
    """
    sample = sample_rows(data)
    payload = {
        "model": settings.LLM_MODEL,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(chart_type, x_key, y_key, sample)},
        ],
        "temperature": 0.7,
        "max_tokens": 200,
    }
    headers = {"Content-Type": "application/json"}
    if settings.LLM_API_KEY:
        headers["Authorization"] = f"Bearer {settings.LLM_API_KEY}"

    try:
        resp = await client.post("/chat/completions", json=payload, headers=headers)
        resp.raise_for_status()
        body = resp.json()
    except httpx.TimeoutException as e:
        logger.error(f"AI summary timed out after {settings.LLM_TIMEOUT_SECONDS}s: {e!r}")
        raise UpstreamError("AI summary generation failed.") from e
    except httpx.HTTPStatusError as e:
        logger.error(f"AI summary upstream error {e.response.status_code}: {e.response.text[:500]}")
        raise UpstreamError("AI summary generation failed.") from e
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"AI summary request failed: {e!r}")
        raise UpstreamError("AI summary generation failed.") from e

    if not isinstance(body, dict):
        logger.error(f"AI summary returned an unexpected body: {str(body)[:500]}")
        raise UpstreamError("AI summary generation failed.")

    text = extract_text(body)
    logger.info(f"AI summary generated ({len(sample)} rows sampled, {len(text)} chars).")
    return text or FALLBACK_INSIGHT
