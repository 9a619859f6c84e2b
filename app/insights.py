"""
AI summaries for the dashboard and the position catalog.
Failures never reach the caller: a fixed Indonesian message is returned instead.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from openai import OpenAI

import app_config

logger = logging.getLogger(__name__)

ANALYTICS_FAILED = "Gagal mendapatkan analisis AI."
ANALYTICS_ERROR = "Terjadi kesalahan saat menghubungi asisten AI."
JOB_DESC_FAILED = "Gagal membuat deskripsi."
JOB_DESC_ERROR = "Gagal mendapatkan saran jabatan dari AI."


def _client() -> OpenAI:
    key = os.getenv("OPENAI_API_KEY")
    if not key:
        raise RuntimeError("OPENAI_API_KEY not set")
    return OpenAI(api_key=key)


def _model() -> str:
    return os.getenv("KBPC_AI_MODEL") or app_config.get_setting("ai_model") or "gpt-4o-mini"


def _ask(client: Any, prompt: str) -> str:
    rsp = client.chat.completions.create(
        model=_model(),
        messages=[{"role": "user", "content": prompt}],
        temperature=0.4,
    )
    return (rsp.choices[0].message.content or "").strip()


def member_summary_line(members: List[Dict[str, Any]]) -> str:
    return ", ".join(f"{m.get('name')} ({m.get('position')}, Status: {m.get('status')})" for m in members)


def get_member_analytics(members: List[Dict[str, Any]], client: Optional[Any] = None) -> str:
    prompt = (
        "Analisis data anggota berikut dan berikan ringkasan singkat dalam Bahasa Indonesia: "
        f"{member_summary_line(members)}. "
        "Berikan 3 poin insight tentang distribusi peran dan kesehatan tim. Gunakan format Markdown."
    )
    try:
        text = _ask(client or _client(), prompt)
    except Exception as e:
        logger.warning("AI analytics failed: %s", e)
        return ANALYTICS_ERROR
    return text or ANALYTICS_FAILED


def suggest_job_description(position: str, client: Optional[Any] = None) -> str:
    prompt = (
        f'Buatkan deskripsi tugas singkat dan profesional untuk jabatan "{position}" '
        "di sebuah perguruan pencak silat. Gunakan poin-poin dalam Bahasa Indonesia."
    )
    try:
        text = _ask(client or _client(), prompt)
    except Exception as e:
        logger.warning("AI job description failed (%s): %s", position, e)
        return JOB_DESC_ERROR
    return text or JOB_DESC_FAILED
