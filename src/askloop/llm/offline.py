# src/askloop/llm/offline.py

from __future__ import annotations


class OfflineAnswerService:
    """
    Offline deterministic answer service used for demos when no external API is configured.

    Echoes the question back so the whole pipeline (scheduler, worker, stats,
    delivery) can be exercised without network access.
    """

    async def query(self, text: str, timeout: float) -> str:
        return (
            "Offline demo mode: no answer service is configured.\n"
            "Set ASKLOOP_XAI_API_KEY to enable real responses.\n\n"
            f"You asked: {text}"
        )
