"""Random trivia questions from the gazatu trivia API."""

from __future__ import annotations

import httpx

from chorus.core.errors import GenericError

TRIVIA_URL = "https://api.gazatu.xyz/trivia/questions"


class TriviaClient:
    def __init__(self, url: str = TRIVIA_URL):
        self.url = url
        self._http = httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        await self._http.aclose()

    async def random_question(self) -> dict[str, str]:
        """Return one question as ``{"question", "answer", "category"}``."""
        response = await self._http.get(self.url, params={"count": 1})
        response.raise_for_status()
        questions = response.json()
        if not questions:
            raise GenericError("empty trivia response")
        item = questions[0]
        return {
            "question": item["question"],
            "answer": item["answer"],
            "category": item["category"],
        }
