"""
Notification collaborator, invoked when marks are published.

Delivery and retries belong to the collaborator. The publisher logs a failed
notification and keeps the publish.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from pydantic import BaseModel

from rankbackend.config import settings

logger = logging.getLogger(__name__)


class ResultsPublished(BaseModel):
    paper_id: int
    attempt_id: int
    user_id: int
    total_score: float


class Notifier(ABC):
    @abstractmethod
    def results_published(self, payload: ResultsPublished) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    def results_published(self, payload: ResultsPublished) -> None:
        logger.info(
            "Results published: paper=%s attempt=%s user=%s total=%s",
            payload.paper_id, payload.attempt_id, payload.user_id, payload.total_score
        )


class WebhookNotifier(Notifier):
    """POSTs ``{"type": "rank_results_published", "data": {...}}`` to a URL."""

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def results_published(self, payload: ResultsPublished) -> None:
        body = {"type": "rank_results_published", "data": payload.model_dump()}
        if self._client is not None:
            response = self._client.post(self.url, json=body, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=body)
        response.raise_for_status()


def get_notifier() -> Notifier:
    """Dependency returning the configured notifier"""
    if settings.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(settings.NOTIFY_WEBHOOK_URL, timeout=settings.NOTIFY_TIMEOUT_SECONDS)
    return LoggingNotifier()
