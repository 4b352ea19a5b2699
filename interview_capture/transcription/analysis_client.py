"""Client for the downstream analyze-chunk endpoint."""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from ..models.transcription import TranscriptChunk

logger = logging.getLogger(__name__)

ANALYZE_CHUNK_PATH = "/functions/v1/analyze-chunk"
ANALYZE_TIMEOUT_SECONDS = 10.0


class AnalysisClient:
    """Forwards transcript chunks for analysis. Failures are logged, never raised."""

    def __init__(self,
                 http: aiohttp.ClientSession,
                 base_url: str,
                 anon_key: str = "",
                 internal_key: str = "",
                 timeout: float = ANALYZE_TIMEOUT_SECONDS):
        """Initialize analysis client.

        Args:
            http: Shared aiohttp session
            base_url: Collaborator base URL; empty disables forwarding
            anon_key: Bearer token for the collaborator
            internal_key: Value of the x-internal-key header
        """
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.internal_key = internal_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.submitted = 0
        self.failed = 0

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{ANALYZE_CHUNK_PATH}"

    async def submit_chunk(self, interview_id: Any, chunk: TranscriptChunk) -> Optional[int]:
        """POST one chunk.

        Returns:
            HTTP status, or None if the request was skipped or failed
        """
        if not self.enabled:
            logger.debug("No analysis URL configured, skipping chunk forward")
            return None

        headers = {
            "Authorization": f"Bearer {self.anon_key}",
            "x-internal-key": self.internal_key,
        }
        body = {"interviewId": interview_id, "chunk": chunk.to_dict()}
        try:
            async with self.http.post(self.endpoint, headers=headers, json=body,
                                      timeout=self.timeout) as response:
                self.submitted += 1
                if response.status >= 400:
                    error_text = await response.text()
                    logger.warning(f"Analyze chunk rejected: {response.status} - {error_text[:200]}")
                return response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.failed += 1
            logger.warning(f"Analyze chunk request failed: {e}")
            return None
