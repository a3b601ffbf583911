"""
Content generation collaborator.

``ContentGenerator`` is what the orchestrator depends on; the Bedrock
implementation below is the production adapter. Any exception raised here
is a per-document failure.
"""
from __future__ import annotations

import json
from typing import Any, Optional, Protocol

import boto3
from botocore.config import Config

from casegate.core.config import settings
from casegate.core.logger import logger
from casegate.services.document_registry import get_document_type
from casegate.services.fact_snapshot import FactSnapshot


class ContentGenerator(Protocol):
    def generate(self, document_type: str, snapshot: FactSnapshot, context: dict) -> str:
        ...


class BedrockContentGenerator:
    """Drafts document bodies with Claude on AWS Bedrock."""

    def __init__(self, client: Optional[Any] = None) -> None:
        self.model: str = settings.CONTENT_MODEL_ID
        self.max_tokens: int = settings.CONTENT_MAX_TOKENS
        self.temperature: float = settings.CONTENT_TEMPERATURE
        # Bounded read timeout and no SDK retries: a slow call fails this
        # document instead of stalling the batch.
        self.client = client or boto3.client(
            "bedrock-runtime",
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
            config=Config(
                connect_timeout=10,
                read_timeout=settings.CONTENT_GENERATION_TIMEOUT_SECONDS,
                retries={"max_attempts": 0},
            ),
        )
        logger.info("BedrockContentGenerator initialised with model=%s", self.model)

    # ------------------------------------------------------------------
    # Low-level Bedrock call
    # ------------------------------------------------------------------

    def _invoke(self, prompt: str) -> str:
        body = json.dumps(
            {
                "anthropic_version": "bedrock-2023-05-31",
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
                "messages": [{"role": "user", "content": prompt}],
            }
        )
        response = self.client.invoke_model(
            modelId=self.model,
            contentType="application/json",
            accept="application/json",
            body=body,
        )
        result = json.loads(response["body"].read())
        text_parts: list[str] = []
        for block in result.get("content", []):
            if isinstance(block, dict) and block.get("type") == "text":
                text_parts.append(block.get("text", ""))
        return "".join(text_parts)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(self, document_type: str, snapshot: FactSnapshot, context: dict) -> str:
        spec = get_document_type(document_type)
        if spec is None:
            raise ValueError(f"Unknown document type: {document_type}")
        prompt = spec.build_prompt(snapshot, context)
        text = self._invoke(prompt).strip()
        logger.info(
            "Generated %s for case %s (%d chars)", document_type, snapshot.case_id, len(text)
        )
        return text
