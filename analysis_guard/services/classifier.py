"""
Text classifier collaborator.

The orchestrator only depends on the Classifier protocol. BedrockClassifier
is the production adapter: it asks an Amazon Bedrock model for a JSON
verdict through the Converse API and reports token usage for costing.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..models import ClassificationResult
from .exceptions import ClassifierQuotaExceededError, ClassifierUnavailableError

logger = logging.getLogger(__name__)

THROTTLING_ERROR_CODES = frozenset([
    'ThrottlingException',
    'ServiceQuotaExceededException',
    'TooManyRequestsException',
])

SYSTEM_PROMPT = (
    "You are a fact-checking assistant. Assess whether the user's text is "
    "fake or misleading news. Respond with a single JSON object and nothing "
    "else, using exactly these keys: "
    '"is_fake" (boolean), "confidence" (number between 0 and 1), '
    '"explanation" (string), "suspicious_phrases" (array of strings), '
    '"recommendations" (string).'
)

FENCED_JSON_PATTERN = re.compile(r'```(?:json)?\s*(\{.*\})\s*```', re.DOTALL)


class Classifier(Protocol):
    """
    Opaque text classifier.

    Implementations raise ClassifierUnavailableError or
    ClassifierQuotaExceededError on failure.
    """

    async def classify(self, text: str) -> ClassificationResult:
        ...


def parse_verdict(raw_text: str) -> Dict[str, Any]:
    """
    Extract the JSON verdict from model output.

    Accepts a bare JSON object or one wrapped in a Markdown code fence.

    Args:
        raw_text: Text returned by the model

    Returns:
        Parsed verdict dictionary

    Raises:
        ClassifierUnavailableError: If no JSON object can be parsed
    """
    candidate = raw_text.strip()
    fenced = FENCED_JSON_PATTERN.search(candidate)
    if fenced:
        candidate = fenced.group(1)

    try:
        verdict = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ClassifierUnavailableError(f"Classifier returned malformed JSON: {e}") from e

    if not isinstance(verdict, dict):
        raise ClassifierUnavailableError("Classifier returned a non-object verdict")

    return verdict


class BedrockClassifier:
    """
    Classifier backed by an Amazon Bedrock model.
    """

    def __init__(
        self,
        model_id: str,
        bedrock_client=None,
        max_tokens: int = 1024,
        region: str = 'us-east-1'
    ):
        """
        Initialize BedrockClassifier.

        Args:
            model_id: Bedrock model identifier
            bedrock_client: Optional bedrock-runtime client for testing
            max_tokens: Upper bound on response tokens
            region: AWS region
        """
        self.model_id = model_id
        self.max_tokens = max_tokens
        self.bedrock_client = bedrock_client or boto3.client(
            'bedrock-runtime',
            region_name=region
        )

    async def classify(self, text: str) -> ClassificationResult:
        """
        Classify text.

        Args:
            text: Text to classify

        Returns:
            ClassificationResult with token usage

        Raises:
            ClassifierQuotaExceededError: If Bedrock throttles the request
            ClassifierUnavailableError: On any other Bedrock failure or
                malformed model output
        """
        # Run synchronous boto3 call in executor to avoid blocking
        loop = asyncio.get_running_loop()

        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.bedrock_client.converse(
                    modelId=self.model_id,
                    system=[{'text': SYSTEM_PROMPT}],
                    messages=[{'role': 'user', 'content': [{'text': text}]}],
                    inferenceConfig={'maxTokens': self.max_tokens, 'temperature': 0}
                )
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            logger.error(f"Bedrock converse failed for {self.model_id}: {error_code} - {e}")
            if error_code in THROTTLING_ERROR_CODES:
                raise ClassifierQuotaExceededError(
                    f"Classifier quota exceeded: {error_code}"
                ) from e
            raise ClassifierUnavailableError(f"Classifier call failed: {error_code}") from e
        except BotoCoreError as e:
            logger.error(f"Bedrock connection error for {self.model_id}: {e}")
            raise ClassifierUnavailableError(f"Classifier unreachable: {e}") from e

        return self._to_result(response)

    def _to_result(self, response: Dict[str, Any]) -> ClassificationResult:
        try:
            content = response['output']['message']['content']
            raw_text = ''.join(block.get('text', '') for block in content)
        except (KeyError, TypeError) as e:
            raise ClassifierUnavailableError("Classifier response had no message content") from e

        verdict = parse_verdict(raw_text)
        usage = response.get('usage') or {}

        try:
            return ClassificationResult(
                is_fake=bool(verdict['is_fake']),
                confidence=float(verdict['confidence']),
                explanation=str(verdict.get('explanation', '')),
                suspicious_phrases=tuple(
                    str(phrase) for phrase in verdict.get('suspicious_phrases') or ()
                ),
                recommendations=str(verdict.get('recommendations', '')),
                model_used=self.model_id,
                input_tokens=int(usage.get('inputTokens', 0)),
                output_tokens=int(usage.get('outputTokens', 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ClassifierUnavailableError(f"Classifier verdict was invalid: {e}") from e
