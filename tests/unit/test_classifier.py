"""
Unit tests for the Bedrock classifier adapter.
"""
import json
import pytest
from unittest.mock import Mock
from botocore.exceptions import ClientError, EndpointConnectionError

from analysis_guard.services.classifier import BedrockClassifier, parse_verdict
from analysis_guard.services.exceptions import (
    ClassifierQuotaExceededError,
    ClassifierUnavailableError,
)

MODEL_ID = 'anthropic.claude-3-haiku-20240307-v1:0'

VERDICT = {
    'is_fake': True,
    'confidence': 0.87,
    'explanation': 'Unverifiable miracle cure claims',
    'suspicious_phrases': ['miracle cure', 'doctors hate this'],
    'recommendations': 'Consult reputable health sources',
}


def converse_response(text, input_tokens=120, output_tokens=80):
    return {
        'output': {'message': {'role': 'assistant', 'content': [{'text': text}]}},
        'usage': {
            'inputTokens': input_tokens,
            'outputTokens': output_tokens,
            'totalTokens': input_tokens + output_tokens,
        },
        'stopReason': 'end_turn',
    }


@pytest.fixture
def bedrock_client():
    return Mock()


@pytest.fixture
def classifier(bedrock_client):
    return BedrockClassifier(model_id=MODEL_ID, bedrock_client=bedrock_client)


class TestParseVerdict:

    def test_bare_json(self):
        assert parse_verdict(json.dumps(VERDICT)) == VERDICT

    def test_fenced_json(self):
        """Test a verdict wrapped in a Markdown code fence is accepted."""
        text = f"Here is my assessment:\n```json\n{json.dumps(VERDICT)}\n```"

        assert parse_verdict(text) == VERDICT

    @pytest.mark.parametrize('text', ['not json', '[1, 2]', ''])
    def test_malformed(self, text):
        with pytest.raises(ClassifierUnavailableError):
            parse_verdict(text)


class TestBedrockClassifier:

    @pytest.mark.asyncio
    async def test_classify_parses_verdict_and_usage(self, classifier, bedrock_client):
        # Arrange
        bedrock_client.converse.return_value = converse_response(json.dumps(VERDICT))

        # Act
        result = await classifier.classify('Miracle cure found!')

        # Assert
        assert result.is_fake is True
        assert result.confidence == 0.87
        assert tuple(result.suspicious_phrases) == ('miracle cure', 'doctors hate this')
        assert result.model_used == MODEL_ID
        assert result.input_tokens == 120
        assert result.output_tokens == 80

        kwargs = bedrock_client.converse.call_args.kwargs
        assert kwargs['modelId'] == MODEL_ID
        assert kwargs['messages'][0]['content'][0]['text'] == 'Miracle cure found!'

    @pytest.mark.asyncio
    async def test_throttling_maps_to_quota_error(self, classifier, bedrock_client):
        bedrock_client.converse.side_effect = ClientError(
            {'Error': {'Code': 'ThrottlingException', 'Message': 'Too many requests'}},
            'Converse'
        )

        with pytest.raises(ClassifierQuotaExceededError):
            await classifier.classify('text')

    @pytest.mark.asyncio
    async def test_other_client_error_maps_to_unavailable(self, classifier, bedrock_client):
        bedrock_client.converse.side_effect = ClientError(
            {'Error': {'Code': 'ModelNotReadyException'}},
            'Converse'
        )

        with pytest.raises(ClassifierUnavailableError):
            await classifier.classify('text')

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_unavailable(self, classifier, bedrock_client):
        bedrock_client.converse.side_effect = EndpointConnectionError(
            endpoint_url='https://bedrock-runtime.us-east-1.amazonaws.com'
        )

        with pytest.raises(ClassifierUnavailableError):
            await classifier.classify('text')

    @pytest.mark.asyncio
    async def test_malformed_output_maps_to_unavailable(self, classifier, bedrock_client):
        bedrock_client.converse.return_value = converse_response('I think it is fake.')

        with pytest.raises(ClassifierUnavailableError):
            await classifier.classify('text')

    @pytest.mark.asyncio
    async def test_out_of_range_confidence_maps_to_unavailable(self, classifier, bedrock_client):
        bedrock_client.converse.return_value = converse_response(
            json.dumps({**VERDICT, 'confidence': 7})
        )

        with pytest.raises(ClassifierUnavailableError):
            await classifier.classify('text')

    @pytest.mark.asyncio
    async def test_missing_content_maps_to_unavailable(self, classifier, bedrock_client):
        bedrock_client.converse.return_value = {'output': {}}

        with pytest.raises(ClassifierUnavailableError):
            await classifier.classify('text')
