"""
Complaint text classifier backed by the OpenAI chat API
"""
import json
from typing import Any, List, Optional

import openai
from openai import AsyncOpenAI

from civic_triage.config import settings
from civic_triage.exceptions import ExternalDataUnavailable
from civic_triage.services.external import ClassificationResult
from civic_triage.logging_config import logger

PROMPT_TEMPLATE = """Classify the following civic complaint submitted by a citizen.

Allowed categories: {categories}

Respond with valid JSON of the form:
{{"category": "<one allowed category>", "sentiment": <number between -1 and 1>}}

Complaint: {complaint_text}"""


class OpenAIClassifier:
    """Category and sentiment labels for complaint text"""

    def __init__(self, api_key: Optional[str] = None, categories: Optional[List[str]] = None, client: Optional[Any] = None):
        """
        Initialize classifier

        Args:
            api_key: OpenAI API key (uses settings if not provided)
            categories: Allowed category labels (uses settings if not provided)
            client: Preconfigured async client, mainly for tests
        """
        self.api_key = api_key or settings.OPENAI_API_KEY
        if client is None and not self.api_key:
            raise ValueError("OpenAI API key is required")

        self.client = client or AsyncOpenAI(api_key=self.api_key, timeout=settings.REQUEST_TIMEOUT)
        self.model = settings.CLASSIFIER_MODEL
        self.categories = list(categories or settings.CLASSIFIER_CATEGORIES)
        self.max_tokens = 60
        self.temperature = 0.0

        logger.info(f"Classifier initialized with model {self.model} and {len(self.categories)} categories")

    async def classify(self, text: str) -> ClassificationResult:
        """
        Classify complaint text

        Args:
            text: Complaint description

        Returns:
            ClassificationResult with category (None if not an allowed label) and sentiment

        Raises:
            ExternalDataUnavailable: If the API call fails or returns unusable output
        """
        prompt = PROMPT_TEMPLATE.format(
            categories=", ".join(self.categories),
            complaint_text=text.strip()
        )

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "system",
                        "content": "You label municipal complaints and respond only with valid JSON."
                    },
                    {
                        "role": "user",
                        "content": prompt
                    }
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                response_format={"type": "json_object"}
            )
        except openai.APIError as e:
            logger.error(f"OpenAI API error during classification: {str(e)}")
            raise ExternalDataUnavailable("classifier", str(e)) from e

        return self._parse_response(response)

    def _parse_response(self, response: Any) -> ClassificationResult:
        """
        Parse and validate the model output

        Raises:
            ExternalDataUnavailable: If the content is not the expected JSON
        """
        try:
            content = response.choices[0].message.content
            data = json.loads(content)
        except (json.JSONDecodeError, TypeError, IndexError, AttributeError) as e:
            logger.error(f"Invalid classifier response: {str(e)}")
            raise ExternalDataUnavailable("classifier", f"invalid response: {str(e)}") from e

        if not isinstance(data, dict):
            raise ExternalDataUnavailable("classifier", "response is not a JSON object")

        category = self._match_category(data.get("category"))

        sentiment = data.get("sentiment")
        if isinstance(sentiment, (int, float)) and not isinstance(sentiment, bool):
            sentiment = max(-1.0, min(1.0, float(sentiment)))
        else:
            sentiment = None

        return ClassificationResult(category=category, sentiment=sentiment)

    def _match_category(self, label: Any) -> Optional[str]:
        if not isinstance(label, str):
            return None
        wanted = label.strip().casefold()
        for category in self.categories:
            if category.casefold() == wanted:
                return category
        logger.warning(f"Classifier returned unknown category: {label}")
        return None
