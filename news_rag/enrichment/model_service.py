"""
Model Service Client

Wraps the external AI model service that enriches articles and answers chat
questions. Three JSON endpoints share one base URL:

- /summarize  {title, body}       -> {title, summary, sentiment, embedding}
- /embedding  {text}              -> {embedding}
- /chatbot    {question, context} -> {response}

Calls are never retried here. A single failed attempt surfaces as
ModelUnavailable and the caller decides what to do with the article.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any

import requests

from ..storage.models import SENTIMENTS

logger = logging.getLogger(__name__)


class ModelUnavailable(Exception):
    """Raised when the model service fails, times out or reports an error."""
    pass


class EmbeddingDimensionError(ModelUnavailable):
    """Raised when embedding dimensions don't match expected value."""
    pass


@dataclass
class EnrichmentResult:
    """Summary, sentiment and embedding produced for one article."""
    summary: str
    sentiment: str
    embedding: List[float] = field(default_factory=list)


class EnrichmentClient(ABC):
    """Capability interface over the model service."""

    @abstractmethod
    def summarize(self, title: str, body: str) -> EnrichmentResult:
        """Summarize an article, classify its sentiment and embed it."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Embed free text such as a user query."""

    @abstractmethod
    def converse(self, question: str, context: str) -> str:
        """Answer a question given retrieved context."""


def derive_base_url(raw_url: str, force_http: bool = True) -> str:
    """
    Normalize the configured base URL.

    The tunnel in front of the model service answers plain HTTP with a
    temporary redirect to HTTPS, so requests go out over http:// and the
    redirect is followed.
    """
    base = raw_url.strip().rstrip('/')
    if force_http and base.startswith('https://'):
        base = 'http://' + base[len('https://'):]
    return base


class ModelServiceClient(EnrichmentClient):
    """HTTP implementation of EnrichmentClient."""

    def __init__(
        self,
        base_url: str,
        connect_timeout: int = 10,
        timeout: int = 1200,
        max_redirects: int = 5,
        force_http: bool = True,
        verify_ssl: bool = True,
        expected_dimensions: Optional[int] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the model service client.

        Args:
            base_url: Model service base URL
            connect_timeout: Connection timeout in seconds
            timeout: Read timeout in seconds (model calls can take minutes)
            max_redirects: Maximum redirects followed per call
            force_http: Downgrade https:// base URLs to http://
            verify_ssl: Verify certificates on redirected HTTPS hops
            expected_dimensions: Embedding length to enforce (None to skip)
            session: Pre-built requests session (mainly for tests)
        """
        self.base_url = derive_base_url(base_url, force_http=force_http)
        self.connect_timeout = connect_timeout
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.expected_dimensions = expected_dimensions

        self.session = session or requests.Session()
        self.session.max_redirects = max_redirects

        logger.info(f"Initialized ModelServiceClient with base URL: {self.base_url}")

    @classmethod
    def from_config(cls, config) -> "ModelServiceClient":
        return cls(
            base_url=config.model_base_url,
            connect_timeout=config.model_connect_timeout,
            timeout=config.model_timeout,
            max_redirects=config.model_max_redirects,
            force_http=config.model_force_http,
            verify_ssl=config.model_verify_ssl,
            expected_dimensions=config.embedding_dimensions,
        )

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a JSON payload and return the decoded JSON object.

        Raises:
            ModelUnavailable: On transport errors, timeouts, non-200 responses,
                undecodable bodies or an in-band error field
        """
        url = f"{self.base_url}/{endpoint}"
        logger.info(f"POST → {url}")

        try:
            response = self.session.post(
                url,
                json=payload,
                timeout=(self.connect_timeout, self.timeout),
                allow_redirects=True,
                verify=self.verify_ssl
            )
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise ModelUnavailable(
                f"Model service request to /{endpoint} timed out after {self.timeout}s"
            )
        except requests.exceptions.ConnectionError:
            raise ModelUnavailable(
                f"Unable to connect to model service at {self.base_url}"
            )
        except requests.exceptions.TooManyRedirects:
            raise ModelUnavailable(
                f"Model service redirected /{endpoint} too many times"
            )
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else 'unknown'
            raise ModelUnavailable(f"Model service /{endpoint} failed: HTTP {status}")
        except requests.exceptions.RequestException as e:
            raise ModelUnavailable(f"Model service /{endpoint} request error: {e}")

        logger.debug(f"/{endpoint} responded with status {response.status_code}")
        if response.status_code != 200:
            raise ModelUnavailable(
                f"Model service /{endpoint} failed: HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError:
            raise ModelUnavailable(f"Model service /{endpoint} returned a non-JSON body")

        if not isinstance(data, dict):
            raise ModelUnavailable(f"Unexpected /{endpoint} response format: {type(data).__name__}")

        # The service reports its own failures inside 200 responses
        if data.get('error'):
            raise ModelUnavailable(f"Model service /{endpoint} reported an error: {data['error']}")

        return data

    def _parse_embedding(self, data: Dict[str, Any], endpoint: str) -> List[float]:
        embedding = data.get('embedding')
        if not isinstance(embedding, list) or not embedding:
            raise ModelUnavailable(f"Unexpected /{endpoint} response format: missing embedding")

        try:
            embedding = [float(value) for value in embedding]
        except (TypeError, ValueError):
            raise ModelUnavailable(f"Unexpected /{endpoint} response format: non-numeric embedding")

        if self.expected_dimensions and len(embedding) != self.expected_dimensions:
            raise EmbeddingDimensionError(
                f"Expected {self.expected_dimensions} dimensions, got {len(embedding)}"
            )
        return embedding

    def summarize(self, title: str, body: str) -> EnrichmentResult:
        data = self._post('summarize', {'title': title, 'body': body})

        summary = data.get('summary')
        if not isinstance(summary, str):
            raise ModelUnavailable("Unexpected /summarize response format: missing summary")

        sentiment = str(data.get('sentiment') or '').strip().lower()
        if sentiment not in SENTIMENTS:
            raise ModelUnavailable(f"Unexpected sentiment label from /summarize: {data.get('sentiment')!r}")

        return EnrichmentResult(
            summary=summary,
            sentiment=sentiment,
            embedding=self._parse_embedding(data, 'summarize')
        )

    def embed(self, text: str) -> List[float]:
        data = self._post('embedding', {'text': text})
        return self._parse_embedding(data, 'embedding')

    def converse(self, question: str, context: str) -> str:
        data = self._post('chatbot', {'question': question, 'context': context})

        answer = data.get('response')
        if not isinstance(answer, str):
            raise ModelUnavailable("Unexpected /chatbot response format: missing response")
        return answer
