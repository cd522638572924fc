import json
import logging
from typing import List, Optional

import boto3
import requests
from openai import OpenAI, APIError

from .errors import CompletionError, EmbeddingError
from .settings import Settings

logger = logging.getLogger(__name__)

OPENAI_EMBEDDINGS_URL = "https://api.openai.com/v1/embeddings"
FALLBACK_ANSWER = "Sorry, I couldn't generate a response at this time."


# ==== Embeddings ====

# embed("Chapter 1 ...") -> [0.0123, -0.0456, ...]  # `dimensions` floats

class OpenAIEmbedder:
    def __init__(self, api_key: str, model: str = "text-embedding-3-small",
                 dimensions: int = 1024, client=None):
        if not api_key and client is None:
            raise EmbeddingError("OPENAI_API_KEY not set")
        self.api_key = api_key
        self.model = model
        self.dimensions = dimensions
        self.client = client
        if self.client is None:
            try:
                self.client = OpenAI(api_key=api_key)
            except Exception as e:
                logger.warning("Could not initialize OpenAI client, using direct API calls: %s", e)

    def embed(self, text: str) -> List[float]:
        try:
            if self.client is None:
                return self._embed_http(text)
            resp = self.client.embeddings.create(
                model=self.model, input=[text], dimensions=self.dimensions)
            return list(resp.data[0].embedding)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError("Failed to generate embedding.", details=str(e)) from e

    def _embed_http(self, text: str) -> List[float]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        data = {"model": self.model, "input": [text], "dimensions": self.dimensions}
        response = requests.post(OPENAI_EMBEDDINGS_URL, headers=headers, json=data, timeout=60)
        response.raise_for_status()
        return response.json()["data"][0]["embedding"]


class BedrockTitanEmbedder:
    def __init__(self, region: str, model_id: str = "amazon.titan-embed-text-v2:0",
                 dimensions: int = 1024, client=None):
        if not region and client is None:
            raise EmbeddingError("AWS_REGION not set")
        self.model_id = model_id
        self.dimensions = dimensions
        # credentials come from the usual AWS_* environment / profile chain
        self.client = client or boto3.client("bedrock-runtime", region_name=region)

    def embed(self, text: str) -> List[float]:
        try:
            response = self.client.invoke_model(
                modelId=self.model_id,
                contentType="application/json",
                accept="application/json",
                body=json.dumps({"inputText": text, "dimensions": self.dimensions}),
            )
            payload = json.loads(response["body"].read())
        except Exception as e:
            raise EmbeddingError("Bedrock API call failed.", details=str(e)) from e

        embedding = payload.get("embedding")
        if not isinstance(embedding, list):
            logger.error("Invalid response structure from Bedrock: %s", payload)
            raise EmbeddingError("Failed to parse embedding from Bedrock response.")
        return embedding


def build_embedder(settings: Settings):
    provider = settings.embedding_provider.lower()
    if provider == "bedrock":
        return BedrockTitanEmbedder(settings.aws_region, settings.bedrock_embed_model,
                                    settings.embedding_dimensions)
    if provider == "openai":
        return OpenAIEmbedder(settings.openai_api_key, settings.openai_embed_model,
                              settings.embedding_dimensions)
    raise ValueError(f"Unknown EMBEDDING_PROVIDER: {settings.embedding_provider}")


# ==== Completion ====

class OpenAICompleter:
    def __init__(self, api_key: str, model: str = "gpt-4.1-nano", max_tokens: int = 1000,
                 temperature: float = 0.7, client=None):
        if not api_key and client is None:
            raise CompletionError("OPENAI_API_KEY not set")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client = client or OpenAI(api_key=api_key)

    def complete(self, prompt: str, model: Optional[str] = None, max_tokens: Optional[int] = None,
                 temperature: Optional[float] = None) -> Optional[str]:
        model = model or self.model
        logger.info("Sending prompt to OpenAI model: %s", model)
        try:
            completion = self.client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens if max_tokens is not None else self.max_tokens,
                temperature=temperature if temperature is not None else self.temperature,
            )
        except APIError as e:
            raise CompletionError("OpenAI API error.", details=f"{type(e).__name__} {e}") from e
        except Exception as e:
            raise CompletionError("Failed to get completion from OpenAI.", details=str(e)) from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            logger.error("OpenAI response did not contain content: %s", completion)
            return FALLBACK_ANSWER
        return content.strip()


def build_completer(settings: Settings) -> OpenAICompleter:
    return OpenAICompleter(settings.openai_api_key, settings.openai_chat_model,
                           settings.openai_max_tokens, settings.openai_temperature)
