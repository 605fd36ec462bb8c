"""Provider-agnostic AI service: generation, embeddings and retrieval.

OpenAI and OpenRouter are served through LangChain's OpenAI-compatible chat
model. Embeddings always go to the OpenAI endpoint because OpenRouter does not
serve embedding models.
"""

import json
import logging
import re
from typing import Any, TypeVar

import json_repair
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI, OpenAIEmbeddings
from pydantic import BaseModel, field_validator, model_validator

from beacon.config import Settings
from beacon.exceptions import AIProviderError, AIResponseParseError, EmbeddingError
from beacon.services.vector_store import Document, VectorStore

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

SUPPORTED_PROVIDERS = ("openrouter", "openai", "anthropic", "google", "local")

DEFAULT_CONTEXT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Use the provided context to answer the query accurately."
)

ERROR_ANALYSIS_PROMPT = """
Analyze this error and provide a detailed analysis:

Error Type: {type}
Error Message: {message}
{stack_trace}
{context}

Provide your analysis in the following JSON format:
{{
  "summary": "Brief summary of the error",
  "severity": "critical|high|medium|low",
  "category": "runtime|configuration|dependency|network|database|other",
  "possibleCauses": ["cause1", "cause2", "cause3"],
  "suggestedFixes": [
    {{
      "description": "Fix description",
      "code": "Optional code example",
      "confidence": 0.9
    }}
  ],
  "relatedErrors": ["error_id1", "error_id2"]
}}
"""

T = TypeVar("T", bound=BaseModel)


class AIConfig(BaseModel):
    """Configuration for :func:`create_ai_service`."""

    provider: str
    api_key: str = ""
    base_url: str | None = None
    default_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    embedding_base_url: str | None = None
    retrieval_limit: int = 5
    timeout: float = 30.0

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unknown provider: {v}")
        return v

    @model_validator(mode="after")
    def validate_api_key(self) -> "AIConfig":
        if self.provider != "local" and not self.api_key:
            raise ValueError(f"An API key is required for the {self.provider} provider")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "AIConfig":
        return cls(
            provider=settings.ai_provider,
            api_key=settings.ai_api_key,
            base_url=settings.openrouter_api_base
            if settings.ai_provider == "openrouter"
            else settings.openai_api_base,
            default_model=settings.ai_default_model,
            embedding_model=settings.ai_embedding_model,
            embedding_base_url=settings.openai_api_base,
            retrieval_limit=settings.ai_retrieval_limit,
            timeout=settings.ai_request_timeout,
        )


def parse_json_response(response: str) -> dict[str, Any]:
    """Extract the JSON object from a model response.

    Strips markdown fences, takes the outermost ``{...}`` and repairs common
    defects (trailing commas, single quotes, truncated output).

    Raises:
        AIResponseParseError: If no JSON object can be recovered.
    """
    cleaned = response
    if "```json" in cleaned:
        cleaned = re.sub(r"```json\s*", "", cleaned).replace("```", "")
    elif "```" in cleaned:
        cleaned = re.sub(r"```\s*", "", cleaned)

    match = re.search(r"\{[\s\S]*\}", cleaned)
    if not match:
        logger.error(f"Failed to parse AI response: {response[:500]}")
        raise AIResponseParseError(
            message="Failed to parse AI response",
            details="No JSON found in response",
        )

    parsed = json_repair.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise AIResponseParseError(
            message="Failed to parse AI response",
            details=f"Expected a JSON object, got {type(parsed).__name__}",
        )
    return parsed


class AIService:
    """OpenAI-compatible implementation of the AI service."""

    def __init__(self, config: AIConfig, vector_store: VectorStore | None = None):
        self.config = config
        self.default_model = config.default_model
        self.embedding_model = config.embedding_model
        self.vector_store = vector_store

        self._llm: ChatOpenAI | None = None
        self._embeddings: OpenAIEmbeddings | None = None

    @property
    def llm(self) -> ChatOpenAI:
        """Get or create the chat model instance."""
        if self._llm is None:
            self._llm = ChatOpenAI(
                model=self.default_model,
                openai_api_key=self.config.api_key,
                openai_api_base=self.config.base_url,
                timeout=self.config.timeout,
            )
        return self._llm

    @property
    def embeddings(self) -> OpenAIEmbeddings:
        """Get or create the embeddings instance."""
        if self._embeddings is None:
            self._embeddings = OpenAIEmbeddings(
                model=self.embedding_model,
                openai_api_key=self.config.api_key,
                openai_api_base=self.config.embedding_base_url,
                check_embedding_ctx_length=False,
            )
        return self._embeddings

    def _require_vector_store(self) -> VectorStore:
        if self.vector_store is None:
            raise AIProviderError("Vector store not configured")
        return self.vector_store

    async def generate(
        self,
        prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ) -> str:
        """Generate a completion for ``prompt``.

        Raises:
            AIProviderError: If the provider call fails.
        """
        messages: list[BaseMessage] = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=prompt))

        params: dict[str, Any] = {}
        if model:
            params["model"] = model
        if temperature is not None:
            params["temperature"] = temperature
        if max_tokens is not None:
            params["max_tokens"] = max_tokens

        try:
            response = await self.llm.ainvoke(messages, **params)
        except Exception as e:
            logger.error(f"AI generation failed: {e}")
            raise AIProviderError(message="AI generation failed", details=str(e)) from e

        return str(response.content)

    async def extract(self, prompt: str, schema: type[T]) -> T:
        """Generate a structured object validated against ``schema``."""
        try:
            structured = self.llm.with_structured_output(schema)
            return await structured.ainvoke([HumanMessage(content=prompt)])
        except Exception as e:
            logger.error(f"AI extraction failed: {e}")
            raise AIProviderError(message="AI extraction failed", details=str(e)) from e

    async def embed(self, text: str) -> list[float]:
        try:
            return await self.embeddings.aembed_query(text)
        except Exception as e:
            logger.error(f"Embedding generation failed: {e}")
            raise EmbeddingError(message="Embedding generation failed", details=str(e)) from e

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            return await self.embeddings.aembed_documents(texts)
        except Exception as e:
            logger.error(f"Batch embedding generation failed: {e}")
            raise EmbeddingError(message="Embedding generation failed", details=str(e)) from e

    async def add_documents(self, documents: list[Document]) -> None:
        """Embed and store documents in the vector store."""
        store = self._require_vector_store()
        embeddings = await self.embed_batch([doc.content for doc in documents])
        await store.add_documents(
            [
                doc.model_copy(update={"embedding": embedding})
                for doc, embedding in zip(documents, embeddings)
            ]
        )

    async def search(
        self,
        query: str,
        namespace: str,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        min_similarity: float = 0.0,
    ) -> list[Document]:
        store = self._require_vector_store()
        query_embedding = await self.embed(query)
        return await store.search(
            query_embedding,
            namespace=namespace,
            filters=filters,
            limit=limit or self.config.retrieval_limit,
            min_similarity=min_similarity,
        )

    async def generate_with_context(
        self,
        prompt: str,
        namespace: str,
        filters: dict[str, Any] | None = None,
        system_prompt: str | None = None,
        **options: Any,
    ) -> str:
        """Answer ``prompt`` grounded on the most similar stored documents."""
        documents = await self.search(prompt, namespace=namespace, filters=filters)

        context_text = "\n\n---\n\n".join(
            f"[{doc.metadata.get('type')}] {doc.metadata.get('source')}:\n{doc.content}"
            for doc in documents
        )
        enhanced_prompt = f"Context:\n{context_text}\n\nQuery: {prompt}"

        return await self.generate(
            enhanced_prompt,
            system_prompt=system_prompt or DEFAULT_CONTEXT_SYSTEM_PROMPT,
            **options,
        )


def create_ai_service(config: AIConfig, vector_store: VectorStore | None = None) -> AIService:
    """Build the AI service for ``config.provider``.

    Raises:
        AIProviderError: If the provider has no implementation.
    """
    if config.provider == "openai":
        return AIService(config, vector_store)

    if config.provider == "openrouter":
        logger.warning(
            "OpenRouter does not serve embeddings; embedding calls use the OpenAI endpoint"
        )
        config = config.model_copy(update={"base_url": config.base_url or OPENROUTER_BASE_URL})
        return AIService(config, vector_store)

    if config.provider in ("anthropic", "google", "local"):
        raise AIProviderError(f"{config.provider.capitalize()} provider not yet implemented")

    raise AIProviderError(f"Unknown provider: {config.provider}")


async def analyze_error(ai: AIService, error: dict[str, Any]) -> dict[str, Any]:
    """Ask the model for a structured analysis of an error.

    Args:
        ai: AI service used for generation
        error: ``message``, ``type`` and optional ``stackTrace`` and ``context``

    Returns:
        Analysis with summary, severity, category, possibleCauses,
        suggestedFixes and relatedErrors.

    Raises:
        AIResponseParseError: If the response holds no JSON object.
    """
    stack_trace = error.get("stackTrace")
    context = error.get("context")
    prompt = ERROR_ANALYSIS_PROMPT.format(
        type=error.get("type"),
        message=error.get("message"),
        stack_trace=f"Stack Trace:\n{stack_trace}" if stack_trace else "",
        context=f"Context: {json.dumps(context, indent=2, default=str)}" if context else "",
    )

    response = await ai.generate(prompt, temperature=0.7, max_tokens=1000)
    return parse_json_response(response)
