"""
Model-tier adapters.

A model tier is an opaque ``invoke(prompt, options) -> text`` service with an
explicit load lifecycle. Loading is single-flight: concurrent callers await
the same in-flight load instead of starting their own.
"""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import httpx
import openai
from openai import AsyncOpenAI
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from tabgraph_router.config import Settings, get_logger
from tabgraph_router.agents.models import ModelOptions
from tabgraph_router.errors import ModelInvocationError, ModelNotLoadedError

logger = get_logger(__name__)

TRANSIENT_ERRORS = (
    httpx.HTTPError,
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
)


class ModelState(str, Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class ModelAdapter(ABC):
    """Abstract base for model tiers."""

    def __init__(self, model_name: str, load_timeout_s: Optional[float] = None):
        self.model_name = model_name
        self.load_timeout_s = load_timeout_s
        self.state = ModelState.NOT_LOADED
        self.last_error: Optional[BaseException] = None
        self._load_task: Optional[asyncio.Task] = None

    @property
    def label(self) -> str:
        return self.model_name

    def is_ready(self) -> bool:
        """Non-blocking readiness check."""
        return self.state is ModelState.READY

    @abstractmethod
    async def _load(self) -> None:
        """Load or verify the model. Raise on failure."""

    @abstractmethod
    async def _generate(self, prompt: str, options: ModelOptions) -> str:
        """Run one generation against a loaded model."""

    async def _run_load(self) -> None:
        self.state = ModelState.LOADING
        logger.info(f"Loading model {self.model_name}...")
        try:
            if self.load_timeout_s:
                await asyncio.wait_for(self._load(), timeout=self.load_timeout_s)
            else:
                await self._load()
        except Exception as e:
            self.state = ModelState.FAILED
            self.last_error = e
            logger.warning(f"Failed to load model {self.model_name}: {e}")
            return
        self.state = ModelState.READY
        self.last_error = None
        logger.info(f"Loaded model {self.model_name}")

    def _start_load(self) -> asyncio.Task:
        task = self._load_task
        if task is None or (task.done() and self.state is not ModelState.READY):
            task = asyncio.create_task(self._run_load())
            self._load_task = task
        return task

    async def ensure_loaded(self) -> None:
        """
        Load the model once; concurrent callers share the in-flight load.

        Raises:
            ModelNotLoadedError: If loading failed
        """
        if self.is_ready():
            return
        await asyncio.shield(self._start_load())
        if not self.is_ready():
            raise ModelNotLoadedError(f"Model {self.model_name} is not available: {self.last_error}")

    def preload(self) -> asyncio.Task:
        """Start loading in the background without waiting (requires a running loop)."""
        return self._start_load()

    async def invoke(self, prompt: str, options: Optional[ModelOptions] = None) -> str:
        """
        Generate text for ``prompt``.

        Raises:
            ModelNotLoadedError: If the model has not finished loading
            ModelInvocationError: If generation fails
        """
        if not self.is_ready():
            raise ModelNotLoadedError(f"Model {self.model_name} is not loaded")
        try:
            return await self._generate(prompt, options or ModelOptions())
        except ModelInvocationError:
            raise
        except (openai.OpenAIError, httpx.HTTPError) as e:
            raise ModelInvocationError(f"{self.model_name} generation failed: {e}") from e


class OpenAICompatibleAdapter(ModelAdapter):
    """
    Model tier served by a local OpenAI-compatible endpoint
    (llama.cpp server, vLLM, Ollama, ...).
    """

    def __init__(
        self,
        model_name: str,
        base_url: str,
        api_key: str = "local",
        client: Optional[AsyncOpenAI] = None,
        load_timeout_s: Optional[float] = None,
    ):
        super().__init__(model_name, load_timeout_s=load_timeout_s)
        self.client = client or AsyncOpenAI(base_url=base_url, api_key=api_key)

    @classmethod
    def from_settings(cls, settings: Settings, model_name: str) -> "OpenAICompatibleAdapter":
        return cls(
            model_name=model_name,
            base_url=settings.model_api_base_url,
            api_key=settings.model_api_key,
            load_timeout_s=settings.model_load_timeout_s,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    async def _load(self) -> None:
        # The endpoint answers for the model id only once it is being served.
        await self.client.models.retrieve(self.model_name)

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    async def _generate(self, prompt: str, options: ModelOptions) -> str:
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=options.max_new_tokens,
            temperature=options.temperature,
        )
        content = response.choices[0].message.content if response.choices else None
        return (content or "").strip()
