"""
Instrumented OpenAI client wrapper.

Records one telemetry row per chat completion without modifying behavior.
"""

from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..core.identity import IdentityProvider
from ..core.pricing import TokenUsage, estimate_cost_usd
from ..core.validation import RecordResult, record_telemetry
from ..storage.repository import RowSource


class InstrumentedOpenAI:
    """OpenAI client wrapper that reports agent run telemetry.

    Every successful completion is recorded through the validation gate.
    All failures are loud to ensure no silent data loss.
    """

    def __init__(
        self,
        task_id: str,
        agent: str,
        model: str,
        row_source: RowSource,
        identity_provider: IdentityProvider,
        run_id: Optional[str] = None,
        session_key: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        """Initialize the instrumented client.

        Args:
            task_id: Task the agent is working on (required)
            agent: Agent name recorded with each call (required)
            model: OpenAI model name, must be in the pricing table (required)
            row_source: Store receiving the telemetry rows
            identity_provider: Ambient identity required to record
            run_id: Optional run identifier attached to every row
            session_key: Optional session key attached to every row
            client: Preconfigured OpenAI client (defaults to ``OpenAI()``)

        Raises:
            ValueError: If task_id, agent or model is missing/empty
        """
        if not task_id or not task_id.strip():
            raise ValueError("task_id is required and cannot be empty")
        if not agent or not agent.strip():
            raise ValueError("agent is required and cannot be empty")
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.task_id = task_id
        self.agent = agent
        self.model = model
        self.row_source = row_source
        self.identity_provider = identity_provider
        self.run_id = run_id
        self.session_key = session_key
        self.client = client or OpenAI()
        self.last_record: Optional[RecordResult] = None

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs: Any
    ) -> Any:
        """Create a chat completion and record its token usage and cost.

        Args:
            messages: List of message dictionaries (required)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)
            **kwargs: Additional OpenAI parameters

        Returns:
            OpenAI chat completion response, unchanged

        Raises:
            ValueError: If messages is empty or usage is missing
            OpenAI API errors: Propagated without modification
            Telemetry errors: Propagated without modification
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs
        )

        usage = response.usage
        if not usage:
            raise ValueError("OpenAI response missing usage information")

        token_usage = TokenUsage(
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
        )
        self.last_record = record_telemetry(
            self.identity_provider,
            self.row_source,
            task_id=self.task_id,
            agent=self.agent,
            model=self.model,
            input_tokens=token_usage.input_tokens,
            output_tokens=token_usage.output_tokens,
            estimated_cost_usd=estimate_cost_usd(self.model, token_usage),
            run_id=self.run_id,
            session_key=self.session_key,
        )
        return response
