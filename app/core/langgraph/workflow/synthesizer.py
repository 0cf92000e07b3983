"""Final synthesizer: turns accumulated findings into the answer."""

import json
from typing import (
    Any,
    Dict,
)

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    SystemMessage,
)

from app.core.langgraph.workflow.profiles import MarketProfile
from app.core.langgraph.workflow.schema import (
    AdvisorState,
    Participant,
)
from app.core.logging import logger


class FinalSynthesizer:
    """Last node of the graph. Never calls tools."""

    def __init__(self, model: BaseChatModel, profile: MarketProfile):
        """Initialize the synthesizer.

        Args:
            model: Smart-tier chat model.
            profile: Market profile used in the prompt.
        """
        self.model = model
        self.profile = profile

    def build_system_prompt(self, data: Dict[str, Any]) -> str:
        """Render the synthesis prompt with every findings namespace."""
        if data:
            sections = "\n\n".join(
                f"### {namespace}\n{json.dumps(findings, indent=2, default=str)}" for namespace, findings in data.items()
            )
            coverage = (
                f"Findings were collected by these specialists: {', '.join(data)}. "
                "Use every one of them; where a tool returned an error, say that data point is unavailable."
            )
        else:
            sections = "No specialist data was collected."
            coverage = "Answer from the conversation alone and say that live data was not available."

        return (
            f"You are an expert {self.profile.asset_label} advisor delivering professional market analysis.\n\n"
            f"Available data from specialist agents:\n{sections}\n\n"
            f"{coverage}\n\n"
            "INSTRUCTIONS:\n"
            "1. Start immediately with the analysis; no preamble or meta-commentary.\n"
            "2. Include the specific numbers, prices and percentages from the data.\n"
            "3. Interpret the numbers rather than listing them.\n"
            "4. Use ## headers for sections and end with an actionable perspective."
        )

    async def __call__(self, state: AdvisorState) -> Dict[str, Any]:
        """Produce the final answer and end the run.

        Args:
            state: Current advisor state.

        Returns:
            Dict[str, Any]: State update with the answer and ``next = End``.
        """
        response = await self.model.ainvoke(
            [SystemMessage(content=self.build_system_prompt(state.data)), *state.messages]
        )
        content = response.content if isinstance(response.content, str) else json.dumps(response.content)

        logger.info(
            "final_response_generated",
            namespaces=list(state.data),
            agent_calls=state.agent_calls,
            output_length=len(content),
        )
        return {
            "messages": [AIMessage(content=content, name=Participant.FINAL_RESPONSE.value)],
            "next": Participant.END,
        }
