# aibot/services/langchain_service.py

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_openai import ChatOpenAI
from typing import List, Optional
import asyncio
import logging

import httpx
import openai

# Import langgraph components
from langgraph.graph import StateGraph, MessagesState, START, END
from langgraph.errors import GraphRecursionError
from langgraph.prebuilt import ToolNode, tools_condition

from aibot.core.config import Settings, get_settings
from aibot.core.exceptions import ModelTimeout, ModelUnavailable
from aibot.services.passport_tool import PassportExtractorTool
from aibot.services.prompts import get_agent_prompt, message_text
from aibot.services.state import Message

logger = logging.getLogger(__name__)


class LLMService:
    """
    Completion client for the locally hosted model.

    Runs a two-node LangGraph workflow: the agent node calls the chat model
    with the passport tool bound, and the tools node executes whatever tool
    call the model chose before handing the result back to the agent.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm: Optional[BaseChatModel] = None,
        vision_llm: Optional[BaseChatModel] = None,
    ):
        settings = settings or get_settings()
        self.recursion_limit = settings.AGENT_RECURSION_LIMIT
        self.llm = llm or ChatOpenAI(
            model=settings.MODEL_NAME,
            temperature=settings.MODEL_TEMPERATURE,
            base_url=settings.MODEL_BASE_URL,
            api_key=settings.MODEL_API_KEY,
            timeout=settings.MODEL_TIMEOUT,
            max_retries=0,
        )
        self.vision_llm = vision_llm or ChatOpenAI(
            model=settings.VISION_MODEL,
            temperature=settings.VISION_TEMPERATURE,
            base_url=settings.MODEL_BASE_URL,
            api_key=settings.MODEL_API_KEY,
            timeout=settings.VISION_TIMEOUT,
            streaming=settings.VISION_STREAM,
            max_retries=0,
        )

        self.passport_tool = PassportExtractorTool(self.vision_llm)
        self.tools = [self.passport_tool.as_tool()]
        for tool in self.tools:
            logger.info(f"Registered tool: {tool.name} - {tool.description}")

        self.prompt = get_agent_prompt().partial(tools=self.describe_tools())
        self.llm_with_tools = self.llm.bind_tools(self.tools)
        self.workflow = self._create_workflow_graph()

    def describe_tools(self) -> str:
        return "\n".join(f"- {tool.name}: {tool.description}" for tool in self.tools)

    async def call_model(self, state: MessagesState) -> dict:
        """Agent node: ask the model for the next message (answer or tool call)"""
        chain = self.prompt | self.llm_with_tools
        response = await chain.ainvoke({"messages": state["messages"]})
        return {"messages": [response]}

    def _create_workflow_graph(self):
        """Create the workflow graph"""
        graph_builder = StateGraph(MessagesState)

        graph_builder.add_node("agent", self.call_model)
        graph_builder.add_node("tools", ToolNode(self.tools))

        graph_builder.add_edge(START, "agent")

        # The model decides whether a tool runs before the final answer
        graph_builder.add_conditional_edges(
            "agent",
            tools_condition,
            {"tools": "tools", END: END},
        )
        graph_builder.add_edge("tools", "agent")

        return graph_builder.compile()

    @staticmethod
    def to_langchain_messages(history: List[Message]) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        for turn in history:
            if turn.role == "user":
                messages.append(HumanMessage(content=turn.content))
            elif turn.role == "assistant":
                messages.append(AIMessage(content=turn.content))
        return messages

    async def complete(self, history: List[Message], prompt: str) -> str:
        """Generate the next assistant message for prior turns plus a new user message"""
        messages = self.to_langchain_messages(history)
        messages.append(HumanMessage(content=prompt))
        logger.debug(f"Sending {len(messages)} messages (including history) to the model")

        try:
            result = await self.workflow.ainvoke(
                {"messages": messages},
                config={"recursion_limit": self.recursion_limit},
            )
        except (openai.APITimeoutError, httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise ModelTimeout(f"Model request timed out: {e}") from e
        except (openai.APIConnectionError, openai.APIStatusError, httpx.HTTPError) as e:
            raise ModelUnavailable(f"Model backend unavailable: {e}") from e
        except GraphRecursionError as e:
            logger.error(f"Agent stopped after {self.recursion_limit} steps without an answer")
            raise ModelUnavailable(f"Model did not finish within the step limit: {e}") from e
        except Exception as e:
            logger.error(f"Unexpected error from the model workflow: {e}", exc_info=True)
            raise ModelUnavailable(f"Model workflow failed: {e}") from e

        return message_text(result["messages"][-1].content)
