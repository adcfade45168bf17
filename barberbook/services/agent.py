import json
import logging
from datetime import datetime
from typing import TypedDict, Annotated, Sequence

import pytz
from langchain_openai import ChatOpenAI
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langgraph.errors import GraphRecursionError
from langgraph.graph import StateGraph, END, add_messages
from langgraph.checkpoint.memory import MemorySaver

from barberbook.core.config import settings
from barberbook.services.prompts import FALLBACK_REPLY, SYSTEM_PROMPT_TEMPLATE
from barberbook.services.tools import TOOL_DESCRIPTIONS, TOOL_SCHEMAS, BookingTools, tool_json_schema

logger = logging.getLogger(__name__)

# Model/tool round trips per customer message
MAX_GRAPH_STEPS = 12

# --- State Definition ---

class AgentState(TypedDict):
    messages: Annotated[Sequence[BaseMessage], add_messages]
    # Conversation context; tools read these instead of trusting model arguments
    tenant_id: str
    phone: str

def openai_tool_specs() -> list:
    return [
        {
            "type": "function",
            "function": {
                "name": name,
                "description": TOOL_DESCRIPTIONS[name],
                "parameters": tool_json_schema(name),
            },
        }
        for name in TOOL_SCHEMAS
    ]

# --- Agent Class ---

class AppointmentAgent:
    def __init__(self):
        self.llm = ChatOpenAI(
            model=settings.openai_model,
            api_key=settings.openai_api_key,
            temperature=0.2,
        ).bind_tools(openai_tool_specs())

        # Memory persistence, one thread per tenant + customer
        self.memory = MemorySaver()

        workflow = StateGraph(AgentState)

        workflow.add_node("agent", self.call_model)
        workflow.add_node("action", self.call_tools)

        workflow.set_entry_point("agent")

        workflow.add_conditional_edges(
            "agent",
            self.should_continue,
            {
                "continue": "action",
                "end": END
            }
        )

        workflow.add_edge("action", "agent")

        self.app = workflow.compile(checkpointer=self.memory)

    def should_continue(self, state: AgentState):
        last_message = state['messages'][-1]
        if getattr(last_message, "tool_calls", None):
            return "continue"
        return "end"

    async def call_model(self, state: AgentState):
        response = await self.llm.ainvoke(state['messages'])
        return {"messages": [response]}

    async def call_tools(self, state: AgentState):
        tools = BookingTools(tenant_id=state["tenant_id"], phone=state["phone"])
        results = []
        for call in state['messages'][-1].tool_calls:
            logger.info(f"Tool call {call['name']} for tenant {state['tenant_id']}")
            result = await tools.run_safely(call["name"], call.get("args"))
            results.append(ToolMessage(
                content=json.dumps(result, default=str),
                tool_call_id=call["id"],
                name=call["name"],
            ))
        return {"messages": results}

    async def get_response(self, text: str, phone: str, tenant_id: str, timezone: str = None) -> str:
        """Process a customer message and return the reply to send back."""
        config = {
            "configurable": {"thread_id": f"{tenant_id}:{phone}"},
            "recursion_limit": MAX_GRAPH_STEPS,
        }

        state = self.app.get_state(config)
        if not state or not state.values or not state.values.get("messages"):
            tz_name = timezone or settings.timezone
            now = datetime.now(pytz.timezone(tz_name))
            system_content = SYSTEM_PROMPT_TEMPLATE.format(
                current_datetime=now.strftime('%A, %d/%m/%Y %H:%M'),
                timezone=tz_name,
                hold_ttl_minutes=settings.hold_ttl_minutes,
            )
            payload = {
                "messages": [SystemMessage(content=system_content), HumanMessage(content=text)],
                "tenant_id": tenant_id,
                "phone": phone,
            }
        else:
            payload = {"messages": [HumanMessage(content=text)]}

        try:
            result = await self.app.ainvoke(payload, config)
        except GraphRecursionError:
            logger.warning(f"Agent exceeded {MAX_GRAPH_STEPS} steps for tenant {tenant_id}")
            return FALLBACK_REPLY

        content = (result['messages'][-1].content or "").strip()
        return content or FALLBACK_REPLY

# Singleton instance
agent = AppointmentAgent()
