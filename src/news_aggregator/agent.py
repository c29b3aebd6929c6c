"""LangGraph agent definition for the news aggregator."""

import logging
import os
import sqlite3
from typing import Literal

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import SystemMessage, ToolMessage
from langgraph.checkpoint.sqlite import SqliteSaver
from langgraph.graph import END, START, MessagesState, StateGraph

from news_aggregator.tools import (
    add_article,
    bookmark_article,
    cleanup_articles,
    get_settings,
    list_articles,
    list_sources,
    mark_article_read,
    regenerate_summaries,
    run_crawler,
    search_articles,
)

logger = logging.getLogger(__name__)

DEFAULT_AGENT_MODEL = "claude-sonnet-4-5-20250929"

SYSTEM_PROMPT = """You are a news reading assistant for a personal tech news aggregator.

The aggregator collects articles from RSS feeds, web pages and GitHub trending lists,
summarizes them and stores them locally.

You help users:
- Browse the latest articles, optionally by category (AI, GitHub, Tech)
- Search stored articles by keyword
- Bookmark articles they want to keep and mark articles as read
- Add a single web page as an article by URL
- Fetch new articles from all sources on demand
- Replace template summaries with AI-generated ones
- See which sources are configured and what the current settings are

When a user asks what's new, use list_articles. When they look for a topic, use search_articles.
When they want to keep something, use bookmark_article with the article id.
Only run run_crawler or regenerate_summaries when the user asks for it; both can take a while.
Present articles in a readable format: title, source, date, summary and link.
Be concise but informative in your responses."""

# All tools available to the agent
TOOLS = [
    list_articles,
    search_articles,
    bookmark_article,
    mark_article_read,
    add_article,
    run_crawler,
    cleanup_articles,
    regenerate_summaries,
    list_sources,
    get_settings,
]


def _run_tool_calls(tools_by_name: dict, message) -> list[ToolMessage]:
    """Execute every tool call on an AI message, reporting failures back to the model."""
    replies = []
    for call in message.tool_calls:
        tool = tools_by_name.get(call["name"])
        if tool is None:
            content = f"Unknown tool '{call['name']}'"
            status = "error"
        else:
            try:
                content = str(tool.invoke(call["args"]))
                status = "success"
            except Exception as e:
                logger.warning("Tool '%s' failed: %s", call["name"], e)
                content = f"Tool '{call['name']}' failed: {e}"
                status = "error"
        replies.append(ToolMessage(content=content, tool_call_id=call["id"], status=status))
    return replies


def create_agent(
    checkpoint_db_path: str = "news_aggregator_checkpoints.db",
    tools: list | None = None,
    model=None,
):
    """Create and compile the news assistant graph.

    Args:
        checkpoint_db_path: SQLite file holding conversation checkpoints.
        tools: Tools bound to the model. Defaults to TOOLS.
        model: Chat model to use. Defaults to ChatAnthropic with AGENT_MODEL.

    Returns:
        Compiled LangGraph agent.
    """
    tools = TOOLS if tools is None else tools
    if model is None:
        model = ChatAnthropic(
            model=os.environ.get("AGENT_MODEL", DEFAULT_AGENT_MODEL),
            temperature=0,
        )
    assistant_model = model.bind_tools(tools) if tools else model
    tools_by_name = {t.name: t for t in tools}

    def assistant(state: MessagesState):
        reply = assistant_model.invoke([SystemMessage(content=SYSTEM_PROMPT), *state["messages"]])
        return {"messages": [reply]}

    def run_tools(state: MessagesState):
        return {"messages": _run_tool_calls(tools_by_name, state["messages"][-1])}

    def route(state: MessagesState) -> Literal["run_tools", "__end__"]:
        if state["messages"][-1].tool_calls:
            return "run_tools"
        return END

    builder = StateGraph(MessagesState)
    builder.add_node("assistant", assistant)
    builder.add_node("run_tools", run_tools)
    builder.add_edge(START, "assistant")
    builder.add_conditional_edges("assistant", route, ["run_tools", END])
    builder.add_edge("run_tools", "assistant")

    connection = sqlite3.connect(checkpoint_db_path, check_same_thread=False)
    return builder.compile(checkpointer=SqliteSaver(connection))
