"""Entry point for the news aggregator: python -m news_aggregator [chat|crawl|regenerate]"""

import argparse
import asyncio
import logging
import os
import uuid
from pathlib import Path

from dotenv import load_dotenv
from langchain_core.messages import HumanMessage

from news_aggregator.agent import create_agent
from news_aggregator.database import Database
from news_aggregator.pipeline import run_ingestion
from news_aggregator.poller import start_polling
from news_aggregator.regenerate import regenerate_summaries
from news_aggregator.settings import ConfigurationError
from news_aggregator.tools import set_database

DATA_DIR = Path.home() / ".newsaggregator"
DEFAULT_DB_PATH = DATA_DIR / "news.db"
CHECKPOINT_DB_PATH = DATA_DIR / "checkpoints.db"
EXIT_COMMANDS = {"quit", "exit"}

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
# Quiet noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("langchain").setLevel(logging.WARNING)

logger = logging.getLogger("news_aggregator")


async def chat_loop(agent, config: dict) -> None:
    """Read questions from stdin and print the agent's answers until EOF or 'quit'."""
    print("News Aggregator ready. Ask what's new, search, or bookmark ('quit' to leave).\n")

    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            break

        question = line.strip()
        if not question:
            continue
        if question.lower() in EXIT_COMMANDS:
            break

        try:
            state = await asyncio.to_thread(
                agent.invoke, {"messages": [HumanMessage(content=question)]}, config
            )
        except Exception as e:
            logger.error("Agent turn failed: %s", e)
            message = str(e)
            if "tool_use" in message and "tool_result" in message:
                # Checkpointed history ends in an unanswered tool call
                config["configurable"]["thread_id"] = uuid.uuid4().hex
                print("\nThe conversation history was damaged, starting a new one. Please ask again.\n")
            else:
                print(f"\nSomething went wrong: {message}\n")
            continue

        print(f"\n{state['messages'][-1].content}\n")


async def run_chat(db: Database, checkpoint_path: str) -> None:
    """Chat with the agent while the poller crawls in the background."""
    set_database(db)
    agent = create_agent(checkpoint_db_path=checkpoint_path)
    config = {"configurable": {"thread_id": uuid.uuid4().hex}}

    poller_task = asyncio.create_task(start_polling(db))
    try:
        await chat_loop(agent, config)
    except KeyboardInterrupt:
        print("\nGoodbye!")
    finally:
        poller_task.cancel()
        try:
            await poller_task
        except asyncio.CancelledError:
            pass


def main() -> None:
    """Initialize the database and dispatch the requested command."""
    load_dotenv()

    parser = argparse.ArgumentParser(prog="news_aggregator", description="Personal tech news aggregator")
    parser.add_argument(
        "command",
        nargs="?",
        default="chat",
        choices=["chat", "crawl", "regenerate"],
        help="chat (default): agent with background crawling; crawl: one crawl pass; "
        "regenerate: replace template summaries with AI summaries",
    )
    args = parser.parse_args()

    db_path = os.environ.get("NEWS_DB_PATH", str(DEFAULT_DB_PATH))
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    checkpoint_path = os.environ.get("NEWS_CHECKPOINT_PATH", str(CHECKPOINT_DB_PATH))
    Path(checkpoint_path).parent.mkdir(parents=True, exist_ok=True)

    db = Database(db_path)
    db.connect()
    try:
        db.seed_default_sources()

        if args.command == "crawl":
            result = run_ingestion(db)
            print(
                f"Inserted {result.inserted} articles, {result.failed_sources} sources failed, "
                f"{result.evicted} evicted"
            )
        elif args.command == "regenerate":
            try:
                result = regenerate_summaries(db)
            except ConfigurationError as e:
                parser.exit(1, f"{e}\n")
            print(f"Updated {result.total_updated} of {result.total_processed} summaries")
        else:
            asyncio.run(run_chat(db, checkpoint_path))
    finally:
        db.close()


if __name__ == "__main__":
    main()
