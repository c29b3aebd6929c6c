"""Batch regeneration of template summaries, with progress events."""

import logging
from collections.abc import Callable

from news_aggregator.database import Database
from news_aggregator.models import RegenerationResult
from news_aggregator.settings import ConfigurationError, require_summary_config
from news_aggregator.summarizer import TEMPLATE_SUMMARY_MARKER, Summarizer

logger = logging.getLogger(__name__)

EVENT_START = "summaries-update:start"
EVENT_PROGRESS = "summaries-update:progress"
EVENT_COMPLETE = "summaries-update:complete"

EventSink = Callable[[str, dict], None]


def log_event_sink(event: str, payload: dict) -> None:
    """Event sink that writes progress to the log."""
    if event == EVENT_PROGRESS:
        logger.info("[%d/%d] %s", payload["current"], payload["total"], payload["title"])
    else:
        logger.info("%s %s", event, payload)


def regenerate_summaries(
    db: Database,
    summarizer: Summarizer | None = None,
    emit: EventSink = log_event_sink,
) -> RegenerationResult:
    """Re-summarize every article whose summary is a template or empty.

    Emits a start event, two progress events per article (before and after
    it is updated) and a final complete event.

    Raises:
        ConfigurationError: If no AI endpoint is configured.
    """
    if summarizer is None:
        summarizer = Summarizer(require_summary_config(db))
    if not summarizer.remote_enabled:
        raise ConfigurationError("Summary regeneration needs a configured AI endpoint")

    articles = db.articles_needing_summary(TEMPLATE_SUMMARY_MARKER)
    total = len(articles)
    updated = 0
    emit(EVENT_START, {"total": total})

    for index, (article_id, title, content) in enumerate(articles):
        current = index + 1
        emit(EVENT_PROGRESS, {"current": current, "total": total, "title": title, "updated": updated})

        summary = summarizer.summarize(title, content)
        if db.update_summary(article_id, summary):
            updated += 1

        emit(EVENT_PROGRESS, {"current": current, "total": total, "title": title, "updated": updated})

    emit(EVENT_COMPLETE, {"total_updated": updated, "total_processed": total})
    return RegenerationResult(total_updated=updated, total_processed=total)
