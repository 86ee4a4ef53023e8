"""
Application events mapped to background job types.

This is the entry point the rest of the application uses to request work.
Triggering an event only inserts job rows; handlers never run inline.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from helpdesk.config.logging import get_logger
from helpdesk.infra.database import utcnow
from helpdesk.v1.core.exceptions import UnknownEventError
from helpdesk.v1.infra.jobs.models import Job
from helpdesk.v1.infra.jobs.queue import JobQueue

logger = get_logger(__name__)


class EventData(BaseModel):
    """Base for event payloads; unknown keys are passed through to handlers."""

    model_config = ConfigDict(extra="allow")


class EmptyEventData(EventData):
    pass


class FilePreviewData(EventData):
    file_id: int


class ConversationSlugData(EventData):
    conversation_slug: str


class MessageData(EventData):
    message_id: int


class ConversationData(EventData):
    conversation_id: int


class AutoResponseData(EventData):
    message_id: int
    tools: dict[str, dict[str, Any]] | None = None


class BulkUpdateData(EventData):
    user_id: str
    conversation_filter: list[int] | dict[str, Any]
    status: Literal["open", "closed", "spam"] | None = None
    assigned_to_id: str | None = None
    assigned_to_ai: bool | None = None
    message: str | None = None


class GmailWebhookData(EventData):
    body: Any = None
    headers: Any = None


class FaqData(EventData):
    faq_id: int


class GmailSupportEmailData(EventData):
    gmail_support_email_id: int


class GmailThreadsImportData(EventData):
    gmail_support_email_id: int
    from_inclusive: datetime
    to_inclusive: datetime


class WebsiteCrawlData(EventData):
    website_id: int
    crawl_id: int


class FlaggedMessageData(EventData):
    message_id: int
    reason: str | None


class SlackAgentMessageData(EventData):
    slack_user_id: str | None
    status_message_ts: str
    agent_thread_id: int
    confirmed_reply_text: str | None = None
    confirmed_knowledge_base_entry: str | None = None


@dataclass(frozen=True)
class EventDefinition:
    """Jobs enqueued for an event and the schema of its data."""

    jobs: tuple[str, ...]
    data: type[EventData] = EmptyEventData


EVENTS: dict[str, EventDefinition] = {
    "files/preview.generate": EventDefinition(
        jobs=("generate_file_preview",), data=FilePreviewData
    ),
    "conversations/embedding.create": EventDefinition(
        jobs=("embedding_conversation",), data=ConversationSlugData
    ),
    "conversations/message.created": EventDefinition(
        jobs=(
            "index_conversation_message",
            "generate_conversation_summary_embeddings",
            "merge_similar_conversations",
            "publish_new_message_event",
            "notify_vip_message",
            "categorize_conversation_to_issue_group",
        ),
        data=MessageData,
    ),
    "conversations/email.enqueued": EventDefinition(
        jobs=("post_email_to_gmail",), data=MessageData
    ),
    "conversations/auto-response.create": EventDefinition(
        jobs=("handle_auto_response",), data=AutoResponseData
    ),
    "conversations/bulk-update": EventDefinition(
        jobs=("bulk_update_conversations",), data=BulkUpdateData
    ),
    "conversations/update-suggested-actions": EventDefinition(
        jobs=("update_suggested_actions",), data=ConversationData
    ),
    "gmail/webhook.received": EventDefinition(
        jobs=("handle_gmail_webhook_event",), data=GmailWebhookData
    ),
    "faqs/embedding.create": EventDefinition(
        jobs=("embedding_faq",), data=FaqData
    ),
    "gmail/import-recent-threads": EventDefinition(
        jobs=("import_recent_gmail_threads",), data=GmailSupportEmailData
    ),
    "gmail/import-gmail-threads": EventDefinition(
        jobs=("import_gmail_threads",), data=GmailThreadsImportData
    ),
    "reports/weekly": EventDefinition(jobs=("generate_mailbox_weekly_report",)),
    "reports/daily": EventDefinition(jobs=("generate_mailbox_daily_report",)),
    "websites/crawl.create": EventDefinition(
        jobs=("crawl_website",), data=WebsiteCrawlData
    ),
    "messages/flagged.bad": EventDefinition(
        jobs=("suggest_knowledge_bank_changes",), data=FlaggedMessageData
    ),
    "conversations/auto-close.check": EventDefinition(
        jobs=("close_inactive_conversations",)
    ),
    "conversations/auto-close.process-mailbox": EventDefinition(
        jobs=("close_inactive_conversations_for_mailbox",)
    ),
    "conversations/human-support-requested": EventDefinition(
        jobs=("auto_assign_conversation", "publish_request_human_support"),
        data=ConversationData,
    ),
    "slack/agent.message": EventDefinition(
        jobs=("handle_slack_agent_message",), data=SlackAgentMessageData
    ),
}


class EventTrigger:
    """Translates application events into enqueued jobs."""

    def __init__(
        self, queue: JobQueue, events: dict[str, EventDefinition] | None = None
    ):
        self.queue = queue
        self.events = EVENTS if events is None else events

    def get_event(self, event_name: str) -> EventDefinition:
        try:
            return self.events[event_name]
        except KeyError:
            raise UnknownEventError(event_name) from None

    def list_events(self) -> dict[str, list[str]]:
        return {name: list(event.jobs) for name, event in self.events.items()}

    async def trigger_event(
        self,
        event_name: str,
        data: dict[str, Any] | EventData | None = None,
        sleep_seconds: float = 0,
    ) -> list[Job]:
        """
        Enqueue every job mapped to ``event_name``.

        Raises:
            UnknownEventError: the event is not in the table
            pydantic.ValidationError: ``data`` does not match the event schema
        """
        event = self.get_event(event_name)
        if isinstance(data, EventData):
            data = data.model_dump(mode="json")
        payload = event.data.model_validate(data or {}).model_dump(mode="json")

        scheduled_for = (
            utcnow() + timedelta(seconds=sleep_seconds) if sleep_seconds > 0 else None
        )

        jobs = [
            await self.queue.add_job(job_type, payload, scheduled_for)
            for job_type in event.jobs
        ]

        logger.info(
            "Event triggered",
            event=event_name,
            job_count=len(jobs),
            job_ids=[job.id for job in jobs],
            sleep_seconds=sleep_seconds or None,
        )
        return jobs
