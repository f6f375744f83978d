"""Slack notices for finished plans.

The worker calls the notifier built by :func:`make_notifier` once per history
entry. Posting failures surface as :class:`SlackError`; the worker logs them
and carries on with the queue.
"""

import logging
from dataclasses import dataclass

from hands_protocol.store.models import HistoryEntry

logger = logging.getLogger(__name__)


class SlackError(Exception):
    """Raised when a plan notice cannot be posted."""


@dataclass
class PlanNotice:
    plan_id: str
    status: str
    channel: str
    ts: str


def get_client(token: str | None):
    """Slack WebClient for ``token``, or None when no token is configured."""
    if not token:
        return None
    from slack_sdk import WebClient
    return WebClient(token=token)


def format_execution_notification(entry: HistoryEntry) -> list[dict]:
    """Format a finished plan as Slack blocks."""
    emoji = ":white_check_mark:" if entry.status == "completed" else ":x:"
    steps = entry.result or []
    done = sum(1 for s in steps if s.get("status") == "success")
    text = (
        f"{emoji} *Plan {entry.status}*\n"
        f"*{entry.original_command[:150]}* (`{entry.id}`)\n"
        f"Steps succeeded: {done}/{len(steps)}"
    )
    if entry.error:
        text += f"\nError: {entry.error[:200]}"
    return [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]


def post_plan_notice(client, channel: str, entry: HistoryEntry) -> PlanNotice:
    """Post the outcome of ``entry`` to ``channel``."""
    if client is None:
        raise SlackError("Slack not configured: SLACK_BOT_TOKEN not set")
    from slack_sdk.errors import SlackApiError

    try:
        response = client.chat_postMessage(
            channel=channel,
            text=f"Plan {entry.status}: {entry.original_command[:80]}",
            blocks=format_execution_notification(entry),
        )
    except SlackApiError as e:
        raise SlackError(f"Slack rejected notice for {entry.id}: {e.response.get('error')}") from e

    return PlanNotice(
        plan_id=entry.id,
        status=entry.status,
        channel=response["channel"],
        ts=response["ts"],
    )


def make_notifier(token: str | None, channel: str | None):
    """Build a worker notifier, or None when Slack is not configured."""
    if not token or not channel:
        return None
    client = get_client(token)

    def notify(entry: HistoryEntry) -> PlanNotice:
        notice = post_plan_notice(client, channel, entry)
        logger.info("Posted %s notice for %s to %s (ts=%s)", notice.status, notice.plan_id, notice.channel, notice.ts)
        return notice

    return notify
