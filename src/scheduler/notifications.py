"""
Notification handlers for sourcer run results.

Supports:
- Slack webhooks
- Discord webhooks
- Logging fallback
"""

import logging
from typing import Optional

import httpx

from ..config.settings import settings
from ..harvester.orchestrator import SourcerResult, SourcerStatus

logger = logging.getLogger(__name__)

MAX_ERRORS_IN_MESSAGE = 5


def _escape_slack_markdown(text: str) -> str:
    """Escape Slack markdown characters (company names can contain *, _, `)."""
    if not text:
        return text
    # Backtick first to avoid double-escaping
    for char in ('`', '*', '_', '~'):
        text = text.replace(char, f'\\{char}')
    return text


async def send_sourcer_summary(
    job_id: str,
    result: Optional[SourcerResult],
    duration_seconds: float,
    error: Optional[str] = None,
):
    """
    Send a sourcer run summary to configured webhooks.

    Args:
        job_id: Unique identifier for this job run
        result: Run result (None when the job crashed or timed out)
        duration_seconds: Total job duration
        error: Error message if the job itself failed
    """
    if error or result is None:
        summary = _build_error_message(job_id, error or "no result", duration_seconds)
    else:
        summary = _build_success_message(job_id, result, duration_seconds)

    logger.info(summary["text"])

    if settings.slack_webhook_url:
        await _send_slack(summary)

    if settings.discord_webhook_url:
        await _send_discord(summary)


def _build_success_message(job_id: str, result: SourcerResult, duration: float) -> dict:
    """Build run summary message."""
    status_emoji = {
        SourcerStatus.COMPLETED: ":white_check_mark:",
        SourcerStatus.PARTIAL: ":warning:",
        SourcerStatus.FAILED: ":x:",
    }[result.status]

    with_rounds = [
        f"{name}({stats.new_rounds})"
        for name, stats in result.source_breakdown.items()
        if stats.new_rounds > 0
    ]
    skipped = [
        f"{name}({stats.skip_reason})"
        for name, stats in result.source_breakdown.items()
        if stats.skipped
    ]
    completed = [name for name, stats in result.source_breakdown.items() if stats.backfill_complete and not stats.skipped]

    text = f"""{status_emoji} *Funding Sourcer {result.status.value}* [{job_id}]

*Summary:*
- Sources: {len(result.source_breakdown)}
- Records processed: {result.items_processed}
- *New rounds: {result.items_created}*
- Duplicates skipped: {result.items_skipped}
- Errors: {result.items_failed}
- Duration: {duration:.1f}s

*Sources with new rounds:* {', '.join(with_rounds) or 'None'}
*Skipped sources:* {', '.join(skipped) or 'None'}
*Backfills completed:* {', '.join(completed) or 'None'}"""

    if result.errors:
        lines = [
            f"- [{e.phase}] {_escape_slack_markdown(e.item_name or '?')}: {_escape_slack_markdown(e.message[:200])}"
            for e in result.errors[:MAX_ERRORS_IN_MESSAGE]
        ]
        more = len(result.errors) - MAX_ERRORS_IN_MESSAGE
        if more > 0:
            lines.append(f"- ... and {more} more")
        text += "\n\n*Errors:*\n" + "\n".join(lines)

    return {
        "text": text.strip(),
        "blocks": [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": text.strip()}
            }
        ]
    }


def _build_error_message(job_id: str, error: str, duration: float) -> dict:
    """Build error notification message."""
    text = f""":x: *Funding Sourcer FAILED* [{job_id}]

*Error:* {error}
*Duration before failure:* {duration:.1f}s

Please check logs for details."""

    return {"text": text.strip()}


async def _post_webhook(url: str, payload: dict, label: str) -> bool:
    """POST a JSON payload to a webhook. Returns True on success."""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(url, json=payload, timeout=10.0)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Failed to send {label} notification: {e}")
        return False
    logger.info(f"{label} notification sent")
    return True


async def _send_slack(message: dict) -> bool:
    return await _post_webhook(settings.slack_webhook_url, message, "Slack")


async def _send_discord(message: dict) -> bool:
    # Discord uses 'content' instead of 'text'
    return await _post_webhook(settings.discord_webhook_url, {"content": message["text"]}, "Discord")
