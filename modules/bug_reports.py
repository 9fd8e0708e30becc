"""
============================================================================
BUG REPORTS
============================================================================
Status table, button IDs and channel setting for bug report triage.

Report messages carry four buttons whose custom IDs encode the target
status and the reporter: bug_<status>_<reporterId>.
"""

import logging
from typing import Dict, Iterable, Optional, Tuple

import config
from database import Database

logger = logging.getLogger(__name__)

REPORT_TITLE_PREFIX = 'Bug Report: '
CUSTOM_ID_PREFIX = 'bug_'

UNDER_REVIEW = {
    'label': '🔍 Under Review',
    'color': 0xFF0000,
    'message': 'Your bug report status has been updated.',
}

# Button order on the report message
BUG_STATUSES: Dict[str, Dict] = {
    'inprogress': {
        'label': '🔧 In Progress',
        'color': 0x3498DB,
        'style': 'primary',
        'match': 'In Progress',
        'message': 'Your bug report is now being worked on by our team.',
    },
    'fixed': {
        'label': '✅ Fixed',
        'color': 0x2ECC71,
        'style': 'success',
        'match': 'Fixed',
        'message': 'Your bug report has been resolved! The fix will be available in the next update.',
    },
    'invalid': {
        'label': '❌ Invalid',
        'color': 0xE74C3C,
        'style': 'danger',
        'match': 'Invalid',
        'message': ("Your bug report has been marked as invalid. This might be because we "
                    "couldn't reproduce it or it was not actually a bug."),
    },
    'wontfix': {
        'label': "⏭️ Won't Fix",
        'color': 0x95A5A6,
        'style': 'secondary',
        'match': "Won't Fix",
        'message': "Your bug report has been reviewed, but we've decided not to implement a fix at this time.",
    },
}


def make_custom_id(status: str, reporter_id: str) -> str:
    return f"{CUSTOM_ID_PREFIX}{status}_{reporter_id}"


def parse_custom_id(custom_id: str) -> Optional[Tuple[str, str]]:
    """
    Split a bug button ID into (status, reporter_id).

    Returns:
        None if the ID is not a bug button or names an unknown status
    """
    if not custom_id or not custom_id.startswith(CUSTOM_ID_PREFIX):
        return None

    parts = custom_id.split('_')
    if len(parts) != 3:
        return None

    _, status, reporter_id = parts
    if status not in BUG_STATUSES or not reporter_id.isdigit():
        return None
    return status, reporter_id


def status_info(status: str) -> Dict:
    return BUG_STATUSES.get(status, UNDER_REVIEW)


def classify_status(value: str) -> Optional[str]:
    """Map a Status field value back to a status key ('underreview' for new reports)."""
    if 'Under Review' in value:
        return 'underreview'
    for status, info in BUG_STATUSES.items():
        if info['match'] in value:
            return status
    return None


def tally_statuses(values: Iterable[Optional[str]]) -> Dict[str, int]:
    """
    Count report statuses.

    Args:
        values: Status field value per report (None if the field is missing)

    Returns:
        Dict with 'total' and a count per status key plus 'underreview'
    """
    counts = {'total': 0, 'underreview': 0}
    counts.update({status: 0 for status in BUG_STATUSES})

    for value in values:
        counts['total'] += 1
        if value is None:
            continue
        status = classify_status(value)
        if status is not None:
            counts[status] += 1

    return counts


def percentage(part: int, total: int) -> int:
    if total == 0:
        return 0
    return round(part / total * 100)


# ============================================================================
# CHANNEL SETTING
# ============================================================================

async def get_bug_channel_id(db: Database) -> Optional[str]:
    """Configured bug channel: stored setting first, then BUGS_CHANNEL_ID from .env."""
    settings = await db.get_setting('bot', {})
    channel_id = settings.get('bugsChannelId') if isinstance(settings, dict) else None
    return channel_id or config.BUGS_CHANNEL_ID


async def set_bug_channel_id(db: Database, channel_id: str):
    settings = await db.get_setting('bot', {})
    if not isinstance(settings, dict):
        settings = {}
    settings['bugsChannelId'] = str(channel_id)
    await db.set_setting('bot', settings)
    logger.info("Bug report channel set to %s", channel_id)
