"""
Markdown Document Builder
=========================
Pure rendering of an ordered record list into one markdown transcript:

    # Tweets from @user
    Generated: 2024-01-31 12:00:00

    ## Tweet 1
    first text

    ## Tweet 2
    ...

``observed_at`` is carried on each record but not rendered.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Union

from .records import Record
from .site_profile import SiteProfile, TWITTER

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(generated_at: Union[datetime, str]) -> str:
    """Render ``generated_at``; strings are assumed pre-formatted."""
    if isinstance(generated_at, datetime):
        return generated_at.strftime(TIMESTAMP_FORMAT)
    return generated_at


def build_markdown(
    subject: str,
    records: Iterable[Record],
    generated_at: Union[datetime, str],
    *,
    profile: SiteProfile = TWITTER,
) -> str:
    """Build the document; an empty ``records`` yields the header only."""
    sections = "\n".join(
        f"## {profile.item_label} {index}\n{record.content}\n"
        for index, record in enumerate(records, start=1)
    )
    return (
        f"# {profile.title_for(subject)}\n"
        f"Generated: {format_timestamp(generated_at)}\n"
        f"\n"
        f"{sections}"
    )
