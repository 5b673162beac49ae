"""Keyword and time-window filtering for feed candidates."""
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from newsdesk.config import Settings, settings as default_settings
from newsdesk.schemas.models import CandidateItem, SourceType


class ArticleFilter:
    """Drop off-topic and stale items before they reach the pending queue."""

    def __init__(
        self,
        keywords: Optional[Sequence[str]] = None,
        window_days: Optional[int] = None,
        config: Optional[Settings] = None,
    ):
        """Initialize article filter."""
        config = config or default_settings
        self.keywords = [k.strip().lower() for k in (keywords if keywords is not None else config.keyword_allow_list) if k.strip()]
        self.window_days = window_days if window_days is not None else config.rss_window_days
        self._pattern = self._compile(self.keywords)

    @staticmethod
    def _compile(keywords: List[str]) -> Optional[re.Pattern]:
        if not keywords:
            return None
        alternation = "|".join(re.escape(k) for k in sorted(set(keywords), key=len, reverse=True))
        # \w boundaries so that "ev" does not match "every"
        return re.compile(rf"(?<!\w)(?:{alternation})(?!\w)", re.IGNORECASE)

    def matches_keywords(self, title: str, snippet: str = "") -> bool:
        """True when title or snippet mentions at least one allow-listed keyword."""
        if self._pattern is None:
            return False
        return bool(self._pattern.search(f"{title or ''}\n{snippet or ''}"))

    def is_relevant(self, item: CandidateItem, source_type: SourceType) -> bool:
        if source_type == SourceType.DIRECT:
            return True
        return self.matches_keywords(item.title, item.snippet)

    def cutoff_for(self, now: Optional[datetime] = None) -> datetime:
        """Oldest publish instant still inside the window. Computed once per batch."""
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now - timedelta(days=self.window_days)

    @staticmethod
    def within_window(published: Optional[datetime], cutoff: datetime) -> bool:
        """Items at or after the cutoff instant are kept; undated items never pass."""
        if published is None:
            return False
        if published.tzinfo is None:
            published = published.replace(tzinfo=timezone.utc)
        return published >= cutoff

    def apply(
        self,
        items: Iterable[Tuple[CandidateItem, SourceType]],
        cutoff: datetime,
    ) -> List[CandidateItem]:
        """Filter (item, source type) pairs against keywords and the time window."""
        kept = []
        for item, source_type in items:
            if not self.within_window(item.pub_date, cutoff):
                continue
            if not self.is_relevant(item, source_type):
                continue
            kept.append(item)
        return kept
