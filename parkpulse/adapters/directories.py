"""In-memory collaborator directories for dev mode and tests."""

from collections.abc import Iterable

from parkpulse.components.analytics import BlogSummary, UserProfile


class InMemoryUserDirectory:
    """UserDirectoryPort over a dict of profiles."""

    def __init__(self, profiles: Iterable[UserProfile] = ()) -> None:
        self._profiles = {p.user_id: p for p in profiles}

    def add(self, profile: UserProfile) -> None:
        self._profiles[profile.user_id] = profile

    def get_profiles(self, user_ids: Iterable[str]) -> dict[str, UserProfile]:
        return {uid: self._profiles[uid] for uid in user_ids if uid in self._profiles}


class InMemoryBlogDirectory:
    """BlogDirectoryPort over a dict of post summaries."""

    def __init__(self, summaries: Iterable[BlogSummary] = ()) -> None:
        self._summaries = {s.blog_id: s for s in summaries}

    def add(self, summary: BlogSummary) -> None:
        self._summaries[summary.blog_id] = summary

    def get_summaries(self, blog_ids: Iterable[str]) -> dict[str, BlogSummary]:
        return {bid: self._summaries[bid] for bid in blog_ids if bid in self._summaries}
