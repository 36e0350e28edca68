"""Shared ingestion data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Sequence, Tuple

from sourcecrawler.ingestion.errors import UnknownSourceType


# "Never ingested" watermark sentinel.
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class SourceType(str, Enum):
    DOM = "dom"
    FEED = "feed"
    LISTING = "listing"

    @classmethod
    def parse(cls, value: Any) -> "SourceType":
        if isinstance(value, SourceType):
            return value
        key = str(value or "").strip().lower()
        try:
            return _TYPE_ALIASES[key]
        except KeyError:
            raise UnknownSourceType(value) from None


_TYPE_ALIASES = {
    "dom": SourceType.DOM,
    "css": SourceType.DOM,
    "html": SourceType.DOM,
    "feed": SourceType.FEED,
    "rss": SourceType.FEED,
    "atom": SourceType.FEED,
    "listing": SourceType.LISTING,
    "youtube": SourceType.LISTING,
}


DEFAULT_ALLOWED_TAGS: Tuple[str, ...] = (
    "h3", "h4", "h5", "h6", "blockquote", "p", "a", "ul", "ol", "nl", "li",
    "b", "i", "strong", "em", "strike", "code", "hr", "br", "div",
    "table", "thead", "caption", "tbody", "tr", "th", "td", "pre",
)

DEFAULT_ALLOWED_ATTRIBUTES: Dict[str, Tuple[str, ...]] = {
    "a": ("href", "name", "target"),
    "img": ("src",),
}


@dataclass(frozen=True)
class TagWhitelist:
    """Allowed tags plus allowed attributes per tag ("*" applies to every tag)."""

    tags: FrozenSet[str]
    attributes: Mapping[str, FrozenSet[str]] = field(default_factory=dict)

    def allows_tag(self, name: str) -> bool:
        return name.lower() in self.tags

    def allowed_attributes(self, tag: str) -> FrozenSet[str]:
        return self.attributes.get(tag.lower(), frozenset()) | self.attributes.get("*", frozenset())

    @classmethod
    def default(cls) -> "TagWhitelist":
        return cls.build(DEFAULT_ALLOWED_TAGS, DEFAULT_ALLOWED_ATTRIBUTES)

    @classmethod
    def build(cls, tags: Sequence[str], attributes: Optional[Mapping[str, Sequence[str]]] = None) -> "TagWhitelist":
        attrs = {
            str(tag).lower(): frozenset(str(a).lower() for a in (names or ()))
            for tag, names in (attributes or {}).items()
        }
        return cls(tags=frozenset(str(t).lower() for t in tags), attributes=attrs)

    @classmethod
    def from_config(cls, value: Any) -> Optional["TagWhitelist"]:
        """Accept a list of tag names or a {"allowedTags": [...], "allowedAttributes": {...}} document."""
        if value is None:
            return None
        if isinstance(value, TagWhitelist):
            return value
        if isinstance(value, (list, tuple)):
            return cls.build(value, DEFAULT_ALLOWED_ATTRIBUTES)
        if isinstance(value, dict):
            tags = value.get("allowedTags", value.get("tags"))
            if tags is None:
                tags = DEFAULT_ALLOWED_TAGS
            attrs = value.get("allowedAttributes", value.get("attributes"))
            if attrs is None:
                attrs = DEFAULT_ALLOWED_ATTRIBUTES
            return cls.build(tags or (), attrs or {})
        raise ValueError(f"unsupported tags whitelist: {value!r}")


@dataclass(frozen=True)
class RewriteRule:
    search: str
    replace: str = ""

    @classmethod
    def list_from_config(cls, value: Any) -> Optional[Tuple["RewriteRule", ...]]:
        if value is None:
            return None
        rules = []
        for item in value:
            if isinstance(item, RewriteRule):
                rules.append(item)
            elif isinstance(item, dict):
                rules.append(cls(search=str(item.get("search") or ""), replace=str(item.get("replace") or "")))
            elif isinstance(item, (list, tuple)) and item:
                rules.append(cls(search=str(item[0]), replace=str(item[1]) if len(item) > 1 else ""))
            else:
                raise ValueError(f"unsupported rewrite rule: {item!r}")
        return tuple(r for r in rules if r.search)


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    return n if n > 0 else None


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass(frozen=True)
class SourceSettings:
    """Per-source configuration document (camelCase keys when persisted)."""

    type: Optional[str] = None
    url: Optional[str] = None
    titles_selector: Optional[str] = None
    dates_selector: Optional[str] = None
    links_selector: Optional[str] = None
    description_selector: Optional[str] = None
    preview_selector: Optional[str] = None
    content_selector: Optional[str] = None
    next_selector: Optional[str] = None
    next_content_selector: Optional[str] = None
    image_selector: Optional[str] = None
    preview_from_meta: bool = False
    content_fallback: bool = False
    date_format: Optional[str] = None
    date_locale: Optional[str] = None
    limit_max: Optional[int] = None
    pages_max: Optional[int] = None
    tags_whitelist: Optional[TagWhitelist] = None
    content_regexps: Optional[Tuple[RewriteRule, ...]] = None
    is_approved: bool = False

    @classmethod
    def from_dict(cls, doc: Optional[Mapping[str, Any]]) -> "SourceSettings":
        doc = doc or {}
        return cls(
            type=_opt_str(doc.get("type")),
            url=_opt_str(doc.get("url")),
            titles_selector=_opt_str(doc.get("titlesSelector")),
            dates_selector=_opt_str(doc.get("datesSelector")),
            links_selector=_opt_str(doc.get("linksSelector")),
            description_selector=_opt_str(doc.get("descriptionSelector")),
            preview_selector=_opt_str(doc.get("previewSelector")),
            content_selector=_opt_str(doc.get("contentSelector")),
            next_selector=_opt_str(doc.get("nextSelector")),
            next_content_selector=_opt_str(doc.get("nextContentSelector")),
            image_selector=_opt_str(doc.get("imageSelector")),
            preview_from_meta=_flag(doc.get("previewFromMeta")),
            content_fallback=_flag(doc.get("contentFallback")),
            date_format=_opt_str(doc.get("dateFormat")),
            date_locale=_opt_str(doc.get("dateLocale")),
            limit_max=_opt_int(doc.get("limitMax")),
            pages_max=_opt_int(doc.get("pagesMax")),
            tags_whitelist=TagWhitelist.from_config(doc.get("tagsWhitelist")),
            content_regexps=RewriteRule.list_from_config(doc.get("contentRegexps")),
            is_approved=_flag(doc.get("isApproved")),
        )


@dataclass(frozen=True)
class Source:
    id: int
    type: Optional[str]
    settings: SourceSettings
    last_post_date: datetime = EPOCH
    is_locked: bool = False
    is_enabled: bool = True
    last_success_count: int = 0
    last_error_count: int = 0
    last_success_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None

    @property
    def source_type(self) -> Optional[str]:
        return self.type or self.settings.type


@dataclass(frozen=True)
class RawCandidate:
    """Unnormalized item produced by a strategy crawler."""

    title: str
    url: str
    published_at: Optional[datetime] = None
    description: Optional[str] = None
    content: Optional[str] = None
    preview_image_url: Optional[str] = None
    inline_image_url: Optional[str] = None


@dataclass(frozen=True)
class NormalizedPost:
    """Storage-ready post; routed to the published or preview table by is_approved."""

    source_id: int
    url: str
    title: str
    description: str
    content: str
    published_at: Optional[datetime]
    is_approved: bool
    preview_image_url: Optional[str] = None
    inline_image_url: Optional[str] = None


@dataclass(frozen=True)
class RunStats:
    source_id: int
    begin: datetime
    end: datetime
    posts_processed: int
    is_success: bool
    error: Optional[str] = None
