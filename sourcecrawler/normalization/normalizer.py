"""RawCandidate -> NormalizedPost.

Pure transform, no I/O:
1. title/description -> plain text, whitespace collapsed
2. content -> tag/attribute allow-list
3. empty paired tags removed
4. ordered rewrite rules (first match per rule)
5. pretty-printed HTML
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence, Tuple

from sourcecrawler.extraction.sanitizer import prettify_html, remove_empty_tags, sanitize_html, strip_markup
from sourcecrawler.ingestion.post_types import NormalizedPost, RawCandidate, RewriteRule, SourceSettings, TagWhitelist

_JS_TOKEN_RE = re.compile(r"\$(\$|&|\d{1,2})")


@dataclass(frozen=True)
class ContentRules:
    whitelist: TagWhitelist
    rewrites: Tuple[RewriteRule, ...] = ()

    @classmethod
    def for_settings(cls, settings: SourceSettings, defaults: "ContentRules") -> "ContentRules":
        """Per-source whitelist/rewrites win over the global defaults."""
        whitelist = settings.tags_whitelist if settings.tags_whitelist is not None else defaults.whitelist
        rewrites = settings.content_regexps if settings.content_regexps is not None else defaults.rewrites
        return cls(whitelist=whitelist, rewrites=tuple(rewrites))


@lru_cache(maxsize=256)
def _compile(pattern: str) -> "re.Pattern[str]":
    return re.compile(pattern)


def _expand_js(template: str, match: "re.Match[str]") -> str:
    """Expand JavaScript-style $1 / $& / $$ references in stored rules.

    References to groups the pattern does not have stay literal text.
    """
    groups = match.re.groups

    def _ref(m: "re.Match[str]") -> str:
        ref = m.group(1)
        if ref == "$":
            return "$"
        if ref == "&":
            return match.group(0)
        if len(ref) == 2 and 0 < int(ref) <= groups:
            return match.group(int(ref)) or ""
        if 0 < int(ref[0]) <= groups:
            return (match.group(int(ref[0])) or "") + ref[1:]
        return m.group(0)

    return _JS_TOKEN_RE.sub(_ref, template)


def apply_rewrites(content: str, rules: Sequence[RewriteRule]) -> str:
    for rule in rules:
        content = _compile(rule.search).sub(lambda m, rule=rule: _expand_js(rule.replace, m), content, count=1)
    return content


def normalize_text(value: Optional[str]) -> str:
    return strip_markup(value)


def normalize_content(content: Optional[str], rules: ContentRules) -> str:
    soup = remove_empty_tags(sanitize_html(content, rules.whitelist))
    rewritten = apply_rewrites(str(soup).strip(), rules.rewrites)
    return prettify_html(rewritten)


def normalize(candidate: RawCandidate, *, source_id: int, is_approved: bool, rules: ContentRules) -> NormalizedPost:
    return NormalizedPost(
        source_id=source_id,
        url=candidate.url,
        title=normalize_text(candidate.title),
        description=normalize_text(candidate.description),
        content=normalize_content(candidate.content, rules),
        published_at=candidate.published_at,
        is_approved=is_approved,
        preview_image_url=candidate.preview_image_url or None,
        inline_image_url=candidate.inline_image_url or None,
    )
