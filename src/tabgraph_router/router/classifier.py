"""
Query classification for the router's escalation decisions.

All checks are case-insensitive regular-expression tests; none of them look at
tabs.
"""

import re
from dataclasses import dataclass
from typing import Optional

_I = re.IGNORECASE

SHORT_ANSWER = re.compile(r"^(yes|no|y|n|ok|sure|yeah|nope|maybe|correct|right|wrong)$", _I)
TAB_WORDS = re.compile(r"tab|open|close|pin|group", _I)

CONTEXT_FOLLOW_UPS = [re.compile(p, _I) for p in (
    r"^(just\s+)?(do\s+it|go\s+ahead|proceed|continue|start|begin)(\s+.*)?$",
    r"^(just\s+)?(do|make|create|open|close|group)\s+(it|them|those|these|random|any|some)(\s+.*)?$",
    r"^(just\s+)?do\s+it\s+(random|any|some|whatever)(\s+.*)?$",
    r"^(random|any|some|whatever|anything|something)(\s+(ones?|tabs?|sites?|urls?))?$",
    r"^(just\s+)?(pick|choose|select)\s+(random|any|some)(\s+.*)?$",
    r"^(just\s+)?(use|try|go\s+with)\s+(random|any|some)(\s+.*)?$",
)]

IDENTITY_PATTERNS = [re.compile(p, _I) for p in (
    r"^who\s+are\s+you",
    r"^what\s+are\s+you",
    r"^what\s+can\s+you\s+do",
    r"^what\s+do\s+you\s+do",
    r"^how\s+can\s+you\s+help",
    r"^what\s+are\s+your\s+capabilities",
    r"^what\s+are\s+your\s+features",
    r"^help\s*$",
    r"^what\s+is\s+this",
    r"^tell\s+me\s+about\s+yourself",
)]

SUMMARY_PATTERNS = [re.compile(p, _I) for p in (
    r"^summar(?:ize|ise|y)\s+(?:this\s+)?(?:page|site|website)",
    r"^what'?s\s+(?:on\s+)?(?:this\s+)?(?:page|site)",
    r"^tell\s+me\s+about\s+(?:this\s+)?(?:page|site)",
    r"^explain\s+(?:this\s+)?(?:page|site)",
    r"^describe\s+(?:this\s+)?(?:page|site)",
    r"^what\s+does\s+(?:this\s+)?(?:page|site)\s+(?:say|contain|show)",
)]

CHAT_PATTERNS = [re.compile(p, _I) for p in (
    r"^hi\s*$",
    r"^hello\s*$",
    r"^hey\s*$",
    r"^thanks",
    r"^thank\s+you",
    r"^how\s+are\s+you",
)]

TAB_MANAGEMENT_WORDS = re.compile(r"tab|close|open|pin|group|workspace|container|folder|organize", _I)
QUESTION_START = re.compile(r"^(what|who|how|why|when|where|can\s+you|will\s+you|do\s+you)", _I)

SITE_NAMES = r"(facebook|linkedin|youtube|github|twitter|instagram|outlook|gmail|reddit|fb|li|yt|gh|tw|ig)"
OPEN_START = re.compile(r"^open\s+", _I)
OPEN_TARGETS = [re.compile(p, _I) for p in (
    r"\d+\s+.*\s+tabs?",
    SITE_NAMES,
    r"https?://",
    r"\.(com|org|net|io|edu|gov|co|dev)",
)]
CLOSE_START = re.compile(r"^close\s+", _I)
CLOSE_TARGETS = re.compile(r"(all|tabs?|facebook|linkedin|youtube|github|twitter|instagram|outlook|gmail|reddit|fb|li|yt|gh|tw|ig)", _I)
PIN_START = re.compile(r"^(pin|unpin)\s+", _I)

GROUPING = re.compile(r"group|organize|categorize", _I)
SIMPLE_GROUPING = re.compile(
    r"^group\s+(?:all\s+)?(?:my\s+)?"
    r"(facebook|fb|linkedin|linked\s*in|li|youtube|yt|github|gh|twitter|x|instagram|ig|pinterest|reddit"
    r"|stackoverflow|stack\s*overflow|gmail|outlook|amazon|netflix|spotify|discord|slack|zoom|teams"
    r"|microsoft|google|apple|meta)\s*(?:tabs?)?$",
    _I,
)
WORKSPACE = re.compile(
    r"workspace|move.*to.*workspace|put.*to.*workspace|send.*to.*workspace|switch.*workspace|create.*workspace",
    _I,
)
CONTAINER = re.compile(r"container|move.*to.*container|put.*to.*container|assign.*container", _I)

MULTI_CLAUSE = re.compile(r"and|or|but|also|furthermore|however", _I)
NEGATION = re.compile(r"not|no |don't|can't|won't|shouldn't", _I)
ABSTRACT_CONCEPTS = re.compile(r"workflow|context|relationship|semantic|temporal|pattern", _I)
COMPLEX_WORD_COUNT = 15

HIGH_QUALITY = re.compile(r"analyze|understand|explain|reason|consider|evaluate", _I)
MULTI_STEP = re.compile(r"then|after|before|next|sequence|step", _I)
NEEDS_CONTEXT = re.compile(r"context|background|history|previous|related", _I)

SITE_ALIASES = {
    "fb": "facebook",
    "li": "linkedin",
    "yt": "youtube",
    "gh": "github",
    "ig": "instagram",
    "x": "twitter",
}


@dataclass(frozen=True)
class QueryProfile:
    """Every classification of one query, computed once per route call."""

    conversational: bool
    tab_action: bool
    grouping: bool
    simple_grouping: bool
    workspace_or_container: bool
    complex: bool
    needs_remote: bool
    grouping_site: Optional[str] = None

    @property
    def guarantee_class(self) -> bool:
        return self.tab_action or self.grouping or self.workspace_or_container


class QueryClassifier:
    """Regex-based query classifier."""

    def is_conversational(self, query: str) -> bool:
        """Follow-ups, identity, summary, chat and general questions that need no tab analysis."""
        text = query.lower().strip()

        short_follow_up = (
            text.isdigit()
            or bool(SHORT_ANSWER.match(text))
            or (len(text.split()) <= 2 and len(text) <= 20 and not TAB_WORDS.search(text))
        )
        if short_follow_up or any(p.match(text) for p in CONTEXT_FOLLOW_UPS):
            return True

        if any(p.match(text) for p in (*IDENTITY_PATTERNS, *SUMMARY_PATTERNS, *CHAT_PATTERNS)):
            return True

        return (
            bool(QUESTION_START.match(text))
            and not TAB_MANAGEMENT_WORDS.search(text)
            and len(text.split()) <= 10
        )

    def is_tab_action(self, query: str) -> bool:
        """Open, close and pin requests."""
        if OPEN_START.match(query) and any(p.search(query) for p in OPEN_TARGETS):
            return True
        if CLOSE_START.match(query) and CLOSE_TARGETS.search(query):
            return True
        return bool(PIN_START.match(query))

    def is_grouping(self, query: str) -> bool:
        return bool(GROUPING.search(query))

    def grouping_site(self, query: str) -> Optional[str]:
        """Site name of a simple "group my <site> tabs" query, normalised (fb -> facebook)."""
        found = SIMPLE_GROUPING.match(query.lower().strip())
        if not found:
            return None
        site = re.sub(r"\s+", "", found.group(1).lower())
        return SITE_ALIASES.get(site, site)

    def is_simple_grouping(self, query: str) -> bool:
        return self.grouping_site(query) is not None

    def is_workspace(self, query: str) -> bool:
        return bool(WORKSPACE.search(query))

    def is_container(self, query: str) -> bool:
        return bool(CONTAINER.search(query))

    def is_complex(self, query: str) -> bool:
        """Multiple clauses, negation, more than 15 words or abstract vocabulary."""
        return (
            bool(MULTI_CLAUSE.search(query))
            or bool(NEGATION.search(query))
            or len(query.split()) > COMPLEX_WORD_COUNT
            or bool(ABSTRACT_CONCEPTS.search(query))
        )

    def should_use_remote(self, query: str) -> bool:
        if self.is_workspace(query) or self.is_container(query):
            return True
        return (
            bool(HIGH_QUALITY.search(query))
            or bool(MULTI_STEP.search(query))
            or bool(NEEDS_CONTEXT.search(query))
        )

    def classify(self, query: str) -> QueryProfile:
        site = self.grouping_site(query)
        return QueryProfile(
            conversational=self.is_conversational(query),
            tab_action=self.is_tab_action(query),
            grouping=self.is_grouping(query),
            simple_grouping=site is not None,
            workspace_or_container=self.is_workspace(query) or self.is_container(query),
            complex=self.is_complex(query),
            needs_remote=self.should_use_remote(query),
            grouping_site=site,
        )
