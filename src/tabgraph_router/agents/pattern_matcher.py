"""
Tier 1: deterministic rule matching for common tab commands.

Rules are (regex, handler) pairs evaluated in registration order; the first
match wins. Handlers only describe an action, they never touch tabs.
"""

import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from tabgraph_router.config import get_logger
from tabgraph_router.agents.models import PatternMatch, TabAction
from tabgraph_router.graph.models import Tab, domain_from_url

logger = get_logger(__name__)

PATTERN_CONFIDENCE = 0.95

SITE_SHORTCUTS = {
    "fb": "facebook.com",
    "facebook": "facebook.com",
    "yt": "youtube.com",
    "youtube": "youtube.com",
    "gh": "github.com",
    "github": "github.com",
    "li": "linkedin.com",
    "linkedin": "linkedin.com",
    "tw": "twitter.com",
    "twitter": "twitter.com",
    "ig": "instagram.com",
    "instagram": "instagram.com",
    "outlook": "outlook.com",
    "gmail": "gmail.com",
    "reddit": "reddit.com",
}

WORK_DOMAINS = (
    "github", "gitlab", "bitbucket",
    "linkedin", "stackoverflow", "stackexchange",
    "jira", "confluence", "atlassian",
    "slack", "teams", "zoom",
    "gmail", "outlook", "office365",
    "notion", "trello", "asana",
    "figma", "sketch", "adobe",
)

WORK_TITLE_WORDS = ("work", "project", "task", "meeting")


@dataclass(frozen=True)
class MatchContext:
    """Minimal per-query context handed to rule handlers."""

    active_tab_id: Optional[str] = None


RuleHandler = Callable[[Sequence[Tab], dict[str, str], MatchContext], TabAction]


@dataclass(frozen=True)
class PatternRule:
    name: str
    regex: re.Pattern
    handler: RuleHandler
    description: str
    params: tuple[str, ...] = ()


def _limit(tabs: list[Tab], params: dict[str, str]) -> list[Tab]:
    if params.get("count"):
        return tabs[:int(params["count"])]
    return tabs


def _close(tabs: Sequence[Tab]) -> TabAction:
    ids = [t.id for t in tabs]
    return TabAction(action="close", tab_ids=ids, count=len(ids))


def _url_contains(*needles: str) -> Callable[[Tab], bool]:
    def check(tab: Tab) -> bool:
        url = tab.url.lower()
        return any(n in url for n in needles)
    return check


def _close_site(*needles: str) -> RuleHandler:
    check = _url_contains(*needles)

    def handler(tabs, params, _context):
        return _close(_limit([t for t in tabs if check(t)], params))
    return handler


def close_domain(tabs, params, _context):
    domain = params["domain"].lower()
    return _close([t for t in tabs if domain in domain_from_url(t.url)])


def close_all_except_active(tabs, _params, context):
    return _close([t for t in tabs if t.id != context.active_tab_id])


def pin_active(_tabs, _params, context):
    if not context.active_tab_id:
        return TabAction(action="pin")
    return TabAction(action="pin", tab_ids=[context.active_tab_id], count=1)


def unpin_all(tabs, _params, _context):
    ids = [t.id for t in tabs if t.pinned]
    return TabAction(action="unpin", tab_ids=ids, count=len(ids))


def find_tabs(tabs, params, _context):
    keyword = params["keyword"].strip().lower()
    ids = [t.id for t in tabs if keyword in t.title.lower() or keyword in t.url.lower()]
    return TabAction(action="find", tab_ids=ids, count=len(ids))


def open_shortcut(_tabs, params, _context):
    shortcut = params.get("shortcut", "").lower()
    domain = SITE_SHORTCUTS.get(shortcut, shortcut)
    return TabAction(action="open", url=f"https://{domain}", count=1)


def open_multiple_tabs_by_domain(_tabs, params, _context):
    count = int(params.get("count") or 1)
    shortcut = re.sub(r"\s+", "", params.get("domain", "").lower())
    url = f"https://{SITE_SHORTCUTS.get(shortcut, shortcut)}"
    return TabAction(action="open_multiple", url=url, count=count, urls=[url] * count)


def open_url(_tabs, params, _context):
    url = params["url"]
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return TabAction(action="open", url=url, count=1)


def focus_work(tabs, _params, _context):
    work, other = [], []
    for tab in tabs:
        domain = tab.domain.lower()
        title = tab.title.lower()
        if any(d in domain for d in WORK_DOMAINS) or any(w in title for w in WORK_TITLE_WORDS):
            work.append(tab.id)
        else:
            other.append(tab.id)
    return TabAction(
        action="focus",
        tab_ids=work,
        hide_tab_ids=other,
        count=len(work),
        hidden_count=len(other),
    )


class PatternMatcher:
    """
    Ordered rule table for instant, model-free command handling.

    Example:
        >>> matcher = PatternMatcher()
        >>> match = matcher.match("close all my linkedin tabs", tabs)
        >>> match.result.tab_ids
    """

    def __init__(self, register_defaults: bool = True):
        self._rules: list[PatternRule] = []
        if register_defaults:
            self._register_default_rules()

    def register(
        self,
        name: str,
        pattern: str,
        handler: RuleHandler,
        description: str = "",
        params: tuple[str, ...] = (),
    ) -> None:
        """
        Append a rule. Rules registered earlier take precedence.

        Args:
            name: Unique rule name
            pattern: Case-insensitive regular expression
            handler: Builds the action from tabs, captured params and context
            description: Human-readable summary of the rule
            params: Parameter names for the regex capture groups, in order
        """
        if any(rule.name == name for rule in self._rules):
            raise ValueError(f"Rule '{name}' is already registered")
        self._rules.append(PatternRule(
            name=name,
            regex=re.compile(pattern, re.IGNORECASE),
            handler=handler,
            description=description,
            params=params,
        ))

    def _register_default_rules(self) -> None:
        self.register(
            "close_linkedin",
            r"^close\s+(?:(\d+)\s+)?(?:all\s+)?(?:my\s+)?(?:linkedin|li)(?:\s+tabs?)?$",
            _close_site("linkedin"),
            "Close LinkedIn tabs (optionally specify quantity)",
            params=("count",),
        )
        self.register(
            "close_facebook",
            r"^close\s+(?:(\d+)\s+)?(?:all\s+)?(?:my\s+)?(?:facebook|fb)(?:\s+tabs?)?$",
            _close_site("facebook"),
            "Close Facebook tabs (optionally specify quantity)",
            params=("count",),
        )
        self.register(
            "close_twitter",
            r"^close\s+(?:(\d+)\s+)?(?:all\s+)?(?:my\s+)?(?:twitter|x\.com|tweet)(?:\s+tabs?)?$",
            _close_site("twitter", "x.com"),
            "Close Twitter/X tabs (optionally specify quantity)",
            params=("count",),
        )
        self.register(
            "close_domain",
            r"close.*(?:all\s+)?(?:my\s+)?tabs?\s+(?:from\s+)?([a-z0-9.-]+\.(?:com|org|net|io|edu|gov|co|dev))",
            close_domain,
            "Close tabs from specific domain",
            params=("domain",),
        )
        self.register(
            "close_all_except_active",
            r"close.*(?:all\s+)?tabs?\s+(?:except|but)\s+(?:this|active|current)",
            close_all_except_active,
            "Close all tabs except active",
        )
        self.register(
            "close_all",
            r"close\s+(?:all\s+)?tabs?$",
            close_all_except_active,
            "Close all tabs (keeps the active tab)",
        )
        self.register(
            "pin_active",
            r"pin\s+(?:this|active|current)\s+tab",
            pin_active,
            "Pin active tab",
        )
        self.register(
            "unpin_all",
            r"unpin\s+(?:all\s+)?tabs?",
            unpin_all,
            "Unpin all tabs",
        )
        self.register(
            "find_tabs",
            r"find.*tabs?.*(?:about|with|containing)\s+['\"]?([^'\"]+)['\"]?",
            find_tabs,
            "Find tabs by keyword",
            params=("keyword",),
        )
        self.register(
            "open_shortcut",
            r"^open\s+(fb|facebook|yt|youtube|gh|github|li|linkedin|tw|twitter|ig|instagram|outlook|gmail|reddit)$",
            open_shortcut,
            "Open site by shortcut (fb, yt, gh, etc.)",
            params=("shortcut",),
        )
        self.register(
            "open_multiple_tabs_by_domain",
            r"^open\s+(\d+)\s+(?:my\s+)?(facebook|fb|linked\s*in|li|youtube|yt|github|gh|twitter|tw|instagram|ig|outlook|gmail|reddit)\s+tabs?$",
            open_multiple_tabs_by_domain,
            "Open multiple tabs by domain (e.g., open 5 facebook tabs)",
            params=("count", "domain"),
        )
        self.register(
            "open_url",
            r"^open\s+(?:tab\s+with\s+)?(?:url\s+)?(https?://[^\s]+|www\.[^\s]+|[a-z0-9.-]+\.(?:com|org|net|io|edu|gov|co|dev))$",
            open_url,
            "Open URL in new tab",
            params=("url",),
        )
        self.register(
            "focus_work",
            r"(?:I\s+want\s+to\s+)?focus\s+on\s+(?:working|work)",
            focus_work,
            "Focus on work tabs",
        )

    def match(
        self,
        query: str,
        tabs: Sequence[Tab],
        active_tab_id: Optional[str] = None,
    ) -> Optional[PatternMatch]:
        """
        Evaluate rules in order and return the first match.

        Args:
            query: Free-text command
            tabs: Current tab snapshot
            active_tab_id: Currently focused tab, if any

        Returns:
            PatternMatch with confidence 0.95, or None when no rule matches
        """
        start = time.perf_counter()
        text = query.strip()
        context = MatchContext(active_tab_id=active_tab_id)

        for rule in self._rules:
            found = rule.regex.search(text)
            if not found:
                continue

            params = {
                name: value
                for name, value in zip(rule.params, found.groups())
                if value is not None
            }
            result = rule.handler(tabs, params, context)
            latency_ms = (time.perf_counter() - start) * 1000
            logger.debug(f"Pattern '{rule.name}' matched in {latency_ms:.2f}ms")
            return PatternMatch(
                name=rule.name,
                params=params,
                confidence=PATTERN_CONFIDENCE,
                result=result,
                latency_ms=latency_ms,
            )

        return None

    @property
    def rule_count(self) -> int:
        return len(self._rules)

    def describe_rules(self) -> list[dict[str, str]]:
        return [{"name": r.name, "description": r.description} for r in self._rules]
