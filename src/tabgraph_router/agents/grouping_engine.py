"""
Grouping suggestion engine (Tier 2).

Answers "suggest tabs related to these" and "suggest groups for everything"
using the knowledge graph when it yields a usable cluster and a cheap
similarity heuristic otherwise. Group names come from a compact model; with
deferred naming the caller gets a heuristic name immediately and the model
name lands in the name cache once the background task finishes.
"""

import asyncio
import hashlib
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence
from urllib.parse import urlparse

from tabgraph_router.config import get_logger
from tabgraph_router.agents.model_adapter import ModelAdapter
from tabgraph_router.agents.models import GroupingSuggestion, ModelOptions
from tabgraph_router.errors import TabGraphError
from tabgraph_router.graph.cache import GraphCache
from tabgraph_router.graph.event_log import EventLog
from tabgraph_router.graph.knowledge_graph import TabKnowledgeGraph
from tabgraph_router.graph.models import Tab, TabEvent, WorkflowSuggestion
from tabgraph_router.graph.similarity import is_stop_word, keyword_overlap
from tabgraph_router.graph.temporal_miner import TemporalPatternMiner

logger = get_logger(__name__)

RELATED_THRESHOLD = 0.2
MAX_RELATED_TABS = 10
BATCH_SIZE = 10
MAX_ITERATIONS = 10
DEFAULT_GROUP_NAME = "New Group"

SAME_DOMAIN_SCORE = 0.5
RELATED_DOMAIN_SCORE = 0.3
TITLE_OVERLAP_WEIGHT = 0.3
SHARED_PATH_SCORE = 0.2


@dataclass(frozen=True)
class TabFeatures:
    """Per-tab features cached for the similarity heuristic."""

    url: str
    title: str
    domain: str
    title_words: frozenset[str]
    path_segments: frozenset[str]


def compute_features(tab: Tab) -> TabFeatures:
    try:
        path = urlparse(tab.url).path
    except ValueError:
        path = ""
    return TabFeatures(
        url=tab.url,
        title=tab.title,
        domain=tab.domain,
        title_words=frozenset(w for w in tab.title.lower().split() if len(w) > 3),
        path_segments=frozenset(p for p in path.split("/") if p),
    )


def features_text(tabs: Sequence[Tab]) -> str:
    """Domains plus the first five longer title words of each tab, deduplicated."""
    features: list[str] = []
    for tab in tabs:
        if tab.domain:
            features.append(tab.domain)
        features.extend([w for w in tab.title.lower().split() if len(w) > 3][:5])
    return " ".join(dict.fromkeys(features))


def fallback_group_name(text: str) -> str:
    """Capitalised first domain (or first word) from a feature string."""
    words = [w for w in text.split() if len(w) > 2]
    if not words:
        return DEFAULT_GROUP_NAME
    word = next((w for w in words if "." in w), words[0])
    for suffix in (".com", ".org", ".net", ".io"):
        if word.endswith(suffix):
            word = word[:-len(suffix)]
            break
    return word[:1].upper() + word[1:]


def naming_prompt(text: str, titles: Sequence[str]) -> str:
    words = text.split()
    keywords = [w for w in words if "." in w]
    keywords.extend([w for w in words if len(w) > 4 and "." not in w and not is_stop_word(w)][:3])
    shown = list(titles[:3]) or [w.capitalize() for w in words[:3]]
    body = " \n ".join(shown)
    if keywords:
        return f"Topic from keywords: {', '.join(keywords)}. titles: \n {body}"
    return f"titles: \n {body}"


def clean_model_name(generated: str, prompt: str) -> str:
    name = generated.replace(prompt, "").strip()
    name = name.split("\n")[0].split(".")[0].strip().strip('"').strip("'").strip()
    if name.lower() in ("none", "adult content"):
        return ""
    return name


class TabGroupingEngine:
    """
    Suggests tab groups from the knowledge graph with a heuristic fallback.

    Attributes:
        graph_cache: Shared graph cache (rebuilds only when tabs or history change)
        event_log: Shared bounded event history
        naming_model: Optional compact model for group names
    """

    def __init__(
        self,
        graph_cache: Optional[GraphCache] = None,
        event_log: Optional[EventLog] = None,
        naming_model: Optional[ModelAdapter] = None,
        miner: Optional[TemporalPatternMiner] = None,
        naming_max_tokens: int = 10,
        naming_timeout_s: Optional[float] = None,
    ):
        self.graph_cache = graph_cache if graph_cache is not None else GraphCache()
        self.event_log = event_log if event_log is not None else EventLog()
        self.naming_model = naming_model
        self.miner = miner if miner is not None else TemporalPatternMiner()
        self.naming_options = ModelOptions(max_new_tokens=naming_max_tokens, temperature=0.0)
        self.naming_timeout_s = naming_timeout_s

        self._features: dict[str, TabFeatures] = {}
        self._similarity: dict[tuple[str, str], float] = {}
        self._names: dict[str, str] = {}
        self._names_lock = asyncio.Lock()
        self._naming_tasks: dict[str, asyncio.Task] = {}

    # ---- feature and similarity caches ----

    def features_for(self, tab: Tab) -> TabFeatures:
        """Cached features, recomputed when the tab's URL or title changed."""
        cached = self._features.get(tab.id)
        if cached is not None and cached.url == tab.url and cached.title == tab.title:
            return cached

        if cached is not None:
            stale = [pair for pair in self._similarity if tab.id in pair]
            for pair in stale:
                del self._similarity[pair]

        features = compute_features(tab)
        self._features[tab.id] = features
        return features

    def tab_similarity(self, a: Tab, b: Tab) -> float:
        """
        Heuristic similarity in [0, 1] from domain, title words and URL path.

        Args:
            a: First tab
            b: Second tab

        Returns:
            Weighted score, capped at 1.0
        """
        fa = self.features_for(a)
        fb = self.features_for(b)
        pair = (a.id, b.id) if a.id <= b.id else (b.id, a.id)
        cached = self._similarity.get(pair)
        if cached is not None:
            return cached

        score = 0.0
        if fa.domain and fb.domain:
            if fa.domain == fb.domain:
                score += SAME_DOMAIN_SCORE
            elif fa.domain in fb.domain or fb.domain in fa.domain:
                score += RELATED_DOMAIN_SCORE

        score += keyword_overlap(fa.title_words, fb.title_words) * TITLE_OVERLAP_WEIGHT

        if fa.path_segments & fb.path_segments:
            score += SHARED_PATH_SCORE

        score = min(score, 1.0)
        self._similarity[pair] = score
        return score

    def suggest_related_tabs(
        self,
        seeds: Sequence[Tab],
        tabs: Sequence[Tab],
        exclude_ids: Sequence[str] = (),
    ) -> list[str]:
        """Top candidates whose average similarity to the seeds exceeds the threshold."""
        excluded = set(exclude_ids)
        scored = []
        for candidate in tabs:
            if candidate.id in excluded or not seeds:
                continue
            avg = sum(self.tab_similarity(seed, candidate) for seed in seeds) / len(seeds)
            if avg > RELATED_THRESHOLD:
                scored.append((avg, candidate.id))

        scored.sort(key=lambda item: -item[0])
        return [tab_id for _, tab_id in scored[:MAX_RELATED_TABS]]

    # ---- naming ----

    @staticmethod
    def _name_key(text: str, titles: Sequence[str]) -> str:
        return hashlib.sha1(f"{text}|{'|'.join(titles)}".encode("utf-8")).hexdigest()

    def cached_name(self, text: str, titles: Sequence[str]) -> Optional[str]:
        return self._names.get(self._name_key(text, titles))

    async def generate_group_name(self, text: str, titles: Sequence[str]) -> str:
        """
        Name a group with the compact model, falling back to a heuristic name.

        Model-derived names are cached by feature digest.
        """
        key = self._name_key(text, titles)
        cached = self._names.get(key)
        if cached is not None:
            return cached

        if self.naming_model is None:
            return fallback_group_name(text)

        prompt = naming_prompt(text, titles)
        try:
            await self.naming_model.ensure_loaded()
            invocation = self.naming_model.invoke(prompt, self.naming_options)
            if self.naming_timeout_s:
                generated = await asyncio.wait_for(invocation, timeout=self.naming_timeout_s)
            else:
                generated = await invocation
        except (TabGraphError, asyncio.TimeoutError) as e:
            logger.warning(f"Group naming model unavailable, using heuristic name: {e}")
            return fallback_group_name(text)

        name = clean_model_name(generated, prompt)
        if not name:
            return fallback_group_name(text)

        async with self._names_lock:
            self._names[key] = name
        return name

    def _schedule_naming(self, text: str, titles: Sequence[str]) -> None:
        if self.naming_model is None:
            return
        key = self._name_key(text, titles)
        if key in self._names or key in self._naming_tasks:
            return

        task = asyncio.create_task(self._resolve_name(key, text, list(titles)))
        self._naming_tasks[key] = task
        task.add_done_callback(lambda _t: self._naming_tasks.pop(key, None))

    async def _resolve_name(self, key: str, text: str, titles: list[str]) -> None:
        try:
            name = await self.generate_group_name(text, titles)
            logger.debug(f"Resolved deferred group name: {name}")
        except Exception:
            logger.error(f"Deferred group naming failed for {key[:8]}", exc_info=True)

    @property
    def pending_name_count(self) -> int:
        return len(self._naming_tasks)

    async def wait_for_pending_names(self) -> None:
        """Wait until all deferred naming tasks have finished."""
        tasks = list(self._naming_tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _name(self, seeds: Sequence[Tab], defer_naming: bool, default: Optional[str] = None) -> str:
        text = features_text(seeds)
        titles = [t.title for t in seeds]
        cached = self.cached_name(text, titles)
        if cached is not None:
            return cached
        if defer_naming:
            self._schedule_naming(text, titles)
            return default or fallback_group_name(text)
        if default:
            return default
        return await self.generate_group_name(text, titles)

    # ---- graph access ----

    async def get_graph(self, tabs: Sequence[Tab]) -> TabKnowledgeGraph:
        """Graph for ``tabs`` and the shared history, reused while neither changes."""
        return await self.graph_cache.get_graph(
            tabs,
            self.event_log.snapshot(),
            fingerprint=self.event_log.fingerprint(),
        )

    # ---- suggestions ----

    async def suggest_tab_grouping(
        self,
        seed_ids: Sequence[str],
        tabs: Sequence[Tab],
        exclude_ids: Sequence[str] = (),
        defer_naming: bool = False,
        use_graph: bool = True,
    ) -> GroupingSuggestion:
        """
        Suggest a group around the seed tabs.

        Args:
            seed_ids: Tabs the group should grow from
            tabs: Current tab snapshot
            exclude_ids: Tabs that must not be suggested (already grouped)
            defer_naming: Return a heuristic name now and resolve the model name
                in the background
            use_graph: Try knowledge-graph clusters before the heuristic

        Returns:
            A suggestion; callers should only create it when it has 2+ tabs

        Raises:
            ValueError: If none of the seed ids are in ``tabs``
        """
        seed_set = set(seed_ids)
        seeds = [t for t in tabs if t.id in seed_set]
        if not seeds:
            raise ValueError("No seed tabs provided")

        excluded = set(exclude_ids)
        for tab in tabs:
            self.features_for(tab)

        if use_graph and tabs:
            try:
                graph = await self.get_graph(tabs)
                for group in graph.get_suggested_groups(2):
                    if not seed_set & set(group.tab_ids):
                        continue
                    related = [i for i in group.tab_ids if i not in excluded]
                    if len(related) < 2:
                        break
                    name = await self._name(seeds, defer_naming, default=group.label)
                    return GroupingSuggestion(
                        group_name=name,
                        tab_ids=related,
                        confidence=group.confidence,
                        reason=group.reason,
                    )
            except Exception as e:
                logger.warning(f"Knowledge graph grouping failed, falling back to heuristics: {e}")

        related = self.suggest_related_tabs(seeds, tabs, [*seed_set, *excluded])
        name = await self._name(seeds, defer_naming)
        tab_ids = [t.id for t in seeds if t.id not in excluded] + related
        return GroupingSuggestion(
            group_name=name,
            tab_ids=tab_ids,
            confidence=min(0.5 + len(related) / 20, 1.0),
        )

    async def suggest_multiple_groups(
        self,
        tabs: Sequence[Tab],
        exclude_ids: Sequence[str] = (),
        use_graph: bool = True,
    ) -> list[GroupingSuggestion]:
        """
        Suggest groups covering as many tabs as possible.

        Whole-graph clusters are preferred; without any, same-domain buckets are
        grouped iteratively in bounded parallel batches.
        """
        excluded = set(exclude_ids)

        if use_graph and tabs:
            try:
                graph = await self.get_graph(tabs)
                suggestions = [
                    GroupingSuggestion(
                        group_name=group.label,
                        tab_ids=group.tab_ids,
                        confidence=group.confidence,
                        reason=group.reason,
                    )
                    for group in graph.get_suggested_groups(2)
                    if not excluded & set(group.tab_ids)
                ]
                if suggestions:
                    logger.info(f"Knowledge graph suggested {len(suggestions)} groups")
                    return suggestions
            except Exception as e:
                logger.warning(f"Knowledge graph grouping failed, using heuristics: {e}")

        groups: list[GroupingSuggestion] = []
        processed = set(excluded)
        remaining = [t for t in tabs if t.id not in processed]

        for _ in range(MAX_ITERATIONS):
            if len(remaining) < 2:
                break

            buckets: dict[str, list[Tab]] = {}
            for tab in remaining:
                domain = self.features_for(tab).domain
                if domain:
                    buckets.setdefault(domain, []).append(tab)
            candidates = [bucket for bucket in buckets.values() if len(bucket) >= 2]
            if not candidates:
                break

            new_groups: list[GroupingSuggestion] = []
            for start in range(0, len(candidates), BATCH_SIZE):
                batch = candidates[start:start + BATCH_SIZE]
                results = await asyncio.gather(
                    *(self._group_bucket(bucket, tabs, processed) for bucket in batch)
                )
                new_groups.extend(r for r in results if r is not None and r.is_actionable)

            groups.extend(new_groups)
            remaining = [t for t in tabs if t.id not in processed]
            if not new_groups:
                break

        return groups

    async def _group_bucket(
        self,
        bucket: list[Tab],
        tabs: Sequence[Tab],
        processed: set[str],
    ) -> Optional[GroupingSuggestion]:
        available = [t for t in bucket if t.id not in processed]
        if len(available) < 2:
            return None

        try:
            suggestion = await self.suggest_tab_grouping(
                [t.id for t in available[:3]],
                tabs,
                exclude_ids=list(processed),
                defer_naming=True,
                use_graph=False,
            )
        except ValueError as e:
            logger.error(f"Error suggesting group: {e}")
            return None

        available_ids = {t.id for t in available}
        valid = [i for i in suggestion.tab_ids if i in available_ids]
        if len(valid) < 2:
            return None

        processed.update(valid)
        return suggestion.model_copy(update={"tab_ids": valid})

    # ---- events and workflows ----

    def record_event(self, event: TabEvent) -> None:
        """Append an event to the shared bounded history."""
        self.event_log.append(event)

    @property
    def event_history(self) -> list[TabEvent]:
        return self.event_log.snapshot()

    def get_workflow_suggestions(
        self,
        current_tab_ids: Sequence[str],
        all_tab_ids: Sequence[str],
        tab_names: Optional[Mapping[str, str]] = None,
    ) -> list[WorkflowSuggestion]:
        """Mine the shared history and suggest workflow continuations."""
        self.miner.mine_frequent_sequences(self.event_log.snapshot())
        return self.miner.suggest_workflow_recovery(current_tab_ids, all_tab_ids, tab_names=tab_names)

    def get_knowledge_graph_stats(self):
        graph = self.graph_cache.current
        return graph.get_stats() if graph is not None else None
