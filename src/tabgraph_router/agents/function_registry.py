"""
Registry of named tab functions that model tiers may call.

Each function declares a pydantic argument model; the registry validates model
supplied arguments before running the handler and renders the definitions
into prompt text.
"""

import typing
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tabgraph_router.agents.models import FunctionCall, GroupingSuggestion, TabAction
from tabgraph_router.errors import FunctionArgumentError, UnknownFunctionError
from tabgraph_router.graph.models import Tab


class FunctionArgs(BaseModel):
    """Base for function argument models (accepts camelCase aliases)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ClosePatternArgs(FunctionArgs):
    pattern: str = Field(min_length=1, description="Pattern to match (domain, keyword, or URL)")


class CreateGroupArgs(FunctionArgs):
    tab_ids: list[str] = Field(alias="tabIds", description="Array of tab IDs to group")
    group_name: str = Field(alias="groupName", min_length=1, description="Name for the group")
    color: Optional[str] = Field(default=None, description="Optional color for the group")


class FindKeywordsArgs(FunctionArgs):
    keywords: list[str] = Field(min_length=1, description="Keywords to search for")


class TabIdsArgs(FunctionArgs):
    tab_ids: list[str] = Field(alias="tabIds", description="Array of tab IDs")


class SuggestGroupsArgs(FunctionArgs):
    min_group_size: int = Field(default=2, alias="minGroupSize", ge=1, description="Minimum tabs per group")


FunctionHandler = Callable[[FunctionArgs, Sequence[Tab]], TabAction]


@dataclass(frozen=True)
class RegisteredFunction:
    name: str
    description: str
    args_model: type[FunctionArgs]
    handler: FunctionHandler


def _type_name(annotation) -> str:
    origin = typing.get_origin(annotation)
    if origin is typing.Union:
        inner = [a for a in typing.get_args(annotation) if a is not type(None)]
        return _type_name(inner[0]) if inner else "string"
    if origin is list:
        return f"{_type_name(typing.get_args(annotation)[0])}[]"
    if annotation is int or annotation is float:
        return "number"
    if annotation is bool:
        return "boolean"
    return "string"


class FunctionRegistry:
    """Maps function names to validated tab-action handlers."""

    def __init__(self, register_defaults: bool = True):
        self._functions: dict[str, RegisteredFunction] = {}
        if register_defaults:
            register_default_functions(self)

    def register(
        self,
        name: str,
        description: str,
        args_model: type[FunctionArgs],
        handler: FunctionHandler,
    ) -> None:
        self._functions[name] = RegisteredFunction(name, description, args_model, handler)

    def has_function(self, name: str) -> bool:
        return name in self._functions

    @property
    def function_names(self) -> list[str]:
        return list(self._functions)

    def execute(self, call: FunctionCall, tabs: Sequence[Tab]) -> TabAction:
        """
        Validate arguments and run a registered function.

        Args:
            call: Function name plus raw arguments
            tabs: Current tab snapshot

        Returns:
            The described tab action

        Raises:
            UnknownFunctionError: If the function is not registered
            FunctionArgumentError: If the arguments fail validation
        """
        registered = self._functions.get(call.function)
        if registered is None:
            raise UnknownFunctionError(call.function)

        try:
            args = registered.args_model.model_validate(call.args)
        except ValidationError as e:
            raise FunctionArgumentError(call.function, str(e)) from e

        return registered.handler(args, tabs)

    def definitions_prompt(self) -> str:
        """Render all function signatures as prompt text."""
        blocks = []
        for fn in self._functions.values():
            lines = []
            names = []
            for field_name, field in fn.args_model.model_fields.items():
                param = field.alias or field_name
                names.append(param)
                required = " (required)" if field.is_required() else " (optional)"
                lines.append(
                    f"  - {param}: {_type_name(field.annotation)}{required} - {field.description or ''}"
                )
            blocks.append(
                f"{fn.name}({', '.join(names)})\n"
                f"Description: {fn.description}\n"
                f"Parameters:\n" + "\n".join(lines)
            )
        return "\n\n".join(blocks)


def _close_tabs_by_pattern(args: ClosePatternArgs, tabs: Sequence[Tab]) -> TabAction:
    pattern = args.pattern.lower()
    ids = [
        t.id for t in tabs
        if pattern in t.domain.lower() or pattern in t.title.lower() or pattern in t.url.lower()
    ]
    return TabAction(
        action="close",
        tab_ids=ids,
        count=len(ids),
        message=f'Would close {len(ids)} tab(s) matching "{args.pattern}"',
    )


def _create_tab_group(args: CreateGroupArgs, tabs: Sequence[Tab]) -> TabAction:
    known = {t.id for t in tabs}
    count = sum(1 for i in args.tab_ids if i in known)
    return TabAction(
        action="group",
        tab_ids=args.tab_ids,
        group_name=args.group_name,
        color=args.color,
        count=count,
        message=f'Would create group "{args.group_name}" with {count} tab(s)',
    )


def _find_tabs_by_keyword(args: FindKeywordsArgs, tabs: Sequence[Tab]) -> TabAction:
    keywords = [k.lower() for k in args.keywords]
    ids = [
        t.id for t in tabs
        if any(k in f"{t.title} {t.url}".lower() for k in keywords)
    ]
    return TabAction(
        action="find",
        tab_ids=ids,
        count=len(ids),
        message=f"Found {len(ids)} tab(s) matching keywords: {', '.join(args.keywords)}",
    )


def _archive_tabs(args: TabIdsArgs, _tabs: Sequence[Tab]) -> TabAction:
    return TabAction(
        action="archive",
        tab_ids=args.tab_ids,
        count=len(args.tab_ids),
        message=f"Would archive {len(args.tab_ids)} tab(s)",
    )


def _pin_tabs(args: TabIdsArgs, _tabs: Sequence[Tab]) -> TabAction:
    return TabAction(
        action="pin",
        tab_ids=args.tab_ids,
        count=len(args.tab_ids),
        message=f"Would pin {len(args.tab_ids)} tab(s)",
    )


def _suggest_tab_groups(args: SuggestGroupsArgs, tabs: Sequence[Tab]) -> TabAction:
    by_domain: dict[str, list[str]] = {}
    for tab in tabs:
        by_domain.setdefault(tab.domain, []).append(tab.id)

    suggestions = [
        GroupingSuggestion(group_name=domain, tab_ids=ids, confidence=0.7)
        for domain, ids in by_domain.items()
        if domain and len(ids) >= args.min_group_size
    ]
    return TabAction(
        action="suggest",
        suggestions=suggestions,
        count=len(suggestions),
        message=f"Found {len(suggestions)} potential group(s)",
    )


def register_default_functions(registry: FunctionRegistry) -> None:
    registry.register(
        "closeTabsByPattern",
        "Close tabs matching a pattern (domain, title keyword, or URL pattern)",
        ClosePatternArgs,
        _close_tabs_by_pattern,
    )
    registry.register(
        "createTabGroup",
        "Create a new tab group with specified tabs",
        CreateGroupArgs,
        _create_tab_group,
    )
    registry.register(
        "findTabsByKeyword",
        "Find tabs matching keywords in title or URL",
        FindKeywordsArgs,
        _find_tabs_by_keyword,
    )
    registry.register(
        "archiveTabs",
        "Archive (suspend) tabs to save memory",
        TabIdsArgs,
        _archive_tabs,
    )
    registry.register(
        "pinTabs",
        "Pin tabs to keep them always visible",
        TabIdsArgs,
        _pin_tabs,
    )
    registry.register(
        "suggestTabGroups",
        "Suggest tab groups based on semantic similarity",
        SuggestGroupsArgs,
        _suggest_tab_groups,
    )
