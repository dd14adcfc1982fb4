"""Per-pack driver from rule matches to executed operations."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Sequence

from .datastore import DataStore
from .errors import ConfigError, DotpackError
from .executor import OperationExecutor
from .filesystem import Filesystem
from .handlers.base import Handler
from .models import HandlerCategory, HandlerRunResult, Pack, PackRunResult, RuleMatch, Selector

logger = logging.getLogger(__name__)

CATEGORY_ORDER = (HandlerCategory.CODE_EXECUTION, HandlerCategory.CONFIGURATION)


def group_matches(matches: Iterable[RuleMatch]) -> dict[str, list[RuleMatch]]:
    """Group matches by handler name, keeping first-seen order."""

    groups: dict[str, list[RuleMatch]] = {}
    for match in matches:
        groups.setdefault(match.handler, []).append(match)
    return groups


def order_groups(
    groups: Mapping[str, list[RuleMatch]],
    handlers: Mapping[str, Handler],
    selector: Selector,
) -> list[tuple[Handler, list[RuleMatch]]]:
    """Return the selected handler groups, code-execution handlers first."""

    ordered: list[tuple[Handler, list[RuleMatch]]] = []
    for category in CATEGORY_ORDER:
        if not selector.includes(category):
            continue
        for name, matches in groups.items():
            handler = handlers.get(name)
            if handler is None:
                raise ConfigError(f"Unknown handler '{name}'")
            if handler.category is category:
                ordered.append((handler, matches))
    return ordered


def is_provisioned(pack: str, handlers: Mapping[str, Handler], datastore: DataStore) -> bool:
    """Return ``True`` if any code-execution handler has state for ``pack``."""

    return any(
        datastore.has_handler_state(pack, name)
        for name, handler in handlers.items()
        if handler.category is HandlerCategory.CODE_EXECUTION
    )


def run_pack(
    pack: Pack,
    matches: Sequence[RuleMatch],
    handlers: Mapping[str, Handler],
    selector: Selector,
    datastore: DataStore,
    fs: Filesystem,
    *,
    dry_run: bool = False,
    force: bool = False,
) -> PackRunResult:
    """Run the handler groups ``selector`` covers for one pack.

    A handler that fails while producing operations is recorded and the
    remaining handlers still run.
    """

    unknown: list[str] = []
    if selector.includes(HandlerCategory.CONFIGURATION):
        unknown = sorted({match.handler for match in matches if match.handler not in handlers})
    results: list[HandlerRunResult] = [
        HandlerRunResult(handler=name, category=HandlerCategory.CONFIGURATION, error=ConfigError(f"Unknown handler '{name}'"))
        for name in unknown
    ]

    groups = {name: group for name, group in group_matches(matches).items() if name in handlers}
    executor = OperationExecutor(datastore, fs, dry_run=dry_run, force=force)

    for handler, group in order_groups(groups, handlers, selector):
        try:
            operations = handler.to_operations(group)
        except DotpackError as exc:
            logger.warning("Handler '%s' failed for pack '%s': %s", handler.name, pack.name, exc)
            results.append(HandlerRunResult(handler=handler.name, category=handler.category, error=exc))
            continue

        execution = executor.execute(operations)
        results.append(
            HandlerRunResult(
                handler=handler.name,
                category=handler.category,
                results=execution.results,
                error=None,
            )
        )
        logger.debug(
            "Handler '%s' for pack '%s': %d operation(s), %d failed",
            handler.name,
            pack.name,
            len(execution.results),
            execution.failure_count,
        )

    run = PackRunResult(pack=pack.name, handlers=tuple(results))
    logger.info(
        "Pack '%s' (%s): %d ok, %d failed, %d skipped", pack.name, selector.value, run.success, run.failure, run.skipped
    )
    return run
