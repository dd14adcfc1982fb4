"""Reverses a pack's deployment handler by handler."""

from __future__ import annotations

import logging
import os
from typing import Mapping, Protocol, Sequence

from .datastore import DataStore
from .errors import DotpackError
from .filesystem import Filesystem
from .handlers.base import ClearContext, Handler
from .models import ClearedItem, ConfirmationRequest, HandlerClearResult, Pack, PackClearResult, RuleMatch
from .paths import Paths

logger = logging.getLogger(__name__)


class Confirmer(Protocol):
    def __call__(self, request: ConfirmationRequest) -> bool: ...


def approve_all(request: ConfirmationRequest) -> bool:
    return True


def decline_all(request: ConfirmationRequest) -> bool:
    return False


def state_items(ctx: ClearContext, handler_name: str) -> list[ClearedItem]:
    """Describe a handler's state directory as a single cleared item."""

    state_dir = ctx.paths.pack_handler_dir(ctx.pack.name, handler_name)
    return [ClearedItem(type="state", path=state_dir, description=f"{handler_name} state for pack '{ctx.pack.name}'")]


def clear_handler(
    ctx: ClearContext,
    handler_name: str,
    handler: Handler | None,
    *,
    confirmer: Confirmer = decline_all,
) -> HandlerClearResult:
    """Run one handler's reversal hook, then drop its state directory.

    A declined confirmation downgrades the clear to state removal only. A hook
    that raises leaves the state directory in place so the clear can be retried.
    """

    confirmed = True
    run_hook = True

    if handler is not None:
        try:
            request = handler.get_clear_confirmation(ctx)
        except DotpackError as exc:
            return HandlerClearResult(handler=handler_name, confirmed=False, error=exc)
        if request is not None:
            confirmed = confirmer(request)
            if not confirmed:
                logger.info("Confirmation '%s' declined; removing %s state only", request.id, handler_name)
                run_hook = False

    items: list[ClearedItem] = []
    if handler is not None and run_hook:
        try:
            items = list(handler.clear(ctx))
        except DotpackError as exc:
            logger.warning("Clearing %s for pack '%s' failed: %s", handler_name, ctx.pack.name, exc)
            return HandlerClearResult(handler=handler_name, confirmed=confirmed, error=exc)
        except OSError as exc:
            error = DotpackError(f"Clearing {handler_name} for pack '{ctx.pack.name}' failed: {exc}")
            logger.warning("%s", error)
            return HandlerClearResult(handler=handler_name, confirmed=confirmed, error=error)
    else:
        items = state_items(ctx, handler_name)

    if ctx.dry_run:
        return HandlerClearResult(handler=handler_name, items=tuple(items), confirmed=confirmed)

    try:
        ctx.datastore.remove_state(ctx.pack.name, handler_name)
    except DotpackError as exc:
        return HandlerClearResult(handler=handler_name, items=tuple(items), confirmed=confirmed, error=exc)
    return HandlerClearResult(handler=handler_name, items=tuple(items), state_removed=True, confirmed=confirmed)


def clear_pack(
    pack: Pack,
    handlers: Mapping[str, Handler],
    datastore: DataStore,
    fs: Filesystem,
    paths: Paths,
    *,
    dry_run: bool = False,
    confirmer: Confirmer = decline_all,
    environ: Mapping[str, str] | None = None,
    matches: Sequence[RuleMatch] = (),
) -> PackClearResult:
    """Clear every handler that has state for ``pack``."""

    ctx = ClearContext(
        pack=pack,
        datastore=datastore,
        fs=fs,
        paths=paths,
        dry_run=dry_run,
        environ=dict(os.environ if environ is None else environ),
        matches=tuple(matches),
    )

    results: list[HandlerClearResult] = []
    for handler_name in datastore.list_pack_handlers(pack.name):
        if not datastore.has_handler_state(pack.name, handler_name):
            if not dry_run:
                datastore.remove_state(pack.name, handler_name)
            continue
        handler = handlers.get(handler_name)
        if handler is None:
            logger.warning("No handler named '%s'; removing its state for pack '%s'", handler_name, pack.name)
        results.append(clear_handler(ctx, handler_name, handler, confirmer=confirmer))

    logger.info("Cleared %d handler(s) for pack '%s'", len(results), pack.name)
    return PackClearResult(pack=pack.name, handlers=tuple(results))
