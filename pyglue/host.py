"""Host-side runtime installation for pyglue.

Binds one embedded runtime to the process: builds its GlueContext, resolves
preloaded class descriptors (so deployment defects abort start-up before any
proxy exists) and makes it the context proxies cross into.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ._internal.context import GlueContext, peek_active_context, set_active_context
from ._internal.descriptor_cache import ForeignClass
from ._internal.dispatch import ForeignProxy
from ._internal.guest_runtime import GuestRuntime
from ._internal.identity_cache import IdentityCache
from .config import GlueConfig, apply_env_overrides
from .interfaces import EmbeddedRuntime

__all__ = ["install_runtime", "uninstall_runtime", "GlueContext"]

logger = logging.getLogger(__name__)


def install_runtime(
    runtime: EmbeddedRuntime | None = None,
    config: GlueConfig | None = None,
    *,
    preload: Iterable[type[ForeignProxy]] = (),
) -> GlueContext:
    """Install an embedded runtime as the process-wide context.

    Args:
        runtime: Runtime to bind. When omitted a GuestRuntime is built from
            ``config["source_paths"]``.
        config: Optional configuration; environment overrides are applied on top.
        preload: Proxy classes whose descriptors must resolve at install time.

    Raises:
        DescriptorResolutionError: If a preloaded class cannot be resolved.
    """
    merged = apply_env_overrides(config or {})
    if runtime is None:
        if not merged["source_paths"]:
            raise ValueError("install_runtime() needs a runtime or config['source_paths']")
        runtime = GuestRuntime(merged["source_paths"])
    if not isinstance(runtime, EmbeddedRuntime):
        raise TypeError(f"{runtime!r} does not implement the EmbeddedRuntime protocol")

    identity_cache = IdentityCache(weak=merged["identity_cache"] == "weak")
    context = GlueContext(
        runtime,
        identity_cache=identity_cache,
        debug_crossings=merged["debug_crossings"],
    )

    targets = [ForeignClass.parse(target) for target in merged["preload"]]
    for proxy_type in preload:
        if proxy_type.__foreign__ is None:
            raise TypeError(f"{proxy_type.__name__} does not declare a foreign class")
        targets.append(proxy_type.__foreign__)
    try:
        context.preload(targets)
    except Exception:
        runtime.close()
        raise

    previous = peek_active_context()
    if previous is not None:
        logger.warning("Replacing installed runtime %s with %s", previous.runtime.identifier, runtime.identifier)
        previous.close()
    IdentityCache.set_instance(identity_cache)
    set_active_context(context)
    logger.info(
        "📚 [PyGlue][Host] Installed embedded runtime %s (%d descriptors preloaded, %s identity cache)",
        runtime.identifier,
        len(targets),
        merged["identity_cache"],
    )
    return context


def uninstall_runtime() -> None:
    """Close the installed runtime and clear process-wide proxy state."""
    context = peek_active_context()
    if context is None:
        return
    set_active_context(None)
    context.close()
    context.identity.clear()
    IdentityCache.set_instance(None)
    logger.info("📚 [PyGlue][Host] Uninstalled embedded runtime %s", context.runtime.identifier)
