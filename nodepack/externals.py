"""Normalisation of external module requests reported by the bundler."""

from __future__ import annotations

from collections.abc import Iterable

from nodepack.models.artifact import ExternalModuleRef

# Node.js core modules. ``node:``-prefixed requests are always builtins.
NODE_BUILTIN_MODULES = frozenset(
    {
        "assert", "async_hooks", "buffer", "child_process", "cluster", "console",
        "constants", "crypto", "dgram", "diagnostics_channel", "dns", "domain",
        "events", "fs", "http", "http2", "https", "inspector", "module", "net",
        "os", "path", "perf_hooks", "process", "punycode", "querystring",
        "readline", "repl", "stream", "string_decoder", "sys", "timers", "tls",
        "trace_events", "tty", "url", "util", "v8", "vm", "wasi",
        "worker_threads", "zlib",
    }
)


def package_name(request: str) -> str:
    """Return the installable package for a module request.

    ``uuid/v4`` -> ``uuid``, ``@scope/pkg/sub`` -> ``@scope/pkg``.
    """
    parts = request.split("/")
    if request.startswith("@") and len(parts) > 1:
        return f"{parts[0]}/{parts[1]}"
    return parts[0]


def is_builtin(request: str) -> bool:
    if request.startswith("node:"):
        return True
    return package_name(request) in NODE_BUILTIN_MODULES


def normalize_externals(modules: Iterable[ExternalModuleRef]) -> list[ExternalModuleRef]:
    """Map requests to package names, drop builtins and deduplicate by name.

    The first origin seen for a package is kept. Order follows first
    appearance so diagnostics list packages as the bundler reported them.
    """
    seen: dict[str, ExternalModuleRef] = {}
    for module in modules:
        if not module.name or is_builtin(module.name):
            continue
        name = package_name(module.name)
        if name in seen:
            if seen[name].origin is None and module.origin is not None:
                seen[name] = ExternalModuleRef(name=name, origin=package_name(module.origin))
            continue
        origin = package_name(module.origin) if module.origin else None
        seen[name] = ExternalModuleRef(name=name, origin=origin)
    return list(seen.values())
