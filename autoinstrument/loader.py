"""
Import-time interception of supported web frameworks.

``install()`` puts an ``ImportInterceptor`` at the front of
``sys.meta_path``.  It claims only the recognised framework modules, lets the
remaining finders locate them, and wraps the loader so that once the module
has executed its application class is swapped for an instrumented subclass.
The real module object is always what ``import`` returns.

The hook must be installed before the host imports a framework: modules that
are already in ``sys.modules`` are never revisited.  Hosts that cannot
guarantee the ordering call ``instrument_module`` or ``instrument_app``
themselves.
"""

import importlib
import sys
import threading
from importlib.abc import Loader, MetaPathFinder
from importlib.machinery import ModuleSpec
from types import ModuleType
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from .constants import MODULE_MARKER
from .controller import InstrumentationContext, get_context
from .observability import get_logger

logger = get_logger(__name__)

# module name -> (adapter module, adapter class); imported lazily so that
# importing this package never imports a framework.
FRAMEWORK_ADAPTERS: Dict[str, Tuple[str, str]] = {
    "flask": ("autoinstrument.adapters.flask_adapter", "FlaskAdapter"),
    "fastapi": ("autoinstrument.adapters.starlette_adapter", "FastAPIAdapter"),
    "starlette.applications": ("autoinstrument.adapters.starlette_adapter", "StarletteAdapter"),
}

OnLoad = Callable[[str, ModuleType], None]


class _TransformingLoader(Loader):
    """Delegates to the real loader, then hands the module to ``on_load``."""

    def __init__(self, loader: Loader, on_load: OnLoad):
        self._loader = loader
        self._on_load = on_load

    def create_module(self, spec: ModuleSpec) -> Optional[ModuleType]:
        return self._loader.create_module(spec)

    def exec_module(self, module: ModuleType) -> None:
        self._loader.exec_module(module)
        self._on_load(module.__name__, module)

    def __getattr__(self, item: str) -> Any:
        # get_source, get_resource_reader, is_package, ...
        return getattr(self._loader, item)


class ImportInterceptor(MetaPathFinder):
    """``sys.meta_path`` finder that runs ``on_load`` after chosen modules load."""

    def __init__(self, names: Sequence[str], on_load: OnLoad):
        self.names = frozenset(names)
        self.on_load = on_load
        self._local = threading.local()

    def find_spec(self, fullname: str, path=None, target=None) -> Optional[ModuleSpec]:
        if fullname not in self.names or getattr(self._local, "busy", False):
            return None

        self._local.busy = True
        try:
            spec = self._find_with_others(fullname, path, target)
        finally:
            self._local.busy = False

        if spec is None or spec.loader is None or not hasattr(spec.loader, "exec_module"):
            return spec
        spec.loader = _TransformingLoader(spec.loader, self.on_load)
        return spec

    def _find_with_others(self, fullname: str, path, target) -> Optional[ModuleSpec]:
        for finder in sys.meta_path:
            if finder is self:
                continue
            find_spec = getattr(finder, "find_spec", None)
            if find_spec is None:
                continue
            spec = find_spec(fullname, path, target)
            if spec is not None:
                return spec
        return None


# ── Module transformation ────────────────────────────────────────


def load_adapter(module_name: str, context: InstrumentationContext):
    """Instantiate the adapter registered for *module_name*."""
    adapter_module, adapter_class = FRAMEWORK_ADAPTERS[module_name]
    cls = getattr(importlib.import_module(adapter_module), adapter_class)
    return cls(context)


def instrument_module(
    module: ModuleType, context: Optional[InstrumentationContext] = None
) -> ModuleType:
    """Replace *module*'s application class with an instrumented subclass.

    No-op when no sink is registered, when the module is not a supported
    framework, or when it has already been wrapped.
    """
    context = context or get_context()
    name = module.__name__
    if not context.active or name not in FRAMEWORK_ADAPTERS:
        return module
    if getattr(module, MODULE_MARKER, False):
        return module
    try:
        adapter = load_adapter(name, context)
        original = getattr(module, adapter.factory_name)
        setattr(module, adapter.factory_name, adapter.wrap_factory(original))
        setattr(module, MODULE_MARKER, True)
        logger.info("Instrumented %s.%s", name, adapter.factory_name)
    except Exception:
        logger.exception("Failed to instrument framework module %s", name)
    return module


def instrument_app(app: Any, context: Optional[InstrumentationContext] = None) -> Any:
    """Attach instrumentation to an already-constructed application."""
    context = context or get_context()
    for name in FRAMEWORK_ADAPTERS:
        module = sys.modules.get(name)
        if module is None:
            continue
        adapter = load_adapter(name, context)
        cls = getattr(module, adapter.factory_name, None)
        cls = getattr(cls, "__wrapped__", cls)
        if isinstance(cls, type) and isinstance(app, cls):
            return adapter.attach(app)
    logger.warning("No adapter for application of type %s", type(app).__name__)
    return app


# ── Installation ─────────────────────────────────────────────────

_interceptor: Optional[ImportInterceptor] = None
_install_lock = threading.Lock()


def install(context: Optional[InstrumentationContext] = None) -> ImportInterceptor:
    """Install the import hook once per process.

    Args:
        context: Context whose sink and config the adapters use.  When
            omitted, the default context is looked up at import time.
    """
    global _interceptor
    with _install_lock:
        if _interceptor is not None:
            return _interceptor

        def _on_load(name: str, module: ModuleType) -> None:
            instrument_module(module, context or get_context())

        _interceptor = ImportInterceptor(FRAMEWORK_ADAPTERS, _on_load)
        sys.meta_path.insert(0, _interceptor)
        logger.info("Auto-instrumentation hook installed")
        return _interceptor


def uninstall() -> None:
    """Remove the import hook (testing)."""
    global _interceptor
    with _install_lock:
        if _interceptor is not None and _interceptor in sys.meta_path:
            sys.meta_path.remove(_interceptor)
        _interceptor = None


def is_installed() -> bool:
    return _interceptor is not None
