"""Load interception: instrument modules as they are imported.

``instrument(config)`` puts a CoverageFinder at the front of ``sys.meta_path``.
For every module whose file lies under the inclusion root (and outside every
exclusion) it swaps the regular source loader for an InstrumentingLoader,
which runs the configured transform, instruments the text, registers the file
with the coverage context and compiles the result. Extra extensions named in
``config.transforms`` become importable through the same loader.

Instrumented code is never written to bytecode caches.
"""

from __future__ import annotations

import importlib
import os
import sys
from collections.abc import Sequence
from importlib.abc import MetaPathFinder
from importlib.machinery import ModuleSpec, PathFinder, SourceFileLoader
from importlib.util import decode_source, spec_from_file_location
from pathlib import Path
from types import CodeType, ModuleType, TracebackType
from typing import Any

from covlab.config.models import CoverageConfig, LineMap, TransformFn
from covlab.coverage.analyze import analyze
from covlab.coverage.instrument import InstrumentedFile, instrument_source
from covlab.coverage.models import AggregateReport
from covlab.coverage.pattern import PathFilter, is_own_file, normalize_path
from covlab.coverage.registry import TRACKER_NAME, CoverageContext
from covlab.core.errors import InstrumentError
from covlab.core.logging import clear_run_id, ensure_logging, get_logger, set_run_id

log = get_logger(__name__)


class CoverageHook:
    """Owns the transform pipeline and the meta-path finder of one coverage run."""

    def __init__(self, config: CoverageConfig, context: CoverageContext) -> None:
        self.config = config
        self.context = context
        self.path_filter = PathFilter(config.root, config.exclude)
        # Later entries for the same extension win.
        self.transforms: dict[str, TransformFn | None] = {".py": None}
        for entry in config.transforms:
            self.transforms[entry.extension] = entry.transform
        self.finder = CoverageFinder(self)

    @property
    def extensions(self) -> tuple[str, ...]:
        return tuple(self.transforms)

    @property
    def installed(self) -> bool:
        return self.finder in sys.meta_path

    def install(self) -> CoverageHook:
        if not self.installed:
            ensure_logging()
            sys.meta_path.insert(0, self.finder)
            importlib.invalidate_caches()
            log.debug("hook_installed", root=self.path_filter.root, exclude=self.path_filter.exclude)
        return self

    def uninstall(self) -> None:
        if self.installed:
            sys.meta_path.remove(self.finder)
            log.debug("hook_uninstalled", files=len(self.context))

    def wants(self, path: str) -> bool:
        """Whether a file is instrumented when loaded."""
        filename = normalize_path(path)
        return (
            filename.endswith(self.extensions)
            and not is_own_file(filename)
            and self.path_filter.matches(filename)
        )

    def transform(self, path: str, text: str) -> str:
        return self._transform(path, text)[0]

    def _transform(self, path: str, text: str) -> tuple[str, LineMap | None]:
        fn = self.transforms.get(Path(path).suffix)
        if fn is None:
            return text, None
        result = fn(text, path)
        if isinstance(result, tuple):
            return result
        return result, None

    def prepare(self, path: str, text: str) -> InstrumentedFile:
        """Transform and instrument one file without registering it.

        Raises:
            InstrumentError: The transformed text does not parse.
        """
        return instrument_source(normalize_path(path), self.transform(path, text))

    def compile(self, path: str, text: str) -> CodeType:
        """Code object for a file, instrumented and registered when in scope.

        A file that cannot be instrumented, or whose instrumented text does not
        compile, is served as transformed but uninstrumented.
        """
        transformed, line_map = self._transform(path, text)
        if not self.wants(path):
            return compile(transformed, path, "exec", dont_inherit=True)

        filename = normalize_path(path)
        try:
            instrumented = instrument_source(filename, transformed)
            try:
                code = compile(instrumented.text, path, "exec", dont_inherit=True)
            except SyntaxError as e:
                raise InstrumentError.invalid_output(filename, e.msg or str(e), e.lineno) from e
        except InstrumentError as e:
            log.warning("instrument_failed", error_code=e.error_name, **e.details)
            return compile(transformed, path, "exec", dont_inherit=True)

        self.context.register(instrumented)
        if line_map:
            self.context.source_maps.register(filename, line_map)
        else:
            self.context.source_maps.discard(filename)
        return code

    def compile_file(self, path: str | os.PathLike[str]) -> CodeType:
        filename = os.fspath(path)
        data = Path(filename).read_bytes()
        return self.compile(filename, decode_source(data))


class InstrumentingLoader(SourceFileLoader):
    """Source loader that hands the text to a CoverageHook before compiling."""

    def __init__(self, fullname: str, path: str, hook: CoverageHook) -> None:
        super().__init__(fullname, path)
        self.hook = hook

    def get_code(self, fullname: str) -> CodeType:
        path = self.get_filename(fullname)
        return self.hook.compile(path, decode_source(self.get_data(path)))

    def exec_module(self, module: ModuleType) -> None:
        module.__dict__[TRACKER_NAME] = self.hook.context
        super().exec_module(module)


class CoverageFinder(MetaPathFinder):
    def __init__(self, hook: CoverageHook) -> None:
        self.hook = hook

    def find_spec(
        self,
        fullname: str,
        path: Sequence[str] | None = None,
        target: ModuleType | None = None,
    ) -> ModuleSpec | None:
        spec = PathFinder.find_spec(fullname, path, target)
        if spec is not None:
            if (
                isinstance(spec.loader, SourceFileLoader)
                and spec.origin is not None
                and self.hook.wants(spec.origin)
            ):
                spec.loader = InstrumentingLoader(fullname, spec.origin, self.hook)
            return spec
        return self._find_transformed(fullname, path)

    def _find_transformed(self, fullname: str, path: Sequence[str] | None) -> ModuleSpec | None:
        extra = [ext for ext in self.hook.extensions if ext != ".py"]
        if not extra:
            return None
        tail = fullname.rpartition(".")[2]
        for entry in path if path is not None else sys.path:
            directory = Path(entry or ".")
            for ext in extra:
                candidate = directory / f"{tail}{ext}"
                if candidate.is_file():
                    origin = str(candidate)
                    loader = InstrumentingLoader(fullname, origin, self.hook)
                    return spec_from_file_location(fullname, origin, loader=loader)
        return None

    def invalidate_caches(self) -> None:
        PathFinder.invalidate_caches()


def instrument(config: CoverageConfig, context: CoverageContext | None = None) -> CoverageHook:
    """Install load interception for files selected by ``config``.

    Args:
        config: Inclusion root, exclusions and transforms.
        context: Registry to count into. A fresh one is created when omitted.

    Returns:
        The installed hook; call ``uninstall()`` to stop instrumenting.

    Raises:
        PatternError: An exclusion is empty.
    """
    return CoverageHook(config, context if context is not None else CoverageContext()).install()


class CoverageSession:
    """One coverage run scoped to a ``with`` block.

    Usage::

        with CoverageSession(config) as session:
            import mypkg.main
            mypkg.main.run()
        report = session.analyze()
    """

    def __init__(self, config: CoverageConfig, context: CoverageContext | None = None) -> None:
        self.config = config
        self.context = context if context is not None else CoverageContext()
        self.hook = CoverageHook(config, self.context)
        self.run_id: str | None = None

    def __enter__(self) -> CoverageSession:
        self.run_id = set_run_id()
        self.hook.install()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.hook.uninstall()
        clear_run_id()

    def run_script(self, path: str | os.PathLike[str], args: Sequence[str] = ()) -> None:
        """Execute a script as ``__main__`` with its own file instrumented.

        ``sys.argv``, ``sys.path[0]`` and ``sys.modules['__main__']`` are set the
        way the interpreter sets them and restored afterwards.
        """
        filename = os.path.abspath(os.fspath(path))
        code = self.hook.compile_file(filename)

        main = ModuleType("__main__")
        namespace: dict[str, Any] = main.__dict__
        namespace.update(
            __file__=filename,
            __builtins__=__builtins__,
            __cached__=None,
            __loader__=None,
            __spec__=None,
        )
        namespace[TRACKER_NAME] = self.context

        saved_argv = sys.argv
        saved_path = sys.path[:]
        saved_main = sys.modules.get("__main__")
        sys.argv = [filename, *args]
        sys.path.insert(0, os.path.dirname(filename))
        sys.modules["__main__"] = main
        try:
            exec(code, namespace)
        finally:
            sys.argv = saved_argv
            sys.path[:] = saved_path
            if saved_main is not None:
                sys.modules["__main__"] = saved_main

    def run_module(self, module: str, args: Sequence[str] = ()) -> None:
        """Execute ``python -m module`` semantics through the installed finder."""
        import runpy

        saved_argv = sys.argv
        sys.argv = [module, *args]
        try:
            runpy.run_module(
                module,
                init_globals={TRACKER_NAME: self.context},
                run_name="__main__",
                alter_sys=True,
            )
        finally:
            sys.argv = saved_argv

    def analyze(self) -> AggregateReport:
        return analyze(self.config, self.context)
