"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local covlab package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of covlab modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("covlab"):
        del sys.modules[module_name]


@pytest.fixture
def isolated_imports() -> Iterator[None]:
    """Restore sys.path, sys.meta_path and sys.modules after a test imports code."""
    saved_path = sys.path[:]
    saved_meta_path = sys.meta_path[:]
    saved_modules = set(sys.modules)
    try:
        yield
    finally:
        sys.path[:] = saved_path
        sys.meta_path[:] = saved_meta_path
        for name in set(sys.modules) - saved_modules:
            del sys.modules[name]
