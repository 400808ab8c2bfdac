"""
Locating the app module named on the command line.

The caller controls sys.path: dotted paths are imported as is, file paths
get their parent directory added. The only convenience is adding the cwd
when it holds a pyproject.toml.
"""

from __future__ import annotations

import hashlib
import importlib.util
import os
import sys
from typing import Any

from picket.core.logging import get_logger

logger = get_logger('imports')


def find_project_root(start_dir: str) -> str | None:
    """Return start_dir if it contains a project marker. Parents are not searched."""
    start_dir = os.path.abspath(start_dir)
    for marker in ('pyproject.toml', 'setup.cfg', 'setup.py'):
        if os.path.exists(os.path.join(start_dir, marker)):
            return start_dir
    return None


def setup_sys_path_from_cwd() -> str | None:
    """Add the cwd to sys.path when it is a project root; return it if added."""
    cwd = os.getcwd()
    if find_project_root(cwd) and cwd not in sys.path:
        sys.path.insert(0, cwd)
        logger.debug(f'Added cwd to sys.path: {cwd}')
        return cwd
    return None


def _synthetic_module_name(path: str) -> str:
    # same file -> same name in every process
    digest = hashlib.sha256(os.path.realpath(path).encode()).hexdigest()[:12]
    return f'picket._dynamic.{digest}'


def import_file_path(file_path: str, module_name: str | None = None) -> Any:
    """Import a module from a .py file, reusing it if already loaded.

    Raises:
        FileNotFoundError: the file does not exist.
        ImportError: the file cannot be loaded as a module.
    """
    file_path = os.path.realpath(file_path)
    if not os.path.exists(file_path):
        raise FileNotFoundError(f'Module file not found: {file_path}')

    for mod in list(sys.modules.values()):
        mod_file = getattr(mod, '__file__', None)
        if mod_file and os.path.realpath(mod_file) == file_path:
            return mod

    parent_dir = os.path.dirname(file_path)
    if parent_dir not in sys.path:
        sys.path.insert(0, parent_dir)

    name = module_name or _synthetic_module_name(file_path)
    spec = importlib.util.spec_from_file_location(name, file_path)
    if spec is None or spec.loader is None:
        raise ImportError(f'Could not load module from path: {file_path}')

    mod = importlib.util.module_from_spec(spec)
    sys.modules[name] = mod
    spec.loader.exec_module(mod)
    return mod
