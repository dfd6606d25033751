"""
Discovery of pipeline stages under ``plugins/``.

Every module ``plugins/<group>/<module>.py`` is imported and each concrete
:class:`~monitor.interfaces.Transform` subclass defined in it is registered
as ``"<group>.<ClassName>"``, which is the name pipeline configs refer to.
"""

import importlib
import inspect
import logging
import pathlib
from typing import Dict, Iterator, Type

from .interfaces import Transform

logger = logging.getLogger(__name__)

PLUGINS_ROOT = pathlib.Path(__file__).resolve().parent.parent / "plugins"

_stages: Dict[str, Type[Transform]] = {}


def _plugin_modules() -> Iterator[str]:
    for path in sorted(PLUGINS_ROOT.glob("*/*.py")):
        if path.stem.startswith("_"):
            continue
        yield f"plugins.{path.parent.name}.{path.stem}"


def _stage_classes(module) -> Iterator[Type[Transform]]:
    for _, cls in inspect.getmembers(module, inspect.isclass):
        if cls.__module__ != module.__name__:
            continue
        if issubclass(cls, Transform) and not inspect.isabstract(cls):
            yield cls


def refresh_registry() -> None:
    """Re-import plugin modules and rebuild the stage registry.

    A module that fails to import is logged and left out; the other
    plugins stay usable.
    """
    _stages.clear()
    if not PLUGINS_ROOT.is_dir():
        logger.warning(f"No plugins directory at {PLUGINS_ROOT}")
        return

    loaded = 0
    for module_name in _plugin_modules():
        try:
            module = importlib.import_module(module_name)
        except Exception as e:
            logger.error(f"Could not import plugin module {module_name}: {e}")
            continue
        loaded += 1
        group = module_name.split(".")[1]
        for cls in _stage_classes(module):
            _stages[f"{group}.{cls.__name__}"] = cls
            logger.debug(f"Registered stage {group}.{cls.__name__}")

    logger.info(f"Loaded {loaded} plugin modules, {len(_stages)} stages")


def get(class_path: str) -> Type[Transform]:
    """Stage class for ``"<group>.<ClassName>"``; KeyError if unknown."""
    if not _stages:
        refresh_registry()
    try:
        return _stages[class_path]
    except KeyError:
        raise KeyError(f"Unknown pipeline stage '{class_path}'. Known: {sorted(_stages)}") from None


def list_available() -> Dict[str, Type[Transform]]:
    if not _stages:
        refresh_registry()
    return dict(_stages)
