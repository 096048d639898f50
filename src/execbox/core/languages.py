from __future__ import annotations
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterator, Mapping, Optional

import yaml

from .errors import ConfigError
from .models import LanguageConfig, RecipeKind

DEFAULT_LANGUAGES: Mapping[str, LanguageConfig] = MappingProxyType({
    "python": LanguageConfig(
        kind=RecipeKind.INTERPRET,
        compiler="python3",
        filename="main.py",
        run_cmd="python3",
    ),
    "javascript": LanguageConfig(
        kind=RecipeKind.INTERPRET,
        compiler="node",
        filename="main.js",
        run_cmd="node",
        build_args=("--check", "{}"),  # syntax check before execution
    ),
    "cpp": LanguageConfig(
        kind=RecipeKind.COMPILE_ARTIFACT,
        compiler="g++",
        filename="main.cpp",
        run_cmd="./a.out",
        build_args=("-o", "a.out"),
    ),
    "java": LanguageConfig(
        kind=RecipeKind.COMPILE_NAMED_ENTRY,
        compiler="javac",
        filename="Main.java",  # must match the public class name
        run_cmd="java",
        main_class="Main",
    ),
})


class LanguageRegistry:
    """
    Read-only name -> recipe table. Built once at start-up and shared between
    requests without locking.
    """

    def __init__(self, configs: Mapping[str, LanguageConfig]):
        self._configs = MappingProxyType(dict(configs))

    def resolve(self, name: str) -> Optional[LanguageConfig]:
        return self._configs.get(name)

    def names(self) -> FrozenSet[str]:
        return frozenset(self._configs)

    def __contains__(self, name: object) -> bool:
        return name in self._configs

    def __iter__(self) -> Iterator[str]:
        return iter(self._configs)

    def __len__(self) -> int:
        return len(self._configs)

    @classmethod
    def default(cls) -> "LanguageRegistry":
        return cls(DEFAULT_LANGUAGES)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], base: Optional[Mapping[str, LanguageConfig]] = None) -> "LanguageRegistry":
        """Build a registry from YAML-shaped dicts; entries override same-named ones in `base`."""
        configs: Dict[str, LanguageConfig] = dict(DEFAULT_LANGUAGES if base is None else base)
        for name, entry in (raw or {}).items():
            configs[str(name)] = parse_recipe(str(name), entry)
        return cls(configs)

    @classmethod
    def from_yaml(cls, path: Path) -> "LanguageRegistry":
        try:
            data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"cannot read languages file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping at top level")
        # accept both a bare mapping and one nested under `languages:`
        return cls.from_mapping(data.get("languages", data))


def parse_recipe(name: str, entry: Any) -> LanguageConfig:
    if not isinstance(entry, dict):
        raise ConfigError(f"language '{name}': recipe must be a mapping")

    try:
        kind = RecipeKind(entry.get("kind", RecipeKind.INTERPRET.value))
    except ValueError:
        allowed = ", ".join(k.value for k in RecipeKind)
        raise ConfigError(f"language '{name}': unknown kind {entry.get('kind')!r} (expected one of {allowed})")

    missing = [k for k in ("compiler", "filename", "run_cmd") if not entry.get(k)]
    if missing:
        raise ConfigError(f"language '{name}': missing {', '.join(missing)}")

    build_args = entry.get("build_args") or []
    if not isinstance(build_args, list) or not all(isinstance(a, str) for a in build_args):
        raise ConfigError(f"language '{name}': build_args must be a list of strings")

    main_class = entry.get("main_class")
    if kind is RecipeKind.COMPILE_NAMED_ENTRY and not main_class:
        raise ConfigError(f"language '{name}': main_class is required for {kind.value}")

    return LanguageConfig(
        kind=kind,
        compiler=str(entry["compiler"]),
        filename=str(entry["filename"]),
        run_cmd=str(entry["run_cmd"]),
        build_args=tuple(build_args),
        main_class=str(main_class) if main_class else None,
    )
