import os
import re
import sys
import pathlib
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from datastore.common.errors import ConfigurationError, ErrorCode
from datastore.common.settings import settings
from .models import DatastoreConfig

_SECRET_RE = re.compile(r"^\$\{(?P<provider>[A-Za-z_]+):(?P<key>[^}]+)\}$")

# Keys a reader may leave out and pick up from the primary
_ENDPOINT_KEYS = ("driver", "host", "port", "database", "user", "password", "schemas", "options")


def default_search_paths() -> List[pathlib.Path]:
    """Config locations in lookup order: explicit override, per-user, then global."""
    home = pathlib.Path.home()
    root = pathlib.Path(os.path.abspath(os.sep))
    paths = []
    if settings.datastore_config_path:
        paths.append(pathlib.Path(settings.datastore_config_path).expanduser())
    paths.extend([
        home / ".datastore" / "config.yml",
        home / ".datastore.yml",
        root / "etc" / "datastore" / "config.yml",
        root / "etc" / "datastore.yml",
    ])
    return paths


def resolve_secrets(obj: Any) -> Any:
    """Recursively replaces ``${env:VAR}`` strings with the environment value.

    Only whole-string references are resolved; ``prefix_${env:VAR}`` is left alone.

    Raises:
        ConfigurationError: If the provider is unknown or the variable is unset.
    """
    if isinstance(obj, str):
        match = _SECRET_RE.match(obj)
        if not match:
            return obj
        provider, key = match.group("provider"), match.group("key")
        if provider != "env":
            raise ConfigurationError(
                f"Unknown secret provider ID: '{provider}'", ErrorCode.MISSING_SECRET
            )
        value = os.environ.get(key)
        if value is None:
            raise ConfigurationError(f"Secret not found: env:{key}", ErrorCode.MISSING_SECRET)
        return value
    if isinstance(obj, list):
        return [resolve_secrets(item) for item in obj]
    if isinstance(obj, dict):
        return {k: resolve_secrets(v) for k, v in obj.items()}
    return obj


def normalize_store(name: str, raw: Mapping[str, Any]) -> DatastoreConfig:
    """Builds a ``DatastoreConfig`` from one raw datastore definition.

    Readers inherit every connection field they do not set from the primary,
    including the primary's schema list.
    """
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Datastore '{name}' must be a mapping, got {type(raw).__name__}")

    data = resolve_secrets(dict(raw))
    primary = data.get("primary")
    if not isinstance(primary, Mapping):
        raise ConfigurationError(f"Datastore '{name}' has no primary server definition")

    readers_raw = data.get("readers") or {}
    if not isinstance(readers_raw, Mapping):
        raise ConfigurationError(f"Readers for datastore '{name}' must be a mapping of name to server")

    inherited = {k: primary[k] for k in _ENDPOINT_KEYS if k in primary}
    readers: Dict[str, Any] = {}
    for reader_name, reader in readers_raw.items():
        reader = reader or {}
        if not isinstance(reader, Mapping):
            raise ConfigurationError(f"Reader '{reader_name}' of datastore '{name}' must be a mapping")
        readers[str(reader_name)] = {**inherited, **reader}

    data["readers"] = readers
    data["name"] = name
    data.setdefault("logging", {"level": settings.log_level})

    try:
        return DatastoreConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Datastore '{name}' configuration invalid: {e}") from e


class ConfigManager:
    """
    Locates, reads and normalizes datastore configuration.
    Produces read-only ``DatastoreConfig`` objects; nothing downstream mutates them.
    """

    def __init__(
        self,
        path: Optional[Union[str, pathlib.Path]] = None,
        search_paths: Optional[Iterable[pathlib.Path]] = None,
    ):
        """
        Args:
            path: Optional explicit config file. Skips the search when given.
            search_paths: Optional override of the default lookup locations.
        """
        self.path = pathlib.Path(path) if path else None
        self.search_paths = list(search_paths) if search_paths is not None else None
        self._raw: Optional[Dict[str, Any]] = None

    def find_config_file(self) -> Optional[pathlib.Path]:
        """Returns the first readable config file, or None."""
        if self.path is not None:
            return self.path
        for candidate in self.search_paths if self.search_paths is not None else default_search_paths():
            if candidate.is_file() and os.access(candidate, os.R_OK):
                return candidate
        return None

    def load(self) -> Dict[str, Any]:
        """Reads the YAML file into a mapping of datastore name to raw definition."""
        if self._raw is not None:
            return self._raw

        target_path = self.find_config_file()
        if target_path is None:
            raise ConfigurationError("No datastore configuration file found", ErrorCode.CONFIG_NOT_FOUND)
        if not target_path.exists():
            raise ConfigurationError(f"Datastore config not found: {target_path}", ErrorCode.CONFIG_NOT_FOUND)

        try:
            raw = yaml.safe_load(target_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read YAML from {target_path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigurationError("Datastore config must be a YAML mapping of datastore names")

        self._raw = raw
        return raw

    def resolve(
        self,
        store: Union[str, Mapping[str, Any], None] = None,
        callers: Optional[Iterable[str]] = None,
    ) -> DatastoreConfig:
        """
        Resolves a datastore configuration.

        Args:
            store: A datastore name, an inline definition shaped like one
                datastore entry, or None to match against the caller stack.
            callers: Module names to match when ``store`` is None, outermost
                first. Defaults to the current call stack.

        Returns:
            The resolved DatastoreConfig.

        Raises:
            ConfigurationError: If the store cannot be found or is invalid.
        """
        if isinstance(store, DatastoreConfig):
            return store
        if isinstance(store, Mapping):
            return normalize_store(str(store.get("name", "inline")), {k: v for k, v in store.items() if k != "name"})

        raw = self.load()
        name = store or self.match_package(raw, callers if callers is not None else _caller_modules())
        if name is None:
            name = settings.default_store

        if name not in raw:
            raise ConfigurationError(
                f"Unknown datastore '{name}'. Available: {sorted(raw)}", ErrorCode.UNKNOWN_DATASTORE
            )
        return normalize_store(name, raw[name])

    @staticmethod
    def match_package(raw: Mapping[str, Any], callers: Iterable[str]) -> Optional[str]:
        """Returns the first datastore whose ``packages`` list matches a caller module."""
        candidates = []
        for store_name in sorted(raw):
            entry = raw[store_name]
            packages = entry.get("packages") if isinstance(entry, Mapping) else None
            if isinstance(packages, str):
                packages = [packages]
            if packages:
                candidates.append((store_name, list(packages)))

        for module in callers:
            for store_name, packages in candidates:
                if any(module == pkg or module.startswith(pkg + ".") for pkg in packages):
                    return store_name
        return None


def _caller_modules() -> List[str]:
    """Module names on the current call stack, outermost caller first."""
    modules = []
    frame = sys._getframe(1)
    while frame is not None:
        name = frame.f_globals.get("__name__")
        if name and not name.startswith("datastore.") and name != "datastore":
            modules.append(name)
        frame = frame.f_back
    modules.reverse()
    return modules
