"""
AutonomyPolicyStore: dotted-path configuration with profiles and overrides.

Resolution order for ``resolve(key)``:

1. Setting overrides pinned by active safe mode restrictions
2. Session overrides (never persisted)
3. The persisted configuration document
4. The built-in default

Nothing is cached across layers, so the next resolve after any mutation
observes it.
"""

import copy
import json
import logging
import threading
from collections.abc import Mapping
from typing import Any

import yaml

from deliverygate import schemas
from deliverygate.application.event_bus import EventBus
from deliverygate.domain.autonomy import (
    AUTONOMY_DOCUMENT,
    BUILT_IN_DEFAULTS,
    PROFILE_SETTINGS,
    AutonomyLevel,
    built_in_default,
    get_path,
    iter_leaves,
    parse_level,
    set_path,
    split_key,
)
from deliverygate.domain.events import ControlEvent, EventType
from deliverygate.domain.exceptions import ConfigurationError, InvalidProfile
from deliverygate.domain.interfaces import SettingsStoreInterface
from deliverygate.domain.models import ValidationReport
from deliverygate.domain.safety import RESTRICTIONS

logger = logging.getLogger(__name__)

LEVEL_KEY = f"{AUTONOMY_DOCUMENT}.level"
SOURCE = "policy-store"


class AutonomyPolicyStore:
    """
    Holds the configuration documents and resolves effective settings.

    Every mutation publishes a notification carrying the old and new value so
    the orchestrator and gate pipeline pick changes up for their next step.
    """

    def __init__(
        self,
        store: SettingsStoreInterface,
        bus: EventBus | None = None,
    ):
        """
        Args:
            store: Where configuration documents are persisted
            bus: Notification bus; restriction notifications are subscribed to
        """
        self._store = store
        self._bus = bus
        self._lock = threading.RLock()
        self._documents: dict[str, dict[str, Any]] = {}
        self._overrides: dict[str, Any] = {}
        # restriction name -> dotted key -> pinned value, in activation order
        self._restrictions: dict[str, dict[str, Any]] = {}
        self.load()

        if bus is not None:
            bus.subscribe(
                self._on_restriction_applied,
                EventType.RESTRICTION_APPLIED,
                subscriber=SOURCE,
            )
            bus.subscribe(
                self._on_restriction_removed,
                EventType.RESTRICTION_REMOVED,
                subscriber=SOURCE,
            )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """(Re)load every known document; missing ones are created from defaults."""
        with self._lock:
            for name in BUILT_IN_DEFAULTS:
                document = self._store.load(name)
                if document is None:
                    document = built_in_default(name)
                    self._store.save(name, document)
                    logger.info("Created default configuration: %s", name)
                self._documents[name] = document

    @property
    def documents(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._documents)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, key: str, default: Any = None) -> Any:
        """
        Effective value of a dotted key.

        Args:
            key: e.g. 'autonomy-settings.goal_mode.enabled'
            default: Returned only when no layer knows the key

        Returns:
            The first value found walking restrictions, overrides, the
            persisted document and the built-in defaults
        """
        with self._lock:
            for pinned in reversed(list(self._restrictions.values())):
                if key in pinned:
                    return pinned[key]

            if key in self._overrides:
                return self._overrides[key]

            name, path = split_key(key)
            document = self._documents.get(name)
            value = get_path(document, path) if path else document
            if value is None:
                value = get_path(BUILT_IN_DEFAULTS.get(name), path) if path else None
            if value is None:
                return default
            return copy.deepcopy(value) if isinstance(value, (dict, list)) else value

    def get(self, key: str, default: Any = None) -> Any:
        return self.resolve(key, default)

    @property
    def autonomy_level(self) -> str:
        return str(self.resolve(LEVEL_KEY, AutonomyLevel.BALANCED.value))

    @property
    def overrides(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._overrides)

    @property
    def active_restrictions(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._restrictions)

    # ------------------------------------------------------------------
    # Persisted mutation
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any, persist: bool = True) -> None:
        """
        Set a persisted value.

        The level key is routed through ``set_profile`` so a profile is
        never half applied.
        """
        if key == LEVEL_KEY:
            self.set_profile(str(value))
            return

        name, path = split_key(key)
        if not path:
            raise ConfigurationError(f"Key must address a value inside a document: {key}")

        with self._lock:
            current = self._documents.get(name, {})
            old_value = get_path(current, path)
            document = copy.deepcopy(current)
            set_path(document, path, value)
            if persist:
                self._store.save(name, document)
            self._documents[name] = document

        logger.info("Set %s: %r -> %r", key, old_value, value)
        self._publish(
            EventType.SETTING_CHANGED,
            {"key": key, "old_value": old_value, "new_value": value},
        )

    def set_profile(self, name: str) -> None:
        """
        Apply a named autonomy profile.

        The complete new document is built first and persisted once; only
        then does it replace the in-memory document.

        Raises:
            InvalidProfile: If name is not a known AutonomyLevel
        """
        level = parse_level(name)
        if level is None:
            raise InvalidProfile(name, AutonomyLevel.names())

        with self._lock:
            current = self._documents.get(AUTONOMY_DOCUMENT) or built_in_default(
                AUTONOMY_DOCUMENT
            )
            document = copy.deepcopy(current)
            document["level"] = level.value
            for relative, value in PROFILE_SETTINGS[level].items():
                set_path(document, tuple(relative.split(".")), value)

            before = dict(iter_leaves(current))
            changes = [
                (".".join((AUTONOMY_DOCUMENT,) + path), before.get(path), value)
                for path, value in iter_leaves(document)
                if before.get(path) != value
            ]

            self._store.save(AUTONOMY_DOCUMENT, document)
            self._documents[AUTONOMY_DOCUMENT] = document
            old_level = current.get("level")

        logger.info("Autonomy level set to %s (%d setting(s) changed)", level.value, len(changes))
        for key, old_value, new_value in changes:
            self._publish(
                EventType.SETTING_CHANGED,
                {"key": key, "old_value": old_value, "new_value": new_value},
            )
        self._publish(
            EventType.PROFILE_CHANGED,
            {"old_level": old_level, "new_level": level.value},
        )

    def reset(self, name: str | None = None) -> None:
        """Restore one document (or all of them) to the built-in defaults."""
        names = [name] if name is not None else list(BUILT_IN_DEFAULTS)
        for document_name in names:
            if document_name not in BUILT_IN_DEFAULTS:
                raise ConfigurationError(f"Unknown configuration: {document_name}")
            document = built_in_default(document_name)
            with self._lock:
                self._store.save(document_name, document)
                self._documents[document_name] = document
            logger.info("Reset configuration: %s", document_name)
            self._publish(
                EventType.SETTING_CHANGED,
                {"key": document_name, "old_value": None, "new_value": document},
            )

    # ------------------------------------------------------------------
    # Session overrides
    # ------------------------------------------------------------------

    def set_override(self, key: str, value: Any) -> None:
        """Session-scoped override; the stored document is not touched."""
        old_value = self.resolve(key)
        with self._lock:
            self._overrides[key] = value
        logger.debug("Override %s = %r", key, value)
        self._publish(
            EventType.OVERRIDE_SET,
            {"key": key, "old_value": old_value, "new_value": value},
        )

    def clear_override(self, key: str) -> None:
        with self._lock:
            if key not in self._overrides:
                return
            old_value = self._overrides.pop(key)
        self._publish(
            EventType.OVERRIDE_CLEARED,
            {"key": key, "old_value": old_value, "new_value": self.resolve(key)},
        )

    def clear_all_overrides(self) -> None:
        for key in list(self.overrides):
            self.clear_override(key)

    # ------------------------------------------------------------------
    # Validation, import and export
    # ------------------------------------------------------------------

    def validate(self, name: str = AUTONOMY_DOCUMENT) -> ValidationReport:
        """Check a document against its JSON Schema and flag risky choices."""
        with self._lock:
            document = copy.deepcopy(self._documents.get(name))

        if document is None:
            return ValidationReport(valid=False, errors=(f"Unknown configuration: {name}",))

        errors = schemas.schema_errors(name, document) if schemas.has_schema(name) else []
        warnings: list[str] = []
        if name == AUTONOMY_DOCUMENT:
            if document.get("level") == AutonomyLevel.FULL_AUTO.value:
                warnings.append("Full auto mode enabled - use with caution")
            if get_path(document, ("auto_command_execution", "enabled")):
                warnings.append("Automatic command execution is enabled")
            if get_path(document, ("truth_validation", "oracle_blocking")) is False:
                warnings.append("Oracle validation failures will not block")

        return ValidationReport(
            valid=not errors, errors=tuple(errors), warnings=tuple(warnings)
        )

    def validate_all(self) -> dict[str, ValidationReport]:
        return {name: self.validate(name) for name in self.documents}

    def export_config(self, fmt: str = "yaml") -> str:
        """Serialize every persisted document (overrides excluded)."""
        with self._lock:
            snapshot = copy.deepcopy(self._documents)
        if fmt == "json":
            return json.dumps(snapshot, indent=2)
        if fmt == "yaml":
            return yaml.safe_dump(snapshot, sort_keys=False, default_flow_style=False)
        raise ConfigurationError(f"Unsupported export format: {fmt}")

    def import_config(self, content: str, fmt: str = "yaml") -> tuple[str, ...]:
        """
        Replace documents from an export.

        Returns:
            Names of the documents imported

        Raises:
            ConfigurationError: On unparseable content or an invalid document
        """
        try:
            data = json.loads(content) if fmt == "json" else yaml.safe_load(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot parse configuration: {e}") from e

        if not isinstance(data, Mapping) or not all(
            isinstance(v, Mapping) for v in data.values()
        ):
            raise ConfigurationError("Configuration must map document names to mappings")

        for name, document in data.items():
            if schemas.has_schema(name):
                errors = schemas.schema_errors(name, document)
                if errors:
                    raise ConfigurationError(f"Invalid {name}: " + "; ".join(errors))

        imported = []
        for name, document in data.items():
            document = copy.deepcopy(dict(document))
            with self._lock:
                old = self._documents.get(name)
                self._store.save(name, document)
                self._documents[name] = document
            imported.append(name)
            self._publish(
                EventType.SETTING_CHANGED,
                {"key": name, "old_value": old, "new_value": document},
            )
        logger.info("Imported configuration: %s", ", ".join(imported))
        return tuple(imported)

    # ------------------------------------------------------------------
    # Safe mode restrictions
    # ------------------------------------------------------------------

    def _on_restriction_applied(self, event: ControlEvent) -> None:
        restriction = event.payload.get("restriction")
        effect = RESTRICTIONS.get(str(restriction))
        if effect is None or not effect.settings:
            return
        with self._lock:
            self._restrictions[str(restriction)] = dict(effect.settings)
        logger.info("Restriction %s pins %d setting(s)", restriction, len(effect.settings))

    def _on_restriction_removed(self, event: ControlEvent) -> None:
        restriction = str(event.payload.get("restriction"))
        with self._lock:
            self._restrictions.pop(restriction, None)

    def _publish(self, event_type: EventType, payload: dict[str, Any]) -> None:
        if self._bus is not None:
            self._bus.publish(event_type, SOURCE, payload)
