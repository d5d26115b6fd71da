"""Centralized service registry for lazy-initialized singletons.

Every service shares one store, so a client routed by ``routing`` is the
same client the ``flow`` manager advances. ``reset()`` gives tests a clean
slate and ``override()`` injects test doubles.
"""

from __future__ import annotations

import threading
from typing import Any


class ServiceRegistry:
    """Thread-safe lazy-initialized service registry.

    Services are created on first access and cached. Building one service
    may pull in others (``routing`` needs ``store``), so the lock is
    re-entrant.
    """

    _SERVICES = frozenset({
        "config", "store", "routing", "flow", "intake", "checklist", "reminders", "coordinator",
    })

    def __init__(self) -> None:
        self._instances: dict[str, Any] = {}
        self._overrides: dict[str, Any] = {}
        self._lock = threading.RLock()

    # -- lazy-init properties ------------------------------------------------

    @property
    def config(self):
        return self._get("config")

    @property
    def store(self):
        return self._get("store")

    @property
    def routing(self):
        return self._get("routing")

    @property
    def flow(self):
        return self._get("flow")

    @property
    def intake(self):
        return self._get("intake")

    @property
    def checklist(self):
        return self._get("checklist")

    @property
    def reminders(self):
        return self._get("reminders")

    @property
    def coordinator(self):
        return self._get("coordinator")

    # -- public API ----------------------------------------------------------

    def reset(self, *names: str) -> None:
        """Reset services, clearing cached instances and overrides.

        With no arguments, resets *all* services. Pass service names to
        selectively reset only those (e.g. ``registry.reset("config")``).
        Services already built keep references to what they were built with.
        """
        targets = set(names) if names else self._SERVICES
        unknown = targets - self._SERVICES
        if unknown:
            raise ValueError(f"Unknown service(s): {unknown}")
        with self._lock:
            for name in targets:
                self._instances.pop(name, None)
                self._overrides.pop(name, None)

    def override(self, name: str, instance: Any) -> None:
        """Inject a test double for *name*.

        The override takes priority over lazy initialization until
        ``reset()`` clears it.
        """
        if name not in self._SERVICES:
            raise ValueError(f"Unknown service: {name!r}")
        with self._lock:
            self._overrides[name] = instance
            self._instances.pop(name, None)

    # -- internal ------------------------------------------------------------

    def _get(self, name: str) -> Any:
        if name in self._overrides:
            return self._overrides[name]
        if name in self._instances:
            return self._instances[name]

        with self._lock:
            # Double-check after acquiring lock.
            if name in self._overrides:
                return self._overrides[name]
            if name in self._instances:
                return self._instances[name]

            instance = self._create(name)
            self._instances[name] = instance
            return instance

    def _create(self, name: str) -> Any:
        """Lazily import and instantiate the service class.

        Imports are done inside this method to avoid circular imports
        at module load time.
        """
        if name == "config":
            from taxpilot.config import Config
            return Config()

        if name == "store":
            from taxpilot.storage.roster import load_roster
            from taxpilot.storage.store import InMemoryStore
            return InMemoryStore(load_roster(self.config.roster_path))

        if name == "routing":
            from taxpilot.routing import RoutingService
            return RoutingService(self.store, max_alternates=self.config.max_alternates)

        if name == "flow":
            from taxpilot.flow import FlowManager
            return FlowManager(self.store)

        if name == "intake":
            from taxpilot.intake import IntakeService
            return IntakeService(self.store)

        if name == "checklist":
            from taxpilot.checklist import ChecklistService
            return ChecklistService(self.store)

        if name == "reminders":
            from taxpilot.reminders import ReminderService
            return ReminderService(
                self.store,
                appointment_reminder_hours=self.config.appointment_reminder_hours,
                document_reminder_lead_days=self.config.document_reminder_lead_days,
            )

        if name == "coordinator":
            from taxpilot.coordinator import IntakeCoordinator
            return IntakeCoordinator(
                store=self.store,
                intake=self.intake,
                checklist=self.checklist,
                routing=self.routing,
                reminders=self.reminders,
                flow=self.flow,
                default_appointment_type=self.config.default_appointment_type,
            )

        raise ValueError(f"Unknown service: {name!r}")


# Module-level singleton registry
_registry = ServiceRegistry()


def get_registry() -> ServiceRegistry:
    """Return the global ServiceRegistry instance."""
    return _registry
