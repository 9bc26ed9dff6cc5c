"""Interface of the ITSM host platform the bridge drives.

The host owns item storage, rights, sessions and the massive action engine.
The bridge only needs the narrow surface below; a deployment provides a
concrete ``HostEngine`` and points ``HOST_ENGINE`` at a factory returning it.
"""

from __future__ import annotations

import importlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

logger = logging.getLogger(__name__)

Stage = Literal["initial", "specialize", "process"]

# Host configuration lists whose union forms the eligible item types
ITEM_TYPE_LISTS = (
    "project_asset_types",
    "document_types",
    "consumables_types",
    "infocom_types",
)


@dataclass(frozen=True)
class HostSession:
    """Authenticated host session resolved from a session token."""

    user_id: int
    active_profile: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ApiClient:
    """Registered API client row: an IPv4 range, an IPv6 address, or neither."""

    id: int
    is_active: bool = True
    ipv4_range_start: int | None = None
    ipv4_range_end: int | None = None
    ipv6: str | None = None
    app_token: str | None = None


class MassiveActionStage(Protocol):
    """One instantiation of the host's massive action class at a given stage."""

    def get_input(self) -> dict[str, Any]: ...

    def get_items(self) -> dict[str, Any]: ...

    def get_action(self) -> str | None: ...

    def show_subform(self) -> str: ...

    def process(self) -> dict[str, Any]: ...


class HostEngine(ABC):
    """Everything the bridge asks of the host platform."""

    @abstractmethod
    def authenticate(self, session_token: str) -> HostSession | None:
        """Return the session bound to ``session_token`` if it belongs to a logged-in user."""

    @abstractmethod
    def api_enabled(self) -> bool:
        """Host-wide API switch."""

    @abstractmethod
    def api_clients(self) -> list[ApiClient]:
        """Registered API clients (active and inactive)."""

    @abstractmethod
    def item_type_lists(self) -> dict[str, list[str]]:
        """Configured item type lists keyed by ``ITEM_TYPE_LISTS`` names."""

    @abstractmethod
    def is_item_type(self, itemtype: str) -> bool:
        """Whether ``itemtype`` names a class the host can instantiate."""

    @abstractmethod
    def get_all_massive_actions(
        self, itemtype: str, is_deleted: bool, single: bool
    ) -> dict[str, str] | None:
        """Action key -> label for ``itemtype``; ``None`` when the host refuses."""

    @abstractmethod
    def forbidden_actions(self, itemtype: str) -> list[str]:
        """Standard action keys ``itemtype`` forbids."""

    @abstractmethod
    def massive_action(self, post: dict[str, Any], stage: Stage) -> MassiveActionStage:
        """Instantiate the host's massive action for ``stage``; may raise."""


def load_host_engine(path: str) -> HostEngine:
    """Import ``module:attribute`` and return the engine it designates.

    The attribute may be an engine instance or a zero-argument factory.
    """
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"HOST_ENGINE must look like 'package.module:factory', got {path!r}")
    module = importlib.import_module(module_name)
    target = getattr(module, attr)
    engine = target if isinstance(target, HostEngine) else target()
    if not isinstance(engine, HostEngine):
        raise TypeError(f"{path} did not produce a HostEngine (got {type(engine).__name__})")
    logger.info(f"Loaded host engine {type(engine).__name__} from {path}")
    return engine
