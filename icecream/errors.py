from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from icecream.api.models import Ending


class SimulationError(ValueError):
    """Base class for deterministic, caller-facing simulation failures."""


class InvalidChoice(SimulationError):
    pass


class NoActiveDecision(SimulationError):
    pass


class GameEnded(SimulationError):
    def __init__(self, ending: "Ending") -> None:
        super().__init__("Game has ended")
        self.ending = ending


class SessionNotFound(SimulationError):
    def __init__(self, session_id: str) -> None:
        super().__init__("Session not found")
        self.session_id = session_id


class CityNotFound(SimulationError):
    def __init__(self, city_id: str) -> None:
        super().__init__(f"City not found: {city_id}")
        self.city_id = city_id


class SessionBusy(SimulationError):
    pass


class ContentLoadError(RuntimeError):
    pass
