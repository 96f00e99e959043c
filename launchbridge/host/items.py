"""Result values crossing the host/extension boundary."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(slots=True)
class Action:
    """Named zero-argument callback attached to an item."""

    id: str
    text: str
    function: Callable[[], Any]

    def activate(self) -> None:
        self.function()


class Item(ABC):
    """Result item. Every accessor is computed on demand."""

    @abstractmethod
    def id(self) -> str: ...

    @abstractmethod
    def text(self) -> str: ...

    @abstractmethod
    def subtext(self) -> str: ...

    @abstractmethod
    def input_action_text(self) -> str: ...

    @abstractmethod
    def icon(self) -> Any: ...

    @abstractmethod
    def actions(self) -> list[Action]: ...


class StandardItem(Item):
    """Plain item holding its values. Icons are produced lazily by icon_factory."""

    def __init__(
        self,
        id: str = "",
        text: str = "",
        subtext: str = "",
        icon_factory: Callable[[], Any] | None = None,
        actions: list[Action] | None = None,
        input_action_text: str = "",
    ):
        self._id = id
        self._text = text
        self._subtext = subtext
        self.icon_factory = icon_factory
        self._actions = list(actions or [])
        self._input_action_text = input_action_text

    def id(self) -> str:
        return self._id

    def text(self) -> str:
        return self._text

    def subtext(self) -> str:
        return self._subtext

    def input_action_text(self) -> str:
        return self._input_action_text

    def icon(self) -> Any:
        return self.icon_factory() if self.icon_factory is not None else None

    def actions(self) -> list[Action]:
        return list(self._actions)

    def __repr__(self) -> str:
        return f"StandardItem(id={self._id!r}, text={self._text!r})"


@dataclass(slots=True)
class RankItem:
    """Item paired with a match score."""

    item: Item
    score: float


@dataclass(slots=True)
class IndexItem:
    """Item paired with the string it is indexed under."""

    item: Item
    string: str
