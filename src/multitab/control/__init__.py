"""Input routing and tab switching."""

from multitab.control.controller import Action, Direction, TabController, TabView
from multitab.control.keys import Command, KeyEvent, KeyMap, translate

__all__ = [
    "Action",
    "Command",
    "Direction",
    "KeyEvent",
    "KeyMap",
    "TabController",
    "TabView",
    "translate",
]
