# ruff: noqa: F403, F401
"""Schemas package initialization."""

from .base import *
from .chat import *
from .generation import *
from .media import *
from .parts import *
from .project import *
from .user import *
