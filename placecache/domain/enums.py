"""Domain enums."""

from enum import Enum


class ServedFrom(str, Enum):
    MEMORY = "memory"
    PERSISTED = "persisted"
    UPSTREAM = "upstream"
