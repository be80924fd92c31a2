from taboo.models.base import Base
from taboo.models.card import Card
from taboo.models.device import Device
from taboo.models.word_set import WordSet

__all__ = [
    "Base",
    "Card",
    "Device",
    "WordSet",
]
