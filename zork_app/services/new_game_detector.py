# zork_app/services/new_game_detector.py
import logging
from typing import Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

# Spanish first, English as the secondary language. Matched as case-insensitive substrings.
DEFAULT_NEW_GAME_PHRASES: Tuple[str, ...] = (
    "nuevo juego",
    "nueva partida",
    "juego nuevo",
    "partida nueva",
    "empezar de nuevo",
    "comenzar de nuevo",
    "empezar de cero",
    "volver a empezar",
    "empezar otra vez",
    "reiniciar",
    "new game",
    "start over",
    "start again",
    "restart",
)


class NewGameDetector:
    def __init__(self, extra_phrases: Optional[Iterable[str]] = None):
        phrases = list(DEFAULT_NEW_GAME_PHRASES)
        for phrase in extra_phrases or ():
            phrase = phrase.strip().casefold()
            if phrase and phrase not in phrases:
                phrases.append(phrase)
        self.phrases = tuple(phrases)

    def is_new_game_request(self, text: Optional[str]) -> bool:
        if not text:
            return False
        lowered = text.casefold()
        for phrase in self.phrases:
            if phrase in lowered:
                logger.info(f"New game trigger '{phrase}' detected.")
                return True
        return False


_default_detector = NewGameDetector()


def is_new_game_request(text: Optional[str]) -> bool:
    return _default_detector.is_new_game_request(text)
