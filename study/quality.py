"""Review quality grades on the SM-2 0-5 scale."""

from enum import Enum

from study.errors import InvalidQualityError

PASS_THRESHOLD = 3


class ReviewQuality(int, Enum):
    """How well the learner recalled a card."""
    INCORRECT_HARD = 0       # total blackout
    INCORRECT = 1            # wrong, card felt familiar
    INCORRECT_FAMILIAR = 2   # wrong, answer recognised once shown
    CORRECT_HARD = 3         # correct with serious difficulty
    CORRECT = 4              # correct after some hesitation
    CORRECT_EASY = 5         # perfect recall

    @property
    def is_correct(self) -> bool:
        return self.value >= PASS_THRESHOLD

    @property
    def is_lapse(self) -> bool:
        return not self.is_correct

    @classmethod
    def parse(cls, value) -> 'ReviewQuality':
        """
        Coerce user input into a ReviewQuality.

        Accepts a member, an int 0-5, a numeric string, or a member name
        (case-insensitive). Anything else raises InvalidQualityError;
        out-of-range grades are never clamped.
        """
        if isinstance(value, cls):
            return value
        # bool is an int subclass; True/False are not grades
        if isinstance(value, bool):
            raise InvalidQualityError(value)
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise InvalidQualityError(value) from None
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls.parse(int(text))
            member = cls.__members__.get(text.upper())
            if member is not None:
                return member
        raise InvalidQualityError(value)
