"""Exception hierarchy for Episteme."""


class EpistemeError(Exception):
    """Base class for all Episteme errors."""


class InvalidRatingError(EpistemeError, ValueError):
    """Raised when a rating outside Again..Easy (1-4) reaches the scheduler."""

    def __init__(self, rating: object):
        self.rating = rating
        super().__init__(f"Invalid rating {rating!r}: expected 1 (Again) to 4 (Easy)")


class CardNotFoundError(EpistemeError, KeyError):
    """Raised by a card store when an id is unknown."""

    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(card_id)

    def __str__(self) -> str:
        return f"Card not found: {self.card_id}"
