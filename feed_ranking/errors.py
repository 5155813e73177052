"""
Feed ranking errors
"""


class FeedRankingError(Exception):
    """Base class for feed ranking errors"""


class InvalidOptionsError(FeedRankingError, ValueError):
    """Caller supplied malformed ranking options"""


class InvalidCursorError(InvalidOptionsError):
    """Pagination cursor could not be decoded"""


class MalformedItemError(FeedRankingError):
    """Repository row is missing required fields or cannot be parsed"""

    def __init__(self, message: str, row_id=None):
        super().__init__(message)
        self.row_id = row_id


class RankingConfigError(FeedRankingError, ValueError):
    """Ranking configuration failed validation"""

    def __init__(self, errors: list):
        super().__init__("; ".join(errors))
        self.errors = errors
