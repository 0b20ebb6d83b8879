from __future__ import annotations


class SkeinError(ValueError):
    pass


class IssueNotFoundError(SkeinError):
    pass


class AmbiguousReferenceError(SkeinError):
    def __init__(self, reference: str, matches: list[str]) -> None:
        self.reference = reference
        self.matches = matches
        super().__init__(
            f"ambiguous issue reference {reference!r}; matches: {', '.join(matches)}"
        )


class AlreadyExistsError(SkeinError):
    pass


class CycleWouldResultError(SkeinError):
    pass
