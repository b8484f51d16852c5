"""Error taxonomy for the fraud decision engine.

NotFoundError and ValidationError subclass LookupError and ValueError so the
global exception handler maps them to 404 and 400 without extra wiring.
"""


class FraudEngineError(Exception):
    """Base class for fraud engine errors."""


class NotFoundError(FraudEngineError, LookupError):
    """A rule, alert, or evaluation subject does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")

    def __str__(self) -> str:
        return f"{self.entity} not found: {self.entity_id}"


class ValidationError(FraudEngineError, ValueError):
    """Malformed rule or alert input, rejected before persistence."""


class EvaluationFault(FraudEngineError):
    """A stored condition set could not be parsed.

    Always recovered by the condition evaluator: the rule is skipped.
    """

    def __init__(self, message: str, rule_id: str | None = None) -> None:
        self.rule_id = rule_id
        super().__init__(message)


class ConflictError(FraudEngineError):
    """An alert was already closed when a review was attempted."""
