from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Answer


class InvalidAnswerError(ValueError):
    """An Answer references an unknown question/option or repeats a question"""

    def __init__(self, message: str, answer: Optional["Answer"] = None, index: Optional[int] = None):
        super().__init__(message)
        self.answer = answer
        self.index = index

    def to_dict(self):
        return {
            "error": "invalid_answer",
            "message": str(self),
            "index": self.index,
            "answer": self.answer.model_dump() if self.answer else None,
        }


class InvariantViolation(RuntimeError):
    """Router reached a state that well-formed skip rules make unreachable"""


class DataIntegrityError(Exception):
    """Question bank or archetype data failed validation at load time"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []

    def __str__(self):
        if self.errors:
            return f"{super().__str__()}: {'; '.join(self.errors)}"
        return super().__str__()


class QuestionNotFound(KeyError):
    pass


class ArchetypeNotFound(KeyError):
    pass
