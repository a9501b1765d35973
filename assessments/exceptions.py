from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler


class AttemptError(Exception):
    """Base class for failures of the exam attempt services."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "attempt_error"
    message = "The exam attempt request could not be completed."

    def __init__(self, message=None):
        self.message = message or self.message
        super().__init__(self.message)

    def as_payload(self):
        return {"error": self.message, "code": self.code}


# --- Lookups ---

class ExamNotFound(AttemptError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    message = "Exam not found"


class AttemptNotFound(AttemptError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    message = "Exam attempt not found"


class QuestionNotFound(AttemptError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    message = "Question not found in this exam"


class ResultNotFound(AttemptError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    message = "Result not found"


# --- Eligibility ---

class NotEnrolled(AttemptError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "not_enrolled"
    message = "This exam is not available in any of your enrolled programs"


class ExamNotYetOpen(AttemptError):
    code = "not_yet_open"
    message = "Exam has not started yet"


class ExamClosed(AttemptError):
    code = "closed"
    message = "Exam has ended"


class AttemptLimitReached(AttemptError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "attempt_limit_reached"

    def __init__(self, max_attempts):
        self.max_attempts = max_attempts
        super().__init__(f"Maximum attempts ({max_attempts}) reached for this exam")

    def as_payload(self):
        return {**super().as_payload(), "max_attempts": self.max_attempts}


class CooldownActive(AttemptError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "cooldown_active"

    def __init__(self, days_remaining):
        self.days_remaining = days_remaining
        super().__init__(f"You must wait {days_remaining} more day(s) before retaking this exam")

    def as_payload(self):
        return {**super().as_payload(), "days_remaining": self.days_remaining}


class ConcurrentStartConflict(AttemptError):
    status_code = status.HTTP_409_CONFLICT
    code = "concurrent_start_conflict"
    message = "Another start request for this exam is in progress. Please retry."


# --- Answer capture / submission ---

class AttemptNotOngoing(AttemptError):
    code = "attempt_not_ongoing"

    def __init__(self, current_status):
        self.current_status = current_status
        super().__init__(f"This exam has already been {current_status}")

    def as_payload(self):
        return {**super().as_payload(), "status": self.current_status}


class AnswerChangeNotAllowed(AttemptError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "answer_change_not_allowed"
    message = "Changing answers is not allowed for this exam"


class InvalidAnswer(AttemptError):
    code = "invalid_answer"
    message = "Invalid answer"


# --- Review ---

class ReviewNotAllowed(AttemptError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "review_not_allowed"
    message = "Answer review is not available for this exam"


def exception_handler(exc, context):
    """DRF exception handler that also renders ``AttemptError``s."""
    if isinstance(exc, AttemptError):
        return Response(exc.as_payload(), status=exc.status_code)
    return drf_exception_handler(exc, context)
