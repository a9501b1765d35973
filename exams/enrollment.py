from .models import ProgramEnrollment


def is_actively_enrolled(student, exam):
    """True when the student has an active enrollment in a program that includes the exam."""
    return ProgramEnrollment.objects.filter(
        student=student,
        status=ProgramEnrollment.Status.ACTIVE,
        program__exams=exam,
    ).exists()
