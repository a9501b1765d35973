from django.contrib import admin

from .models import Exam, ExamQuestion, Option, Program, ProgramEnrollment, Question


class OptionInline(admin.TabularInline):
    model = Option
    extra = 0


class ExamQuestionInline(admin.TabularInline):
    model = ExamQuestion
    extra = 0


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ('text', 'question_type', 'marks', 'randomize_options')
    inlines = [OptionInline]


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ('title', 'start_time', 'end_time', 'is_active')
    inlines = [ExamQuestionInline]


admin.site.register(Program)
admin.site.register(ProgramEnrollment)
