# grades/views.py - Grade list, detail, create and REST API

from django.shortcuts import render, redirect
from django.contrib.auth.mixins import LoginRequiredMixin, UserPassesTestMixin
from django.contrib.auth.views import redirect_to_login
from django.views.generic import TemplateView
from django.contrib import messages
from django.urls import NoReverseMatch
from django.conf import settings
from rest_framework import viewsets, status
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from mongoengine import DoesNotExist, ValidationError
import logging
import math

from .models import StudentGrade, MIN_GRADE, MAX_GRADE
from .columns import grade_cell_style
from .grid import style_to_css
from .queries import UNLOADED, grade_feed, get_grade_record
from .serializers import GradeRecordSerializer
from .table import GradeTable
from students.models import Student
from courses.models import Subject

logger = logging.getLogger(__name__)

# ============================================================================
# TEACHER/ADMIN ONLY MIXIN
# ============================================================================

class TeacherAdminRequiredMixin(UserPassesTestMixin):
    """Mixin to ensure only teachers and admins can access certain views"""

    def test_func(self):
        return self.request.user.is_authenticated and self.request.user.can_manage_grades

    def handle_no_permission(self):
        if not self.request.user.is_authenticated:
            return redirect_to_login(self.request.get_full_path())

        messages.error(self.request, 'Access denied! Only teachers and administrators can record grades.')
        return redirect('grades:list')


# ============================================================================
# GRADE LIST
# ============================================================================

class GradeListView(LoginRequiredMixin, TemplateView):
    """Paginated, sortable, filterable grade grid"""
    template_name = 'grades/list.html'
    loading_template_name = 'grades/loading.html'
    feed = grade_feed

    def get_table(self):
        return GradeTable(navigate=redirect, feed=self.feed)

    def get(self, request, *args, **kwargs):
        table = self.get_table()
        try:
            table.mount()
            if table.is_loading():
                self.feed.ensure_loading()
                return render(request, self.loading_template_name, {
                    'refresh_seconds': settings.GRADE_LIST_REFRESH_SECONDS,
                })
            context = self.get_context_data(**kwargs)
            context.update(table.render(request.GET))
        finally:
            table.unmount()
        return self.render_to_response(context)

    def post(self, request, *args, **kwargs):
        """Row and create-button clicks"""
        table = self.get_table()

        if request.POST.get('action') == 'create':
            return table.on_create_clicked()

        row_id = (request.POST.get('row') or '').strip()
        if row_id:
            try:
                return table.on_row_clicked({'id': row_id})
            except NoReverseMatch:
                logger.warning("Ignoring click on unroutable row id %r", row_id)

        return redirect('grades:list')


# ============================================================================
# GRADE DETAIL
# ============================================================================

class GradeDetailView(LoginRequiredMixin, TemplateView):
    template_name = 'grades/detail.html'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        try:
            grade = get_grade_record(kwargs['pk'])
            context['grade'] = grade
            context['grade_style'] = style_to_css(grade_cell_style(grade['grade']))
        except (DoesNotExist, ValidationError):
            messages.error(self.request, 'Grade not found!')
            context['grade'] = None
        return context


# ============================================================================
# GRADE CREATE
# ============================================================================

def clean_grade_input(data):
    """
    Validate the new-grade form.

    Returns ``(cleaned, errors)``; ``cleaned`` holds stripped strings and the
    grade as a float (None when it could not be parsed).
    """
    errors = []

    student_id = (data.get('student') or '').strip()
    subject_id = (data.get('subject') or '').strip()
    semester = (data.get('semester') or '').strip()
    raw_grade = (data.get('grade') or '').strip()

    if not student_id:
        errors.append('Please select a student.')
    if not subject_id:
        errors.append('Please select a subject.')

    if not semester:
        errors.append('Semester is required.')
    elif len(semester) > 20:
        errors.append('Semester must be at most 20 characters.')

    grade = None
    if not raw_grade:
        errors.append('Grade is required.')
    else:
        try:
            grade = float(raw_grade)
        except ValueError:
            errors.append(f'Invalid grade: {raw_grade}. Must be a number.')
        else:
            if not math.isfinite(grade) or grade < MIN_GRADE or grade > MAX_GRADE:
                errors.append(f'Grade must be between {MIN_GRADE:g} and {MAX_GRADE:g}.')
                grade = None

    cleaned = {
        'student_id': student_id,
        'subject_id': subject_id,
        'semester': semester,
        'grade': grade,
    }
    return cleaned, errors


def find_document(document_class, pk):
    """Document by id, or None for unknown or malformed ids"""
    try:
        return document_class.objects(id=pk).first()
    except ValidationError:
        return None


class GradeCreateView(TeacherAdminRequiredMixin, TemplateView):
    """Record a new grade - TEACHERS/ADMIN ONLY"""
    template_name = 'grades/create.html'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context.update({
            'students': self.get_students(),
            'subjects': self.get_subjects(),
            'min_grade': MIN_GRADE,
            'max_grade': MAX_GRADE,
            'form_data': kwargs.get('form_data', {}),
        })
        return context

    def get_students(self):
        return Student.objects.filter(is_active=True).order_by('last_name', 'first_name')

    def get_subjects(self):
        return Subject.objects.order_by('subject_name')

    def post(self, request, *args, **kwargs):
        cleaned, errors = clean_grade_input(request.POST)

        student = None
        subject = None
        if not errors:
            student = find_document(Student, cleaned['student_id'])
            if student is None:
                errors.append('Selected student not found.')
            subject = find_document(Subject, cleaned['subject_id'])
            if subject is None:
                errors.append('Selected subject not found.')

        if errors:
            for error in errors:
                messages.error(request, error)
            return self.render_to_response(self.get_context_data(form_data=request.POST))

        grade = StudentGrade(
            student=student,
            subject=subject,
            grade=cleaned['grade'],
            semester=cleaned['semester'],
        )
        try:
            grade.save()
        except ValidationError as e:
            messages.error(request, f'Error saving grade: {e}')
            return self.render_to_response(self.get_context_data(form_data=request.POST))

        logger.info("Grade %s recorded for %s in %s by %s",
                    grade.grade, student.enrollment_number, subject.subject_code, request.user.email)
        messages.success(
            request,
            f'Grade {grade.grade:g} recorded for {student.full_name} in {subject.subject_name}.'
        )
        return redirect('grades:list')


# ============================================================================
# REST API
# ============================================================================

class GradeViewSet(viewsets.ViewSet):
    """REST API for grade records"""
    permission_classes = [IsAuthenticated]
    feed = grade_feed

    def list(self, request):
        records = self.feed.current()
        if records is UNLOADED:
            records = self.feed.refresh()
        serializer = GradeRecordSerializer(records, many=True)
        return Response(serializer.data)

    def retrieve(self, request, pk=None):
        try:
            record = get_grade_record(pk)
        except (DoesNotExist, ValidationError):
            return Response(
                {'error': 'Grade not found'},
                status=status.HTTP_404_NOT_FOUND
            )
        return Response(GradeRecordSerializer(record).data)
