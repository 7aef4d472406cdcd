"""
Tests for the students app.
Tests: Student document helpers and grade list refresh on writes.
"""
from unittest import mock

from django.test import SimpleTestCase
from mongoengine import Document

from students.models import Student
from grades.queries import grade_feed


class StudentModelTest(SimpleTestCase):

    def setUp(self):
        self.student = Student(first_name='Ana', last_name='Lopez', enrollment_number='A001')

    def test_full_name(self):
        self.assertEqual(self.student.full_name, 'Ana Lopez')

    def test_str_representation(self):
        self.assertEqual(str(self.student), 'Ana Lopez (A001)')

    def test_active_by_default(self):
        self.assertTrue(self.student.is_active)

    def test_save_refreshes_grade_list(self):
        with mock.patch.object(Document, 'save') as document_save, \
                mock.patch.object(grade_feed, 'notify_changed') as notify_changed:
            self.student.save()
        document_save.assert_called_once_with()
        notify_changed.assert_called_once_with()

    def test_delete_refreshes_grade_list(self):
        with mock.patch.object(Document, 'delete'), \
                mock.patch.object(grade_feed, 'notify_changed') as notify_changed:
            self.student.delete()
        notify_changed.assert_called_once_with()
