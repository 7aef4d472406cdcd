"""
Tests for the courses app.
"""
from unittest import mock

from django.test import SimpleTestCase
from mongoengine import Document

from courses.models import Subject
from grades.queries import grade_feed


class SubjectModelTest(SimpleTestCase):

    def setUp(self):
        self.subject = Subject(subject_name='Algebra', subject_code='MAT101')

    def test_str_representation(self):
        self.assertEqual(str(self.subject), 'MAT101: Algebra')

    def test_default_credits(self):
        self.assertEqual(self.subject.credits, 3)

    def test_save_refreshes_grade_list(self):
        with mock.patch.object(Document, 'save'), \
                mock.patch.object(grade_feed, 'notify_changed') as notify_changed:
            self.subject.save()
        notify_changed.assert_called_once_with()
