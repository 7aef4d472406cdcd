# grades/models.py - Grade records

from mongoengine import Document, StringField, DateTimeField, ReferenceField, FloatField
from datetime import datetime
from students.models import Student
from courses.models import Subject

# Grades are recorded on a 0-10 scale
MIN_GRADE = 0.0
MAX_GRADE = 10.0


class StudentGrade(Document):
    """Grade a student obtained in a subject for a semester"""

    # Core references
    student = ReferenceField(Student, required=True)
    subject = ReferenceField(Subject, required=True)

    # Grade details
    grade = FloatField(required=True, min_value=MIN_GRADE, max_value=MAX_GRADE)
    semester = StringField(max_length=20, required=True)  # e.g. "2024-1"

    assigned_date = DateTimeField(default=datetime.now)

    meta = {
        'collection': 'student_grades',
        'indexes': [
            'student',
            'subject',
            'semester',
            'assigned_date',
        ],
        'ordering': ['assigned_date'],
    }

    def save(self, *args, **kwargs):
        """Save and replace the live grade list"""
        result = super().save(*args, **kwargs)

        from .queries import grade_feed
        grade_feed.notify_changed()

        return result

    def delete(self, *args, **kwargs):
        result = super().delete(*args, **kwargs)

        from .queries import grade_feed
        grade_feed.notify_changed()

        return result

    def __str__(self):
        return f"{self.semester}: {self.grade}"
