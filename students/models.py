from mongoengine import Document, StringField, EmailField, DateTimeField, BooleanField
import datetime


class Student(Document):
    """Student referenced by grade records"""

    first_name = StringField(max_length=100, required=True)
    last_name = StringField(max_length=100, required=True)
    enrollment_number = StringField(max_length=30, required=True, unique=True)
    email = EmailField()
    is_active = BooleanField(default=True)

    # Timestamps
    created_at = DateTimeField(default=datetime.datetime.now)
    updated_at = DateTimeField(default=datetime.datetime.now)

    meta = {
        'collection': 'students',
        'indexes': [
            'enrollment_number',
            'is_active'
        ]
    }

    def save(self, *args, **kwargs):
        """Override save to update timestamp and refresh the grade list"""
        self.updated_at = datetime.datetime.now()
        result = super().save(*args, **kwargs)

        # Grade rows carry a copy of the student's name and enrollment number
        from grades.queries import grade_feed
        grade_feed.notify_changed()

        return result

    def delete(self, *args, **kwargs):
        result = super().delete(*args, **kwargs)
        from grades.queries import grade_feed
        grade_feed.notify_changed()
        return result

    def __str__(self):
        return f"{self.full_name} ({self.enrollment_number})"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"
