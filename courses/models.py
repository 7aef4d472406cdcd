from mongoengine import Document, StringField, DateTimeField, IntField
import datetime


class Subject(Document):
    """Subject (course) a grade is recorded against"""

    subject_name = StringField(max_length=200, required=True)
    subject_code = StringField(max_length=20, required=True, unique=True)
    credits = IntField(default=3)
    description = StringField()

    # Timestamps
    created_at = DateTimeField(default=datetime.datetime.now)
    updated_at = DateTimeField(default=datetime.datetime.now)

    meta = {
        'collection': 'subjects',
        'indexes': ['subject_code']
    }

    def __str__(self):
        return f"{self.subject_code}: {self.subject_name}"

    def save(self, *args, **kwargs):
        self.updated_at = datetime.datetime.now()
        result = super().save(*args, **kwargs)

        from grades.queries import grade_feed
        grade_feed.notify_changed()

        return result

    def delete(self, *args, **kwargs):
        result = super().delete(*args, **kwargs)
        from grades.queries import grade_feed
        grade_feed.notify_changed()
        return result
