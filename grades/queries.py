# grades/queries.py - Denormalized grade list and the live feed serving it

import logging
import threading
import time

from django.conf import settings

logger = logging.getLogger(__name__)


class _Unloaded:
    """Marker for a feed whose first load has not finished"""

    def __repr__(self):
        return 'UNLOADED'

    def __bool__(self):
        return False


UNLOADED = _Unloaded()


# ============================================================================
# JOIN
# ============================================================================

def student_summary(student):
    """Name and enrollment number of a student, or None if it did not resolve"""
    if student is None:
        return None
    return {
        'id': str(student.id),
        'full_name': student.full_name,
        'enrollment_number': student.enrollment_number,
    }


def subject_summary(subject):
    if subject is None:
        return None
    return {
        'id': str(subject.id),
        'subject_name': subject.subject_name,
        'subject_code': subject.subject_code,
    }


def build_grade_record(raw, students, subjects):
    """
    Turn a raw grade document into a grade record.

    ``raw`` is the document as stored (``_id``, ``student``, ``subject``,
    ``grade``, ``semester``); ``students`` and ``subjects`` map ids to the
    loaded documents. A reference missing from its map yields a None summary.
    """
    student_id = raw.get('student')
    subject_id = raw.get('subject')
    return {
        'id': str(raw['_id']),
        'student_id': str(student_id) if student_id is not None else None,
        'subject_id': str(subject_id) if subject_id is not None else None,
        'grade': raw.get('grade'),
        'semester': raw.get('semester'),
        'student': student_summary(students.get(student_id)),
        'subject': subject_summary(subjects.get(subject_id)),
    }


def list_grades():
    """Load every grade joined with its student and subject"""
    from .models import StudentGrade
    from students.models import Student
    from courses.models import Subject

    raw_grades = list(StudentGrade.objects.order_by('assigned_date').as_pymongo())

    student_ids = {raw['student'] for raw in raw_grades if raw.get('student') is not None}
    subject_ids = {raw['subject'] for raw in raw_grades if raw.get('subject') is not None}
    students = Student.objects.in_bulk(list(student_ids)) if student_ids else {}
    subjects = Subject.objects.in_bulk(list(subject_ids)) if subject_ids else {}

    records = [build_grade_record(raw, students, subjects) for raw in raw_grades]

    missing = sum(1 for record in records if record['student'] is None or record['subject'] is None)
    if missing:
        logger.warning("%d of %d grades reference a missing student or subject", missing, len(records))
    logger.debug("Loaded %d grade records", len(records))
    return records


def get_grade_record(pk):
    """
    Load one grade record.

    Raises ``StudentGrade.DoesNotExist`` for an unknown id and mongoengine's
    ``ValidationError`` for an id that is not an ObjectId.
    """
    from .models import StudentGrade
    from students.models import Student
    from courses.models import Subject

    raw = StudentGrade.objects(id=pk).as_pymongo().first()
    if raw is None:
        raise StudentGrade.DoesNotExist(f'Grade {pk} not found')

    students = {}
    subjects = {}
    if raw.get('student') is not None:
        student = Student.objects(id=raw['student']).first()
        if student:
            students[raw['student']] = student
    if raw.get('subject') is not None:
        subject = Subject.objects(id=raw['subject']).first()
        if subject:
            subjects[raw['subject']] = subject

    return build_grade_record(raw, students, subjects)


# ============================================================================
# LIVE FEED
# ============================================================================

class GradeFeed:
    """
    Live grade list shared by every request in the process.

    ``current()`` returns ``UNLOADED`` until the first load finishes and then
    the latest list. Each change publishes a new list object; the old one is
    never modified. Subscribers are called with every published list.

    Every ``notify_changed()`` bumps a change counter. A load remembers the
    counter it started at; if a change arrives while it runs, its result is
    thrown away and the load starts over, so an older snapshot never replaces
    a newer one. A list older than ``max_age`` seconds is reloaded in the
    background to pick up writes made outside this process.
    """

    def __init__(self, loader=list_grades, max_age=None, clock=time.monotonic):
        self._loader = loader
        self._max_age = max_age
        self._clock = clock
        self._lock = threading.Lock()
        self._records = UNLOADED
        self._loaded_at = None
        self._loading = False
        self._error = None
        self._generation = 0
        self._published_generation = -1
        self._subscribers = []

    @property
    def max_age(self):
        if self._max_age is not None:
            return self._max_age
        return getattr(settings, 'GRADE_LIST_MAX_AGE_SECONDS', None)

    def current(self):
        """Latest list, or UNLOADED. Re-raises a failed background load once."""
        with self._lock:
            error, self._error = self._error, None
            records = self._records
            stale = error is None and self._is_stale()
            if stale:
                # Outside writes count as a change; supersedes loads already running
                self._generation += 1
                self._loading = True
        if error is not None:
            raise error
        if stale:
            logger.info("Grade list older than %ss, reloading", self.max_age)
            self._start_background_load()
        return records

    def _is_stale(self):
        # Caller holds the lock
        max_age = self.max_age
        if self._records is UNLOADED or self._loading or not max_age:
            return False
        return self._clock() - self._loaded_at > max_age

    def is_loaded(self):
        with self._lock:
            return self._records is not UNLOADED

    def subscribe(self, callback):
        """Register ``callback(records)``; returns a function that unregisters it"""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, records):
        records = list(records)
        with self._lock:
            self._set_records(records)
            subscribers = list(self._subscribers)
        self._notify(subscribers, records)
        return records

    def _set_records(self, records):
        # Caller holds the lock
        self._records = records
        self._loaded_at = self._clock()

    def _notify(self, subscribers, records):
        for callback in subscribers:
            callback(records)

    def refresh(self):
        """Load synchronously and publish; returns the list now current"""
        while True:
            with self._lock:
                generation = self._generation
            records = list(self._loader())

            with self._lock:
                if generation < self._generation:
                    # Changed while loading; this snapshot may miss the change
                    logger.debug("Grade list changed during load, loading again")
                    continue
                if generation <= self._published_generation:
                    # A load at least as recent already won
                    return self._records
                self._published_generation = generation
                self._set_records(records)
                subscribers = list(self._subscribers)

            self._notify(subscribers, records)
            return records

    def ensure_loading(self):
        """Start the first load on a background thread unless loaded or already loading"""
        with self._lock:
            if self._records is not UNLOADED or self._loading:
                return False
            self._loading = True

        self._start_background_load()
        return True

    def _start_background_load(self):
        thread = threading.Thread(target=self._load_in_background, name='grade-feed-loader', daemon=True)
        thread.start()

    def _load_in_background(self):
        try:
            self.refresh()
            logger.info("Grade feed loaded")
        except Exception as e:
            logger.exception("Grade feed failed to load")
            with self._lock:
                self._error = e
        finally:
            with self._lock:
                self._loading = False

    def notify_changed(self):
        """
        Record a write. Reloads now when a list is loaded; a load already
        running picks the change up by loading again.
        """
        with self._lock:
            self._generation += 1
            loaded = self._records is not UNLOADED
        if loaded:
            self.refresh()

    def reset(self):
        with self._lock:
            self._records = UNLOADED
            self._loaded_at = None
            self._error = None
            self._published_generation = -1


grade_feed = GradeFeed()
