# grades/columns.py - Column model of the grade list

from .grid import ColumnDef

FAILING_GRADE = 6
EXCELLENT_GRADE = 9

FAILING_STYLE = {'color': 'red'}
EXCELLENT_STYLE = {'color': 'green'}


def grade_cell_style(value):
    """Text colour for a grade cell: red below 6, green from 9 up"""
    if value is None:
        return None
    if value < FAILING_GRADE:
        return dict(FAILING_STYLE)
    if value >= EXCELLENT_GRADE:
        return dict(EXCELLENT_STYLE)
    return None


def build_grade_columns():
    return (
        ColumnDef('enrollment_number', 'Enrollment No.', 'student.enrollment_number',
                  sortable=True, filter=True, flex=1),
        ColumnDef('student_name', 'Student', 'student.full_name',
                  sortable=True, filter=True, flex=2),
        ColumnDef('subject_name', 'Subject', 'subject.subject_name',
                  sortable=True, filter=True, flex=2),
        ColumnDef('subject_code', 'Code', 'subject.subject_code',
                  sortable=True, filter=True, flex=1),
        ColumnDef('grade', 'Grade', 'grade',
                  sortable=True, filter='number', flex=1, cell_style=grade_cell_style),
        ColumnDef('semester', 'Semester', 'semester',
                  sortable=True, filter=True, flex=1),
    )


# Built once; does not depend on row data
GRADE_COLUMNS = build_grade_columns()

DEFAULT_COL_DEF = {'resizable': True}
