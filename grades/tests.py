"""
Tests for the grades app.
Tests: column model, grade cell colours, record join, live feed, grid
sorting/filtering/paging, list view wiring, navigation, access control, API.
"""
import threading
import time
from unittest import mock

from django.contrib.messages import get_messages
from django.test import TestCase, SimpleTestCase, override_settings
from django.test import Client
from django.urls import reverse
from mongoengine import ValidationError

from accounts.models import User
from grades.columns import GRADE_COLUMNS, DEFAULT_COL_DEF, grade_cell_style, build_grade_columns
from grades.grid import Grid, GridApi, GridOptions, ColumnDef, resolve_field, style_to_css
from grades.queries import UNLOADED, GradeFeed, build_grade_record, grade_feed
from grades.table import GradeTable, GRID_OPTIONS
from grades.models import StudentGrade
from grades.views import GradeCreateView, clean_grade_input
from students.models import Student


# ============================================================================
# Helpers for building records without MongoDB
# ============================================================================

class MockStudent:
    def __init__(self, id, first_name, last_name, enrollment_number):
        self.id = id
        self.first_name = first_name
        self.last_name = last_name
        self.enrollment_number = enrollment_number

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class MockSubject:
    def __init__(self, id, subject_name, subject_code):
        self.id = id
        self.subject_name = subject_name
        self.subject_code = subject_code


def make_record(grade_id, grade=7.5, semester='2024-1', student=True, subject=True,
                name='Ana Lopez', enrollment='A001', subject_name='Algebra', subject_code='MAT101'):
    return {
        'id': grade_id,
        'student_id': 'stu-' + grade_id,
        'subject_id': 'sub-' + grade_id,
        'grade': grade,
        'semester': semester,
        'student': {'id': 'stu-' + grade_id, 'full_name': name, 'enrollment_number': enrollment} if student else None,
        'subject': {'id': 'sub-' + grade_id, 'subject_name': subject_name, 'subject_code': subject_code} if subject else None,
    }


class FakeGridApi:
    def __init__(self):
        self.resize_calls = 0

    def size_columns_to_fit(self):
        self.resize_calls += 1


class FakeFeed(GradeFeed):
    def __init__(self, records=UNLOADED):
        super().__init__(loader=lambda: [])
        if records is not UNLOADED:
            self.publish(records)


# ============================================================================
# Column model
# ============================================================================

class GradeCellStyleTest(SimpleTestCase):

    def test_failing_grade_is_red(self):
        self.assertEqual(grade_cell_style(5.9), {'color': 'red'})

    def test_excellent_grade_is_green(self):
        self.assertEqual(grade_cell_style(9.0), {'color': 'green'})

    def test_middle_grade_has_no_style(self):
        self.assertIsNone(grade_cell_style(7.5))

    def test_boundaries(self):
        self.assertIsNone(grade_cell_style(6))
        self.assertEqual(grade_cell_style(10), {'color': 'green'})
        self.assertEqual(grade_cell_style(0), {'color': 'red'})

    def test_blank_value_has_no_style(self):
        self.assertIsNone(grade_cell_style(None))

    def test_changing_a_returned_style_does_not_leak(self):
        style = grade_cell_style(5)
        style['color'] = 'blue'
        self.assertEqual(grade_cell_style(5), {'color': 'red'})
        grade_cell_style(9)['font-weight'] = 'bold'
        self.assertEqual(grade_cell_style(9), {'color': 'green'})


class GradeColumnsTest(SimpleTestCase):

    def test_six_columns_in_order(self):
        fields = [column.field for column in GRADE_COLUMNS]
        self.assertEqual(fields, [
            'student.enrollment_number',
            'student.full_name',
            'subject.subject_name',
            'subject.subject_code',
            'grade',
            'semester',
        ])

    def test_every_column_sortable_and_filterable(self):
        for column in GRADE_COLUMNS:
            self.assertTrue(column.sortable, column.col_id)
            self.assertTrue(column.filter, column.col_id)

    def test_grade_column_is_numeric_and_styled(self):
        grade_column = [c for c in GRADE_COLUMNS if c.col_id == 'grade'][0]
        self.assertEqual(grade_column.filter, 'number')
        self.assertEqual(grade_column.style_for(5), {'color': 'red'})

    def test_flex_weights(self):
        self.assertEqual([c.flex for c in GRADE_COLUMNS], [1, 2, 2, 1, 1, 1])

    def test_columns_built_once(self):
        from grades import columns
        self.assertIs(columns.GRADE_COLUMNS, GRADE_COLUMNS)
        self.assertIsInstance(GRADE_COLUMNS, tuple)
        # A rebuild gives equal definitions, independent of any row data
        rebuilt = build_grade_columns()
        self.assertEqual([c.col_id for c in rebuilt], [c.col_id for c in GRADE_COLUMNS])

    def test_default_column_options(self):
        self.assertEqual(DEFAULT_COL_DEF, {'resizable': True})

    def test_grid_options(self):
        self.assertTrue(GRID_OPTIONS.pagination)
        self.assertEqual(GRID_OPTIONS.page_size, 10)
        self.assertTrue(GRID_OPTIONS.animate_rows)
        self.assertEqual(GRID_OPTIONS.row_selection, 'single')


# ============================================================================
# Record join
# ============================================================================

class BuildGradeRecordTest(SimpleTestCase):

    def setUp(self):
        self.students = {'s1': MockStudent('s1', 'Ana', 'Lopez', 'A001')}
        self.subjects = {'m1': MockSubject('m1', 'Algebra', 'MAT101')}

    def test_full_record(self):
        raw = {'_id': 'g1', 'student': 's1', 'subject': 'm1', 'grade': 8.5, 'semester': '2024-1'}
        record = build_grade_record(raw, self.students, self.subjects)
        self.assertEqual(record['id'], 'g1')
        self.assertEqual(record['grade'], 8.5)
        self.assertEqual(record['student'], {'id': 's1', 'full_name': 'Ana Lopez', 'enrollment_number': 'A001'})
        self.assertEqual(record['subject'], {'id': 'm1', 'subject_name': 'Algebra', 'subject_code': 'MAT101'})

    def test_missing_student_gives_null_summary(self):
        raw = {'_id': 'g2', 'student': 'gone', 'subject': 'm1', 'grade': 4.0, 'semester': '2024-1'}
        record = build_grade_record(raw, self.students, self.subjects)
        self.assertIsNone(record['student'])
        self.assertEqual(record['student_id'], 'gone')
        self.assertIsNotNone(record['subject'])

    def test_missing_subject_gives_null_summary(self):
        raw = {'_id': 'g3', 'student': 's1', 'subject': 'gone', 'grade': 4.0, 'semester': '2024-1'}
        record = build_grade_record(raw, self.students, self.subjects)
        self.assertIsNone(record['subject'])
        self.assertIsNotNone(record['student'])


# ============================================================================
# Live feed
# ============================================================================

class GradeFeedTest(SimpleTestCase):

    def test_starts_unloaded(self):
        feed = GradeFeed(loader=lambda: [])
        self.assertIs(feed.current(), UNLOADED)
        self.assertFalse(feed.is_loaded())

    def test_empty_list_is_loaded(self):
        feed = GradeFeed(loader=lambda: [])
        feed.refresh()
        self.assertEqual(feed.current(), [])
        self.assertIsNot(feed.current(), UNLOADED)

    def test_publish_replaces_list(self):
        feed = GradeFeed(loader=lambda: [])
        first = feed.publish([make_record('a')])
        second = feed.publish([make_record('a'), make_record('b')])
        self.assertIsNot(first, second)
        self.assertEqual(len(first), 1)
        self.assertIs(feed.current(), second)

    def test_subscribers_receive_updates_until_unsubscribed(self):
        feed = GradeFeed(loader=lambda: [])
        received = []
        unsubscribe = feed.subscribe(received.append)
        feed.publish([make_record('a')])
        unsubscribe()
        feed.publish([make_record('b')])
        self.assertEqual(len(received), 1)
        self.assertEqual(received[0][0]['id'], 'a')

    def test_notify_changed_ignored_until_loaded(self):
        loader = mock.Mock(return_value=[])
        feed = GradeFeed(loader=loader)
        feed.notify_changed()
        loader.assert_not_called()
        feed.refresh()
        feed.notify_changed()
        self.assertEqual(loader.call_count, 2)

    def test_failed_background_load_raised_once(self):
        feed = GradeFeed(loader=mock.Mock(side_effect=RuntimeError('database down')))
        feed._load_in_background()
        with self.assertRaises(RuntimeError):
            feed.current()
        self.assertIs(feed.current(), UNLOADED)

    def test_ensure_loading_starts_one_load(self):
        release = threading.Event()
        calls = []

        def slow_loader():
            calls.append(1)
            release.wait(5)
            return [make_record('a')]

        feed = GradeFeed(loader=slow_loader)
        self.assertTrue(feed.ensure_loading())
        self.assertFalse(feed.ensure_loading())
        release.set()

        deadline = time.time() + 5
        while not feed.is_loaded() and time.time() < deadline:
            time.sleep(0.01)
        self.assertTrue(feed.is_loaded())
        self.assertEqual(len(calls), 1)
        self.assertFalse(feed.ensure_loading())

    def test_reset(self):
        feed = GradeFeed(loader=lambda: [])
        feed.refresh()
        feed.reset()
        self.assertIs(feed.current(), UNLOADED)

    def wait_for(self, condition):
        deadline = time.time() + 5
        while not condition() and time.time() < deadline:
            time.sleep(0.01)
        self.assertTrue(condition())

    def test_write_during_first_load_is_kept(self):
        database = [make_record('g1')]
        started = threading.Event()
        release = threading.Event()

        def blocking_loader():
            snapshot = list(database)
            started.set()
            release.wait(5)
            return snapshot

        feed = GradeFeed(loader=blocking_loader)
        feed.ensure_loading()
        self.assertTrue(started.wait(5))

        database.append(make_record('g2'))
        feed.notify_changed()
        release.set()

        self.wait_for(feed.is_loaded)
        self.assertEqual([record['id'] for record in feed.current()], ['g1', 'g2'])

    def test_slow_older_load_does_not_overwrite_newer(self):
        database = [make_record('g1')]
        calls = []
        started = threading.Event()
        release = threading.Event()

        def loader():
            snapshot = list(database)
            calls.append(len(snapshot))
            if len(calls) == 2:
                started.set()
                release.wait(5)
            return snapshot

        feed = GradeFeed(loader=loader)
        feed.refresh()

        slow = threading.Thread(target=feed.refresh)
        slow.start()
        self.assertTrue(started.wait(5))

        database.append(make_record('g2'))
        feed.notify_changed()
        release.set()
        slow.join(5)

        self.assertEqual([record['id'] for record in feed.current()], ['g1', 'g2'])

    def test_stale_list_starts_background_reload(self):
        now = [100.0]
        feed = GradeFeed(loader=lambda: [], max_age=30, clock=lambda: now[0])
        feed.refresh()

        with mock.patch.object(feed, '_start_background_load') as start:
            feed.current()
            start.assert_not_called()

            now[0] += 31
            self.assertEqual(feed.current(), [])
            start.assert_called_once_with()

            # Already reloading
            feed.current()
            start.assert_called_once_with()

    def test_stale_reload_picks_up_outside_writes(self):
        now = [0.0]
        database = [make_record('g1')]
        feed = GradeFeed(loader=lambda: list(database), max_age=30, clock=lambda: now[0])
        feed.refresh()

        # Written by another process; nothing calls notify_changed
        database.append(make_record('g2'))
        now[0] = 31

        self.assertEqual(len(feed.current()), 1)
        self.wait_for(lambda: len(feed.current()) == 2)

    def test_no_max_age_never_stale(self):
        now = [0.0]
        feed = GradeFeed(loader=lambda: [], max_age=0, clock=lambda: now[0])
        feed.refresh()
        now[0] = 10 ** 6
        with mock.patch.object(feed, '_start_background_load') as start:
            feed.current()
        start.assert_not_called()

    @override_settings(GRADE_LIST_MAX_AGE_SECONDS=5)
    def test_max_age_from_settings(self):
        self.assertEqual(GradeFeed(loader=lambda: []).max_age, 5)
        self.assertEqual(GradeFeed(loader=lambda: [], max_age=7).max_age, 7)


# ============================================================================
# Grid component
# ============================================================================

class GridTest(SimpleTestCase):

    def make_grid(self, rows, **kwargs):
        return Grid(rows, GRADE_COLUMNS, default_col_def=DEFAULT_COL_DEF, options=GridOptions(), **kwargs)

    def ids(self, layout):
        return [row['id'] for row in layout['rows']]

    def test_resolve_field_handles_null_hops(self):
        self.assertIsNone(resolve_field({'student': None}, 'student.full_name'))
        self.assertEqual(resolve_field({'student': {'full_name': 'X'}}, 'student.full_name'), 'X')

    def test_null_student_renders_blank_cells(self):
        layout = self.make_grid([make_record('a', student=False)]).layout({})
        cells = layout['rows'][0]['cells']
        self.assertEqual(cells[0]['display'], '')
        self.assertEqual(cells[1]['display'], '')
        self.assertEqual(cells[2]['display'], 'Algebra')

    def test_cell_styles(self):
        rows = [make_record('a', grade=5.9), make_record('b', grade=9.0), make_record('c', grade=7.5)]
        layout = self.make_grid(rows).layout({})
        styles = [row['cells'][4]['style'] for row in layout['rows']]
        self.assertEqual(styles, ['color: red', 'color: green', ''])

    def test_sort_ascending_and_descending(self):
        rows = [make_record('a', grade=8), make_record('b', grade=5), make_record('c', grade=9.5)]
        grid = self.make_grid(rows)
        self.assertEqual(self.ids(grid.layout({'sort': 'grade', 'dir': 'asc'})), ['b', 'a', 'c'])
        self.assertEqual(self.ids(grid.layout({'sort': 'grade', 'dir': 'desc'})), ['c', 'a', 'b'])

    def test_sort_text_case_insensitive_with_blanks_first(self):
        rows = [
            make_record('a', name='carla Diaz'),
            make_record('b', student=False),
            make_record('c', name='Beto Ruiz'),
        ]
        grid = self.make_grid(rows)
        self.assertEqual(self.ids(grid.layout({'sort': 'student_name'})), ['b', 'c', 'a'])
        self.assertEqual(self.ids(grid.layout({'sort': 'student_name', 'dir': 'desc'})), ['a', 'c', 'b'])

    def test_unknown_sort_column_ignored(self):
        rows = [make_record('a'), make_record('b')]
        self.assertEqual(self.ids(self.make_grid(rows).layout({'sort': 'nope'})), ['a', 'b'])

    def test_sort_url_cycle(self):
        grid = self.make_grid([make_record('a')])
        header = grid.layout({})['columns'][4]
        self.assertEqual(header['sort_url'], '?sort=grade&dir=asc')
        header = grid.layout({'sort': 'grade', 'dir': 'asc'})['columns'][4]
        self.assertEqual(header['sort'], 'asc')
        self.assertEqual(header['sort_url'], '?sort=grade&dir=desc')
        header = grid.layout({'sort': 'grade', 'dir': 'desc'})['columns'][4]
        self.assertEqual(header['sort_url'], '?')

    def test_text_filter_contains(self):
        rows = [make_record('a', subject_name='Algebra'), make_record('b', subject_name='Biology')]
        layout = self.make_grid(rows).layout({'filter_subject_name': 'ALG'})
        self.assertEqual(self.ids(layout), ['a'])
        self.assertTrue(layout['has_filters'])

    def test_text_filter_operators(self):
        rows = [make_record('a', semester='2024-1'), make_record('b', semester='2024-2')]
        grid = self.make_grid(rows)
        self.assertEqual(self.ids(grid.layout({'filter_semester': '2024-2', 'op_semester': 'equals'})), ['b'])
        self.assertEqual(self.ids(grid.layout({'filter_semester': '-1', 'op_semester': 'endsWith'})), ['a'])
        self.assertEqual(self.ids(grid.layout({'filter_semester': '-1', 'op_semester': 'notContains'})), ['b'])

    def test_text_filter_on_blank_cells(self):
        rows = [make_record('a'), make_record('b', student=False)]
        grid = self.make_grid(rows)
        self.assertEqual(self.ids(grid.layout({'filter_student_name': 'ana'})), ['a'])
        self.assertEqual(self.ids(grid.layout({'filter_student_name': 'ana', 'op_student_name': 'notContains'})), ['b'])

    def test_number_filter(self):
        rows = [make_record('a', grade=5), make_record('b', grade=7), make_record('c', grade=9)]
        grid = self.make_grid(rows)
        self.assertEqual(self.ids(grid.layout({'filter_grade': '7'})), ['b'])
        self.assertEqual(self.ids(grid.layout({'filter_grade': '7', 'op_grade': 'lessThan'})), ['a'])
        self.assertEqual(self.ids(grid.layout({'filter_grade': '7', 'op_grade': 'greaterThanOrEqual'})), ['b', 'c'])

    def test_non_numeric_number_filter_ignored(self):
        rows = [make_record('a', grade=5), make_record('b', grade=7)]
        self.assertEqual(self.ids(self.make_grid(rows).layout({'filter_grade': 'abc'})), ['a', 'b'])

    def test_pagination_ten_per_page(self):
        rows = [make_record(f'g{i:02d}') for i in range(25)]
        grid = self.make_grid(rows)
        first = grid.layout({})
        self.assertEqual(len(first['rows']), 10)
        self.assertEqual(first['page_obj'].paginator.num_pages, 3)
        self.assertEqual(first['page_links']['next'], '?page=2')
        self.assertIsNone(first['page_links']['previous'])
        last = grid.layout({'page': '3'})
        self.assertEqual(self.ids(last), [f'g{i:02d}' for i in range(20, 25)])

    def test_invalid_page_falls_back(self):
        rows = [make_record(f'g{i:02d}') for i in range(15)]
        grid = self.make_grid(rows)
        self.assertEqual(grid.layout({'page': 'abc'})['page_obj'].number, 1)
        self.assertEqual(grid.layout({'page': '99'})['page_obj'].number, 2)

    def test_sort_link_resets_page(self):
        rows = [make_record(f'g{i:02d}') for i in range(15)]
        header = self.make_grid(rows).layout({'page': '2'})['columns'][0]
        self.assertNotIn('page=', header['sort_url'])

    def test_empty_grid(self):
        layout = self.make_grid([]).layout({})
        self.assertEqual(layout['rows'], [])
        self.assertEqual(layout['total_count'], 0)

    def test_grid_ready_called_after_layout(self):
        ready = mock.Mock()
        grid = self.make_grid([make_record('a')], on_grid_ready=ready)
        grid.layout({})
        ready.assert_called_once_with(grid.api)

    def test_size_columns_to_fit_by_flex(self):
        api = GridApi(GRADE_COLUMNS)
        widths = api.size_columns_to_fit()
        self.assertEqual(widths['student_name'], 25.0)
        self.assertEqual(widths['grade'], 12.5)
        self.assertAlmostEqual(sum(widths.values()), 100.0)

    def test_widths_reach_headers_when_sized_on_ready(self):
        grid = self.make_grid([make_record('a')], on_grid_ready=lambda api: api.size_columns_to_fit())
        headers = grid.layout({})['columns']
        self.assertEqual(headers[1]['width'], 25.0)

    def test_columns_resizable_from_default(self):
        headers = self.make_grid([make_record('a')]).layout({})['columns']
        self.assertTrue(all(header['resizable'] for header in headers))
        fixed = ColumnDef('x', 'X', 'x', resizable=False)
        self.assertFalse(Grid([], [fixed], default_col_def=DEFAULT_COL_DEF).is_resizable(fixed))

    def test_single_selection(self):
        rows = [make_record('a'), make_record('b')]
        layout = self.make_grid(rows).layout({'selected': 'b'})
        self.assertEqual([row['selected'] for row in layout['rows']], [False, True])

    def test_row_href(self):
        grid = self.make_grid([make_record('a')], row_href=lambda row: f"/x/{row['id']}")
        self.assertEqual(grid.layout({})['rows'][0]['href'], '/x/a')

    def test_invalid_options(self):
        with self.assertRaises(ValueError):
            GridOptions(row_selection='several')
        with self.assertRaises(ValueError):
            GridOptions(page_size=0)

    def test_style_to_css(self):
        self.assertEqual(style_to_css({'color': 'red'}), 'color: red')
        self.assertEqual(style_to_css(None), '')


# ============================================================================
# Grade table (view state and handlers)
# ============================================================================

class GradeTableTest(SimpleTestCase):

    def setUp(self):
        self.navigate = mock.Mock(side_effect=lambda path: path)
        self.table = GradeTable(navigate=self.navigate, feed=FakeFeed())

    def test_loading_until_rows_arrive(self):
        self.assertTrue(self.table.is_loading())
        self.assertEqual(self.table.render({}), {'loading': True, 'grid': None})
        self.table.set_row_data([])
        self.assertFalse(self.table.is_loading())

    def test_no_resize_before_grid_ready(self):
        self.table.set_row_data([make_record('a')])
        self.assertIsNone(self.table.grid_api)

    def test_resize_once_per_row_data_change(self):
        api = FakeGridApi()
        self.table.set_row_data([make_record('a')])
        self.table.on_grid_ready(api)
        self.assertEqual(api.resize_calls, 1)

        self.table.set_row_data([make_record('a'), make_record('b'), make_record('c')])
        self.assertEqual(api.resize_calls, 2)

        self.table.set_row_data([make_record('a')])
        self.assertEqual(api.resize_calls, 3)

    def test_same_row_data_does_not_resize(self):
        api = FakeGridApi()
        rows = [make_record('a')]
        self.table.set_row_data(rows)
        self.table.on_grid_ready(api)
        self.table.set_row_data(rows)
        self.table.on_grid_ready(api)
        self.assertEqual(api.resize_calls, 1)

    def test_feed_updates_reach_mounted_table(self):
        feed = FakeFeed([make_record('a')])
        table = GradeTable(navigate=self.navigate, feed=feed)
        table.mount()
        api = FakeGridApi()
        table.on_grid_ready(api)

        feed.publish([make_record('a'), make_record('b')])
        self.assertEqual(len(table.row_data), 2)
        self.assertEqual(api.resize_calls, 2)

        table.unmount()
        feed.publish([])
        self.assertEqual(len(table.row_data), 2)

    def test_row_click_navigates_to_detail(self):
        result = self.table.on_row_clicked(make_record('abc123'))
        self.navigate.assert_called_once_with('/calificaciones/abc123')
        self.assertEqual(result, '/calificaciones/abc123')

    def test_create_click_navigates_to_create(self):
        self.table.on_create_clicked()
        self.navigate.assert_called_once_with('/calificaciones/create')

    def test_render_sizes_columns(self):
        self.table.set_row_data([make_record('a')])
        context = self.table.render({})
        self.assertFalse(context['loading'])
        self.assertEqual(context['grid']['columns'][0]['width'], 12.5)
        self.assertEqual(context['grid']['rows'][0]['href'], '/calificaciones/a')


# ============================================================================
# Form validation
# ============================================================================

class CleanGradeInputTest(SimpleTestCase):

    def valid(self, **overrides):
        data = {'student': 'abc', 'subject': 'def', 'grade': '8.5', 'semester': '2024-1'}
        data.update(overrides)
        return data

    def test_valid_input(self):
        cleaned, errors = clean_grade_input(self.valid())
        self.assertEqual(errors, [])
        self.assertEqual(cleaned['grade'], 8.5)
        self.assertEqual(cleaned['semester'], '2024-1')

    def test_missing_fields(self):
        cleaned, errors = clean_grade_input({})
        self.assertEqual(len(errors), 4)

    def test_grade_out_of_range(self):
        for value in ('-1', '10.5', 'nan', 'inf'):
            cleaned, errors = clean_grade_input(self.valid(grade=value))
            self.assertEqual(len(errors), 1, value)
            self.assertIsNone(cleaned['grade'])

    def test_grade_not_a_number(self):
        cleaned, errors = clean_grade_input(self.valid(grade='ten'))
        self.assertIn('Invalid grade', errors[0])

    def test_long_semester(self):
        cleaned, errors = clean_grade_input(self.valid(semester='x' * 21))
        self.assertEqual(len(errors), 1)


# ============================================================================
# URL resolution
# ============================================================================

class GradeURLResolutionTest(SimpleTestCase):

    def test_list_url(self):
        self.assertEqual(reverse('grades:list'), '/calificaciones/')

    def test_create_url(self):
        self.assertEqual(reverse('grades:create'), '/calificaciones/create')

    def test_detail_url(self):
        self.assertEqual(reverse('grades:detail', kwargs={'pk': 'abc123'}), '/calificaciones/abc123')

    def test_api_url(self):
        self.assertEqual(reverse('grades:grade-list'), '/calificaciones/api/grades/')


# ============================================================================
# Views
# ============================================================================

class GradeListViewTest(TestCase):

    def setUp(self):
        self.client = Client()
        self.teacher = User.objects.create_user(
            email='teacher@test.com', password='pass123', role='teacher'
        )
        self.url = reverse('grades:list')
        grade_feed.reset()
        self.addCleanup(grade_feed.reset)

    def login(self):
        self.client.login(email='teacher@test.com', password='pass123')

    def test_list_requires_login(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 302)
        self.assertIn('login', response.url)

    def test_loading_placeholder_while_unloaded(self):
        self.login()
        with mock.patch.object(grade_feed, 'ensure_loading') as ensure_loading:
            response = self.client.get(self.url)
        self.assertEqual(response.status_code, 200)
        ensure_loading.assert_called_once_with()
        self.assertContains(response, 'Loading grades...')
        self.assertNotContains(response, 'id="grade-grid"')
        self.assertTemplateUsed(response, 'grades/loading.html')

    def test_empty_list_renders_grid_without_rows(self):
        grade_feed.publish([])
        self.login()
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'id="grade-grid"')
        self.assertNotContains(response, 'Loading grades...')
        self.assertEqual(response.context['grid']['rows'], [])
        self.assertContains(response, 'No grades to show')

    def test_rows_and_colours_rendered(self):
        grade_feed.publish([
            make_record('a', grade=5.9),
            make_record('b', grade=9.0),
            make_record('c', grade=7.5),
        ])
        self.login()
        response = self.client.get(self.url)
        self.assertContains(response, 'Grade List')
        self.assertContains(response, 'New Grade')
        self.assertContains(response, 'style="color: red"', count=1)
        self.assertContains(response, 'style="color: green"', count=1)
        self.assertContains(response, 'data-href="/calificaciones/a"')

    def test_null_student_renders_blank(self):
        grade_feed.publish([make_record('a', student=False)])
        self.login()
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 200)
        cells = response.context['grid']['rows'][0]['cells']
        self.assertEqual(cells[0]['display'], '')
        self.assertEqual(cells[1]['display'], '')

    def test_pagination_and_sorting_from_query(self):
        grade_feed.publish([make_record(f'g{i:02d}', grade=i % 10) for i in range(25)])
        self.login()
        response = self.client.get(self.url, {'page': '3'})
        self.assertEqual(len(response.context['grid']['rows']), 5)
        response = self.client.get(self.url, {'sort': 'grade', 'dir': 'desc'})
        self.assertEqual(response.context['grid']['rows'][0]['cells'][4]['value'], 9)

    def test_columns_sized_to_fit(self):
        grade_feed.publish([make_record('a')])
        self.login()
        response = self.client.get(self.url)
        self.assertContains(response, 'style="width: 25.0%"', count=2)

    def test_row_click_navigates_to_detail(self):
        self.login()
        response = self.client.post(self.url, {'row': 'abc123'})
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response.url, '/calificaciones/abc123')

    def test_create_click_navigates_to_create(self):
        self.login()
        response = self.client.post(self.url, {'action': 'create'})
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response.url, '/calificaciones/create')

    def test_empty_post_returns_to_list(self):
        self.login()
        response = self.client.post(self.url, {})
        self.assertEqual(response.url, '/calificaciones/')

    def test_feed_failure_propagates(self):
        self.login()
        grade_feed._error = RuntimeError('database down')
        with self.assertRaises(RuntimeError):
            self.client.get(self.url)

    def test_unroutable_row_id_returns_to_list(self):
        self.login()
        response = self.client.post(self.url, {'row': 'abc/123'})
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response.url, '/calificaciones/')

    def test_api_without_slash_redirects_to_api_root(self):
        response = self.client.get('/calificaciones/api')
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response.url, '/calificaciones/api/')


class GradeDetailViewTest(TestCase):

    def setUp(self):
        self.client = Client()
        User.objects.create_user(email='teacher@test.com', password='pass123', role='teacher')
        self.client.login(email='teacher@test.com', password='pass123')
        self.url = reverse('grades:detail', kwargs={'pk': 'abc123'})

    def test_found_record(self):
        with mock.patch('grades.views.get_grade_record', return_value=make_record('abc123', grade=5.5)) as get_record:
            response = self.client.get(self.url)
        get_record.assert_called_once_with('abc123')
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Ana Lopez')
        self.assertContains(response, 'MAT101')
        self.assertContains(response, 'style="color: red"')
        self.assertContains(response, '?selected=abc123')

    def test_missing_student_shows_placeholder(self):
        with mock.patch('grades.views.get_grade_record', return_value=make_record('abc123', student=False)):
            response = self.client.get(self.url)
        self.assertContains(response, '(student not found)')
        self.assertContains(response, 'Algebra')

    def test_unknown_grade(self):
        with mock.patch('grades.views.get_grade_record', side_effect=StudentGrade.DoesNotExist):
            response = self.client.get(self.url)
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.context['grade'])
        self.assertContains(response, 'Grade not found!')

    def test_malformed_id(self):
        with mock.patch('grades.views.get_grade_record', side_effect=ValidationError('not an ObjectId')):
            response = self.client.get(self.url)
        self.assertContains(response, 'Grade not found!')


class GradeCreateViewTest(TestCase):

    def setUp(self):
        self.client = Client()
        User.objects.create_user(email='teacher@test.com', password='pass123', role='teacher')
        self.client.login(email='teacher@test.com', password='pass123')
        self.url = reverse('grades:create')

        self.student = MockStudent('s1', 'Ana', 'Lopez', 'A001')
        self.subject = MockSubject('m1', 'Algebra', 'MAT101')
        self.data = {'student': 's1', 'subject': 'm1', 'grade': '8.5', 'semester': '2024-1'}

        # Choice lists come from MongoDB
        for name in ('get_students', 'get_subjects'):
            patcher = mock.patch.object(GradeCreateView, name, return_value=[])
            patcher.start()
            self.addCleanup(patcher.stop)

    def finder(self, student=True, subject=True):
        def find_document(document_class, pk):
            if document_class is Student:
                return self.student if student else None
            return self.subject if subject else None
        return find_document

    def test_form_renders(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'New Grade')
        self.assertEqual(response.context['max_grade'], 10.0)

    def test_success_saves_and_redirects(self):
        with mock.patch('grades.views.find_document', side_effect=self.finder()), \
                mock.patch('grades.views.StudentGrade') as grade_class:
            grade_class.return_value.grade = 8.5
            response = self.client.post(self.url, self.data)

        self.assertEqual(response.status_code, 302)
        self.assertEqual(response.url, '/calificaciones/')
        grade_class.assert_called_once_with(
            student=self.student, subject=self.subject, grade=8.5, semester='2024-1'
        )
        grade_class.return_value.save.assert_called_once_with()
        messages = [str(message) for message in get_messages(response.wsgi_request)]
        self.assertIn('Grade 8.5 recorded for Ana Lopez in Algebra.', messages)

    def test_unknown_student(self):
        with mock.patch('grades.views.find_document', side_effect=self.finder(student=False)), \
                mock.patch('grades.views.StudentGrade') as grade_class:
            response = self.client.post(self.url, self.data)

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Selected student not found.')
        grade_class.assert_not_called()
        self.assertContains(response, 'value="2024-1"')

    def test_invalid_input_rerenders_with_form_data(self):
        data = dict(self.data, grade='11')
        with mock.patch('grades.views.find_document') as find_document:
            response = self.client.post(self.url, data)

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Grade must be between 0 and 10.')
        find_document.assert_not_called()
        self.assertEqual(response.context['form_data']['semester'], '2024-1')
        self.assertContains(response, 'value="11"')

    def test_save_error_rerenders(self):
        with mock.patch('grades.views.find_document', side_effect=self.finder()), \
                mock.patch('grades.views.StudentGrade') as grade_class:
            grade_class.return_value.save.side_effect = ValidationError('bad grade')
            response = self.client.post(self.url, self.data)

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Error saving grade')


class GradeAccessControlTest(TestCase):

    def setUp(self):
        self.client = Client()
        User.objects.create_user(email='student@test.com', password='pass123', role='student')

    def test_detail_requires_login(self):
        response = self.client.get(reverse('grades:detail', kwargs={'pk': 'abc123'}))
        self.assertEqual(response.status_code, 302)
        self.assertIn('login', response.url)

    def test_create_requires_login(self):
        response = self.client.get(reverse('grades:create'))
        self.assertEqual(response.status_code, 302)
        self.assertIn('login', response.url)

    def test_create_blocked_for_student(self):
        self.client.login(email='student@test.com', password='pass123')
        response = self.client.get(reverse('grades:create'))
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response.url, reverse('grades:list'))


class GradeAPITest(TestCase):

    def setUp(self):
        self.client = Client()
        User.objects.create_user(email='admin@test.com', password='pass123', role='admin', is_staff=True)
        grade_feed.reset()
        self.addCleanup(grade_feed.reset)

    def test_api_requires_authentication(self):
        response = self.client.get(reverse('grades:grade-list'))
        self.assertIn(response.status_code, (401, 403))

    def test_api_lists_records(self):
        grade_feed.publish([make_record('a', grade=9.5), make_record('b', subject=False)])
        self.client.login(email='admin@test.com', password='pass123')
        response = self.client.get(reverse('grades:grade-list'))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(len(data), 2)
        self.assertEqual(data[0]['grade'], 9.5)
        self.assertEqual(data[0]['student']['enrollment_number'], 'A001')
        self.assertIsNone(data[1]['subject'])
