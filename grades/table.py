# grades/table.py - Grade list: feed -> grid wiring and click handling

from django.urls import reverse
import logging

from .columns import GRADE_COLUMNS, DEFAULT_COL_DEF
from .grid import Grid, GridOptions
from .queries import UNLOADED, grade_feed

logger = logging.getLogger(__name__)

GRID_OPTIONS = GridOptions(pagination=True, page_size=10, animate_rows=True, row_selection='single')


def detail_path(grade_id):
    return reverse('grades:detail', kwargs={'pk': grade_id})


def create_path():
    return reverse('grades:create')


class GradeTable:
    """
    State and handlers behind the grade list page.

    Holds the current row data and the grid's control handle. Whenever the
    row data is replaced (or the handle first arrives) and both are present,
    columns are sized to fit once.
    """

    def __init__(self, navigate, feed=grade_feed):
        self.navigate = navigate
        self.feed = feed
        self.grid_api = None
        self.row_data = UNLOADED
        self._unsubscribe = None

    def mount(self):
        self._unsubscribe = self.feed.subscribe(self.set_row_data)
        self.set_row_data(self.feed.current())

    def unmount(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def is_loading(self):
        return self.row_data is UNLOADED

    def set_row_data(self, records):
        if records is self.row_data:
            return
        self.row_data = records
        self._size_columns()

    def on_grid_ready(self, api):
        if api is self.grid_api:
            return
        self.grid_api = api
        self._size_columns()

    def _size_columns(self):
        if self.grid_api is not None and self.row_data is not UNLOADED:
            self.grid_api.size_columns_to_fit()

    def on_row_clicked(self, record):
        logger.debug("Row clicked: %s", record['id'])
        return self.navigate(detail_path(record['id']))

    def on_create_clicked(self):
        return self.navigate(create_path())

    def build_grid(self):
        return Grid(
            self.row_data,
            GRADE_COLUMNS,
            default_col_def=DEFAULT_COL_DEF,
            options=GRID_OPTIONS,
            on_grid_ready=self.on_grid_ready,
            row_href=lambda record: detail_path(record['id']),
        )

    def render(self, params):
        """Template context: loading flag, or the laid-out grid"""
        if self.is_loading():
            return {'loading': True, 'grid': None}
        return {'loading': False, 'grid': self.build_grid().layout(params)}
