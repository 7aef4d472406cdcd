# grades/grid.py - Server-side data grid: sorting, filtering, paging and column sizing

from collections.abc import Mapping
from django.core.paginator import Paginator
from django.utils.http import urlencode
import logging

logger = logging.getLogger(__name__)


# ============================================================================
# FILTER OPERATORS
# ============================================================================

TEXT_FILTER_OPERATORS = {
    'contains': lambda cell, wanted: wanted in cell,
    'notContains': lambda cell, wanted: wanted not in cell,
    'equals': lambda cell, wanted: cell == wanted,
    'notEqual': lambda cell, wanted: cell != wanted,
    'startsWith': lambda cell, wanted: cell.startswith(wanted),
    'endsWith': lambda cell, wanted: cell.endswith(wanted),
}

NUMBER_FILTER_OPERATORS = {
    'equals': lambda cell, wanted: cell == wanted,
    'notEqual': lambda cell, wanted: cell != wanted,
    'lessThan': lambda cell, wanted: cell < wanted,
    'lessThanOrEqual': lambda cell, wanted: cell <= wanted,
    'greaterThan': lambda cell, wanted: cell > wanted,
    'greaterThanOrEqual': lambda cell, wanted: cell >= wanted,
}

DEFAULT_OPERATOR = {
    'text': 'contains',
    'number': 'equals',
}

# Blank cells pass these and fail every other operator
NEGATIVE_OPERATORS = {'notContains', 'notEqual'}


def resolve_field(row, field):
    """Follow a dotted path through dicts/attributes; None if any step is missing"""
    value = row
    for part in field.split('.'):
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


def style_to_css(style):
    if not style:
        return ''
    return '; '.join(f'{name}: {value}' for name, value in style.items())


class ColumnDef:
    """One grid column: where its value comes from and how it behaves"""

    def __init__(self, col_id, header_name, field, sortable=False, filter=False,
                 flex=1, cell_style=None, resizable=None):
        self.col_id = col_id
        self.header_name = header_name
        self.field = field
        self.sortable = sortable
        # filter: False, True (text filter) or 'number'
        if filter is True:
            filter = 'text'
        self.filter = filter or None
        self.flex = flex
        self.cell_style = cell_style
        self.resizable = resizable

    def __repr__(self):
        return f'ColumnDef({self.col_id!r}, field={self.field!r})'

    def value_for(self, row):
        return resolve_field(row, self.field)

    def style_for(self, value):
        if self.cell_style is None:
            return None
        return self.cell_style(value)


class GridOptions:
    """Display options of a grid"""

    ROW_SELECTION_MODES = (None, 'single', 'multiple')

    def __init__(self, pagination=True, page_size=10, animate_rows=True, row_selection='single'):
        if row_selection not in self.ROW_SELECTION_MODES:
            raise ValueError(f'Unknown row selection mode: {row_selection}')
        if page_size < 1:
            raise ValueError('page_size must be at least 1')
        self.pagination = pagination
        self.page_size = page_size
        self.animate_rows = animate_rows
        self.row_selection = row_selection


class GridApi:
    """Control surface handed to the grid-ready callback"""

    def __init__(self, columns, available_width=100):
        self.columns = columns
        self.available_width = available_width  # percent of the container
        self.column_widths = {}
        self.selected_ids = []

    def size_columns_to_fit(self):
        """Share the available width among the columns by flex weight"""
        total_flex = sum(column.flex for column in self.columns)
        if not total_flex:
            self.column_widths = {}
            return self.column_widths
        self.column_widths = {
            column.col_id: round(self.available_width * column.flex / total_flex, 2)
            for column in self.columns
        }
        logger.debug("Sized %d columns to fit", len(self.column_widths))
        return self.column_widths

    def select_row(self, row_id, mode='single'):
        if mode == 'single':
            self.selected_ids = [row_id]
        elif row_id not in self.selected_ids:
            self.selected_ids.append(row_id)

    def deselect_all(self):
        self.selected_ids = []


class Grid:
    """
    Table widget driven by query parameters.

    Parameters read by ``layout``: ``page``, ``sort`` (column id), ``dir``
    (``asc``/``desc``), ``filter_<col>`` and ``op_<col>``, ``selected``.
    """

    def __init__(self, row_data, column_defs, default_col_def=None, options=None,
                 on_grid_ready=None, row_href=None, row_id=None):
        self.row_data = list(row_data)
        self.columns = tuple(column_defs)
        self.default_col_def = dict(default_col_def or {})
        self.options = options or GridOptions()
        self.on_grid_ready = on_grid_ready
        self.row_href = row_href
        self.get_row_id = row_id or (lambda row: resolve_field(row, 'id'))
        self.api = GridApi(self.columns)

    def column(self, col_id):
        for column in self.columns:
            if column.col_id == col_id:
                return column
        return None

    def is_resizable(self, column):
        if column.resizable is not None:
            return column.resizable
        return bool(self.default_col_def.get('resizable', False))

    # ------------------------------------------------------------------
    # State from query parameters
    # ------------------------------------------------------------------

    def read_state(self, params):
        sort = None
        direction = None
        column = self.column(params.get('sort') or '')
        if column is not None and column.sortable:
            sort = column.col_id
            direction = params.get('dir') if params.get('dir') in ('asc', 'desc') else 'asc'

        filters = {}
        for column in self.columns:
            if not column.filter:
                continue
            value = (params.get(f'filter_{column.col_id}') or '').strip()
            if not value:
                continue
            operators = self._operators(column)
            operator = params.get(f'op_{column.col_id}')
            if operator not in operators:
                operator = DEFAULT_OPERATOR[column.filter]
            filters[column.col_id] = (operator, value)

        return {
            'sort': sort,
            'dir': direction,
            'filters': filters,
            'page': params.get('page'),
            'selected': params.get('selected') or None,
        }

    def _operators(self, column):
        if column.filter == 'number':
            return NUMBER_FILTER_OPERATORS
        return TEXT_FILTER_OPERATORS

    # ------------------------------------------------------------------
    # Filtering and sorting
    # ------------------------------------------------------------------

    def filter_rows(self, rows, filters):
        for col_id, (operator, wanted) in filters.items():
            column = self.column(col_id)
            if column.filter == 'number':
                try:
                    wanted_value = float(wanted)
                except ValueError:
                    logger.debug("Ignoring non-numeric filter %r on %s", wanted, col_id)
                    continue
                rows = [row for row in rows
                        if self._number_matches(column.value_for(row), operator, wanted_value)]
            else:
                wanted_value = wanted.casefold()
                rows = [row for row in rows
                        if self._text_matches(column.value_for(row), operator, wanted_value)]
        return rows

    def _text_matches(self, cell, operator, wanted):
        if cell is None or cell == '':
            return operator in NEGATIVE_OPERATORS
        return TEXT_FILTER_OPERATORS[operator](str(cell).casefold(), wanted)

    def _number_matches(self, cell, operator, wanted):
        if isinstance(cell, bool) or not isinstance(cell, (int, float)):
            return operator in NEGATIVE_OPERATORS
        return NUMBER_FILTER_OPERATORS[operator](cell, wanted)

    def sort_rows(self, rows, sort, direction):
        if sort is None:
            return list(rows)
        column = self.column(sort)

        def sort_key(row):
            value = column.value_for(row)
            if value is None:
                return (0, 0, 0)
            if isinstance(value, str):
                return (1, 1, value.casefold())
            return (1, 0, value)

        # Blank values first ascending, last descending
        return sorted(rows, key=sort_key, reverse=(direction == 'desc'))

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def layout(self, params=None):
        """Apply the requested state and return what the template renders"""
        params = params if params is not None else {}
        state = self.read_state(params)

        rows = self.filter_rows(self.row_data, state['filters'])
        rows = self.sort_rows(rows, state['sort'], state['dir'])

        if state['selected'] and self.options.row_selection:
            self.api.select_row(state['selected'], mode=self.options.row_selection)

        page_obj = None
        page_rows = rows
        if self.options.pagination:
            page_obj = Paginator(rows, self.options.page_size).get_page(state['page'])
            page_rows = page_obj.object_list

        body = [self._row(row) for row in page_rows]

        # Layout is complete; hand over the control surface
        if self.on_grid_ready is not None:
            self.on_grid_ready(self.api)

        return {
            'columns': [self._header(column, state, params) for column in self.columns],
            'rows': body,
            'page_obj': page_obj,
            'page_links': self._page_links(page_obj, params),
            'row_count': len(rows),
            'total_count': len(self.row_data),
            'sort': state['sort'],
            'dir': state['dir'],
            'has_filters': bool(state['filters']),
            'clear_filters_url': self._query(params, page=None, **{
                name: None for column in self.columns
                for name in (f'filter_{column.col_id}', f'op_{column.col_id}')
            }),
            'animate_rows': self.options.animate_rows,
            'row_selection': self.options.row_selection,
        }

    def _row(self, row):
        row_id = self.get_row_id(row)
        cells = []
        for column in self.columns:
            value = column.value_for(row)
            cells.append({
                'col_id': column.col_id,
                'value': value,
                'display': '' if value is None else str(value),
                'style': style_to_css(column.style_for(value)),
            })
        return {
            'id': row_id,
            'href': self.row_href(row) if self.row_href else None,
            'selected': row_id is not None and str(row_id) in self.api.selected_ids,
            'cells': cells,
        }

    def _header(self, column, state, params):
        sort = state['dir'] if state['sort'] == column.col_id else None
        header = {
            'col_id': column.col_id,
            'header_name': column.header_name,
            'sortable': column.sortable,
            'sort': sort,
            'sort_url': None,
            'resizable': self.is_resizable(column),
            'width': self.api.column_widths.get(column.col_id),
            'filter_type': column.filter,
            'filter_name': f'filter_{column.col_id}',
            'op_name': f'op_{column.col_id}',
            'filter_value': params.get(f'filter_{column.col_id}') or '',
            'filter_op': (state['filters'].get(column.col_id) or (None,))[0],
            'filter_operators': list(self._operators(column)) if column.filter else [],
        }
        if column.sortable:
            # Click cycle: none -> asc -> desc -> none
            if sort == 'asc':
                header['sort_url'] = self._query(params, sort=column.col_id, dir='desc', page=None)
            elif sort == 'desc':
                header['sort_url'] = self._query(params, sort=None, dir=None, page=None)
            else:
                header['sort_url'] = self._query(params, sort=column.col_id, dir='asc', page=None)
        return header

    def _page_links(self, page_obj, params):
        if page_obj is None:
            return {}
        paginator = page_obj.paginator
        links = {
            'first': self._query(params, page=1),
            'last': self._query(params, page=paginator.num_pages),
            'previous': None,
            'next': None,
        }
        if page_obj.has_previous():
            links['previous'] = self._query(params, page=page_obj.previous_page_number())
        if page_obj.has_next():
            links['next'] = self._query(params, page=page_obj.next_page_number())
        return links

    def _query(self, params, **changes):
        query = {key: params.get(key) for key in params}
        for key, value in changes.items():
            if value is None:
                query.pop(key, None)
            else:
                query[key] = value
        query = {key: value for key, value in query.items() if value not in (None, '')}
        return '?' + urlencode(query) if query else '?'
