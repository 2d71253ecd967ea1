"""
Question bank repository backed by DuckDB.

Implements the remote search contract used by the query executor
(text search, facet filters, difficulty, sorting, 1-based pagination with a
total count) plus the filter-option lookups and bulk loading from CSV.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from core.database import DatabaseManager
from core.exceptions import DatabaseError, ValidationError
from filters.models import DEFAULT_SORT, DIFFICULTY_LEVELS, QueryResult, SearchParams
from filters.pagination import page_offset

logger = logging.getLogger(__name__)

QUESTION_COLUMNS = (
    'id', 'created_at', 'question_id', 'book_source', 'chapter_name',
    'question_number_in_book', 'question_text', 'options', 'correct_option',
    'solution_text', 'exam_metadata', 'admin_tags', 'difficulty',
)

_DIFFICULTY_RANK = "CASE difficulty " + " ".join(
    f"WHEN '{level}' THEN {rank}" for rank, level in enumerate(DIFFICULTY_LEVELS, start=1)
) + " END"

# Whitelisted ORDER BY clauses; id breaks ties so pages never overlap
SORT_CLAUSES = {
    'id_asc': 'id ASC',
    'id_desc': 'id DESC',
    'created_at_asc': 'created_at ASC, id ASC',
    'created_at_desc': 'created_at DESC, id DESC',
    'difficulty_asc': f'{_DIFFICULTY_RANK} ASC NULLS LAST, id ASC',
    'difficulty_desc': f'{_DIFFICULTY_RANK} DESC NULLS LAST, id ASC',
}

LATEX_FIELDS = ('question_text', 'solution_text', 'exam_metadata')


def sanitize_latex_for_rendering(text: Optional[str]) -> Optional[str]:
    """Collapse the doubled backslashes used for JSON storage back to single ones."""
    if not text:
        return text
    return text.replace('\\\\', '\\')


def sanitize_question_for_rendering(record: Dict[str, Any]) -> Dict[str, Any]:
    sanitized = dict(record)
    for field_name in LATEX_FIELDS:
        sanitized[field_name] = sanitize_latex_for_rendering(sanitized.get(field_name))

    options = sanitized.get('options')
    if isinstance(options, dict):
        sanitized['options'] = {
            label: sanitize_latex_for_rendering(text) or '' for label, text in options.items()
        }
    return sanitized


def _split_tags(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        tags = [str(tag).strip() for tag in value]
    else:
        tags = [tag.strip() for tag in str(value).replace(';', ',').split(',')]
    return [tag for tag in tags if tag] or None


class QuestionRepository:
    """Read and bulk-load access to the questions table."""

    def __init__(self, db_manager: DatabaseManager, table_name: str = 'questions',
                 max_page_size: int = 50):
        if not table_name.isidentifier():
            raise ValidationError("Invalid table name", field='table_name', value=table_name)
        self.db_manager = db_manager
        self.table_name = table_name
        self.max_page_size = max_page_size

    # --- schema and loading --------------------------------------------

    def ensure_schema(self) -> None:
        """Create the questions table (and its id sequence) if missing."""
        sequence = f"{self.table_name}_id_seq"
        with self.db_manager.get_connection_context() as conn:
            conn.execute(f"CREATE SEQUENCE IF NOT EXISTS {sequence}")
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table_name} (
                    id BIGINT PRIMARY KEY DEFAULT nextval('{sequence}'),
                    created_at TIMESTAMP DEFAULT current_timestamp,
                    question_id VARCHAR NOT NULL,
                    book_source VARCHAR,
                    chapter_name VARCHAR,
                    question_number_in_book INTEGER,
                    question_text VARCHAR,
                    options VARCHAR,
                    correct_option VARCHAR,
                    solution_text VARCHAR,
                    exam_metadata VARCHAR,
                    admin_tags VARCHAR[],
                    difficulty VARCHAR
                )
            """)
        logger.info(f"Ensured question table '{self.table_name}'")

    def insert_questions(self, df: pd.DataFrame) -> int:
        """
        Insert question rows from a DataFrame; unknown columns are ignored.

        admin_tags may hold lists or comma/semicolon separated strings and
        options may hold dicts or JSON text.
        """
        columns = [column for column in QUESTION_COLUMNS if column in df.columns]
        if 'question_id' not in columns:
            raise ValidationError("Question rows require a question_id column", field='question_id')

        frame = df[columns].astype(object).where(pd.notna(df[columns]), None)
        if 'admin_tags' in columns:
            frame['admin_tags'] = frame['admin_tags'].map(_split_tags)
        if 'options' in columns:
            frame['options'] = frame['options'].map(
                lambda value: json.dumps(value) if isinstance(value, dict) else value
            )

        placeholders = ', '.join('?' for _ in columns)
        sql = f"INSERT INTO {self.table_name} ({', '.join(columns)}) VALUES ({placeholders})"
        rows = [list(row) for row in frame.itertuples(index=False, name=None)]
        if not rows:
            return 0

        with self.db_manager.get_connection_context() as conn:
            conn.executemany(sql, rows)

        logger.info(f"Inserted {len(rows)} questions into '{self.table_name}'")
        return len(rows)

    def load_questions_csv(self, csv_path: str) -> int:
        """Bulk load questions from a CSV file."""
        try:
            df = pd.read_csv(csv_path)
        except (OSError, pd.errors.ParserError) as e:
            raise DatabaseError(f"Could not read question CSV {csv_path}: {e}")
        self.ensure_schema()
        return self.insert_questions(df)

    # --- search --------------------------------------------------------

    def _build_where(self, params: SearchParams) -> Tuple[str, List[Any]]:
        clauses = []
        values: List[Any] = []

        search = (params.get('search') or '').strip().lower()
        if search:
            clauses.append("(contains(lower(question_id), ?) OR contains(lower(coalesce(question_text, '')), ?))")
            values.extend([search, search])

        for column, key in (('book_source', 'book_sources'), ('chapter_name', 'chapters')):
            selected = params.get(key) or []
            if selected:
                clauses.append(f"{column} IN ({', '.join('?' for _ in selected)})")
                values.extend(selected)

        for tag in params.get('tags') or []:
            clauses.append("list_contains(admin_tags, ?)")
            values.append(tag)

        if params.get('difficulty'):
            clauses.append("difficulty = ?")
            values.append(params['difficulty'])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ''
        return where, values

    def clamp_paging(self, page: Optional[int], page_size: Optional[int]) -> Tuple[int, int]:
        page = max(1, page or 1)
        page_size = max(1, min(self.max_page_size, page_size or 10))
        return page, page_size

    def search_questions(self, params: SearchParams) -> QueryResult:
        """
        Run one paginated search.

        Raises:
            DatabaseError: If the query fails
        """
        page, page_size = self.clamp_paging(params.get('page'), params.get('page_size'))
        order_by = SORT_CLAUSES.get(params.get('sort_by') or DEFAULT_SORT, SORT_CLAUSES[DEFAULT_SORT])
        where, values = self._build_where(params)

        count_sql = f"SELECT COUNT(*) FROM {self.table_name} {where}"
        data_sql = (
            f"SELECT {', '.join(QUESTION_COLUMNS)} FROM {self.table_name} {where} "
            f"ORDER BY {order_by} LIMIT ? OFFSET ?"
        )

        with self.db_manager.get_connection_context() as conn:
            total = conn.execute(count_sql, values).fetchone()[0]
            cursor = conn.execute(data_sql, values + [page_size, page_offset(page, page_size)])
            column_names = [description[0] for description in cursor.description]
            rows = cursor.fetchall()

        records = [self._to_record(dict(zip(column_names, row))) for row in rows]
        logger.debug(f"Question search matched {total} rows (page {page}, size {page_size})")
        return QueryResult(records=records, total=int(total or 0))

    def _to_record(self, row: Dict[str, Any]) -> Dict[str, Any]:
        options = row.get('options')
        if isinstance(options, str):
            try:
                row['options'] = json.loads(options)
            except ValueError:
                logger.warning(f"Question {row.get('question_id')} has malformed options JSON")
                row['options'] = None

        created_at = row.get('created_at')
        if created_at is not None and hasattr(created_at, 'isoformat'):
            row['created_at'] = created_at.isoformat()

        row['admin_tags'] = list(row.get('admin_tags') or [])
        return sanitize_question_for_rendering(row)

    # --- filter options ------------------------------------------------

    def _distinct(self, sql: str, values: Sequence[Any]) -> List[str]:
        rows = self.db_manager.execute_query(sql, list(values))
        return [row[0] for row in rows]

    def get_filter_options(self, book_sources: Optional[List[str]] = None,
                           chapters: Optional[List[str]] = None) -> Dict[str, List[str]]:
        """
        Distinct facet values; chapters narrow by selected books, tags by books and chapters.

        Lookup failures are logged and yield empty option lists.
        """
        options = {
            'book_sources': [],
            'chapters': [],
            'tags': [],
            'difficulties': list(DIFFICULTY_LEVELS),
        }

        try:
            options['book_sources'] = self._distinct(
                f"SELECT DISTINCT book_source FROM {self.table_name} "
                f"WHERE coalesce(book_source, '') <> '' ORDER BY book_source",
                []
            )

            scope = []
            values: List[Any] = []
            if book_sources:
                scope.append(f"book_source IN ({', '.join('?' for _ in book_sources)})")
                values.extend(book_sources)

            chapter_where = ' AND '.join(["coalesce(chapter_name, '') <> ''"] + scope)
            options['chapters'] = self._distinct(
                f"SELECT DISTINCT chapter_name FROM {self.table_name} "
                f"WHERE {chapter_where} ORDER BY chapter_name",
                values
            )

            if chapters:
                scope.append(f"chapter_name IN ({', '.join('?' for _ in chapters)})")
                values = values + list(chapters)

            tag_where = f"WHERE {' AND '.join(scope)}" if scope else ''
            options['tags'] = self._distinct(
                f"SELECT DISTINCT tag FROM (SELECT unnest(admin_tags) AS tag FROM {self.table_name} {tag_where}) "
                f"WHERE coalesce(tag, '') <> '' ORDER BY tag",
                values
            )
        except DatabaseError as e:
            logger.error(f"Failed to load filter options: {e}")

        return options

    def count_questions(self) -> int:
        row = self.db_manager.execute_query_single(f"SELECT COUNT(*) FROM {self.table_name}")
        return int(row[0]) if row else 0
