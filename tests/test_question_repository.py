"""
Tests for the DuckDB question repository.

Runs against a private in-memory DuckDB database per test.
"""

import os
import sys
from datetime import datetime

import pandas as pd
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import DatabaseManager, get_database_manager, reset_database_manager
from core.exceptions import DatabaseError, ValidationError
from filters.models import DIFFICULTY_LEVELS
from questions.repository import (
    QuestionRepository,
    sanitize_latex_for_rendering,
    sanitize_question_for_rendering,
)


def sample_questions() -> pd.DataFrame:
    return pd.DataFrame([
        {
            'question_id': 'Q1', 'book_source': 'HC Verma', 'chapter_name': 'Kinematics',
            'question_number_in_book': 1, 'question_text': 'A ball is thrown with speed \\\\frac{u}{2}',
            'options': {'A': '\\\\alpha', 'B': '2 m/s'}, 'correct_option': 'A',
            'admin_tags': ['pyq', 'jee'], 'difficulty': 'Easy', 'created_at': datetime(2024, 1, 6),
        },
        {
            'question_id': 'Q2', 'book_source': 'HC Verma', 'chapter_name': 'Optics',
            'question_number_in_book': 2, 'question_text': 'A convex lens forms an image',
            'options': None, 'correct_option': 'B',
            'admin_tags': ['jee'], 'difficulty': 'Hard', 'created_at': datetime(2024, 1, 5),
        },
        {
            'question_id': 'Q3', 'book_source': 'RD Sharma', 'chapter_name': 'Algebra',
            'question_number_in_book': 3, 'question_text': 'Solve the quadratic',
            'options': None, 'correct_option': 'C',
            'admin_tags': ['pyq'], 'difficulty': 'Moderate', 'created_at': datetime(2024, 1, 4),
        },
        {
            'question_id': 'Q4', 'book_source': 'RD Sharma', 'chapter_name': 'Algebra',
            'question_number_in_book': 4, 'question_text': 'Factorise the polynomial',
            'options': None, 'correct_option': 'D',
            'admin_tags': None, 'difficulty': None, 'created_at': datetime(2024, 1, 3),
        },
        {
            'question_id': 'Q5', 'book_source': 'HC Verma', 'chapter_name': 'Kinematics',
            'question_number_in_book': 5, 'question_text': 'A car accelerates uniformly',
            'options': None, 'correct_option': 'A',
            'admin_tags': 'pyq; mains', 'difficulty': 'Moderate-Hard', 'created_at': datetime(2024, 1, 2),
        },
        {
            'question_id': 'Q6', 'book_source': 'NCERT', 'chapter_name': 'Optics',
            'question_number_in_book': 6, 'question_text': 'Total internal reflection occurs when',
            'options': None, 'correct_option': 'B',
            'admin_tags': [], 'difficulty': 'Easy-Moderate', 'created_at': datetime(2024, 1, 1),
        },
    ])


def question_ids(result):
    return [record['question_id'] for record in result.records]


@pytest.fixture
def db_manager():
    manager = DatabaseManager(':memory:')
    yield manager
    manager.reset_connection()


@pytest.fixture
def repository(db_manager):
    repository = QuestionRepository(db_manager, max_page_size=50)
    repository.ensure_schema()
    repository.insert_questions(sample_questions())
    return repository


class TestSchemaAndLoading:

    def test_invalid_table_name_rejected(self, db_manager):
        with pytest.raises(ValidationError):
            QuestionRepository(db_manager, table_name='questions; DROP TABLE x')

    def test_ensure_schema_is_idempotent(self, repository):
        repository.ensure_schema()
        assert repository.count_questions() == 6

    def test_ids_are_assigned_in_insert_order(self, repository):
        result = repository.search_questions({'sort_by': 'id_asc', 'page': 1, 'page_size': 10})
        assert [record['id'] for record in result.records] == [1, 2, 3, 4, 5, 6]

    def test_question_id_column_required(self, db_manager):
        repository = QuestionRepository(db_manager)
        repository.ensure_schema()
        with pytest.raises(ValidationError):
            repository.insert_questions(pd.DataFrame([{'question_text': 'orphan'}]))

    def test_empty_frame_inserts_nothing(self, db_manager):
        repository = QuestionRepository(db_manager)
        repository.ensure_schema()
        assert repository.insert_questions(pd.DataFrame(columns=['question_id'])) == 0

    def test_load_questions_csv(self, db_manager, tmp_path):
        csv_path = tmp_path / "questions.csv"
        pd.DataFrame([
            {'question_id': 'C1', 'book_source': 'Irodov', 'chapter_name': 'Mechanics',
             'question_text': 'Find the tension', 'options': '{"A": "1 N", "B": "2 N"}',
             'admin_tags': 'olympiad,jee', 'difficulty': 'Hard', 'unused_column': 'x'},
            {'question_id': 'C2', 'book_source': 'Irodov', 'chapter_name': 'Mechanics',
             'question_text': 'Find the torque', 'options': None,
             'admin_tags': None, 'difficulty': None, 'unused_column': 'y'},
        ]).to_csv(csv_path, index=False)

        repository = QuestionRepository(db_manager, table_name='imported')
        assert repository.load_questions_csv(str(csv_path)) == 2

        first = repository.search_questions({'page': 1, 'page_size': 10}).records[0]
        assert first['question_id'] == 'C1'
        assert first['options'] == {'A': '1 N', 'B': '2 N'}
        assert first['admin_tags'] == ['olympiad', 'jee']
        assert first['created_at'] is not None

    def test_load_missing_csv(self, db_manager, tmp_path):
        repository = QuestionRepository(db_manager)
        with pytest.raises(DatabaseError):
            repository.load_questions_csv(str(tmp_path / "missing.csv"))


class TestSearch:

    def test_no_filters_returns_everything(self, repository):
        result = repository.search_questions({'page': 1, 'page_size': 25})
        assert result.total == 6
        assert question_ids(result) == ['Q1', 'Q2', 'Q3', 'Q4', 'Q5', 'Q6']

    def test_search_is_case_insensitive_over_text(self, repository):
        result = repository.search_questions({'search': 'BALL', 'page': 1, 'page_size': 25})
        assert question_ids(result) == ['Q1']

    def test_search_matches_question_id(self, repository):
        result = repository.search_questions({'search': 'q3', 'page': 1, 'page_size': 25})
        assert question_ids(result) == ['Q3']

    def test_search_treats_sql_wildcards_literally(self, repository):
        result = repository.search_questions({'search': "%' OR 1=1 --", 'page': 1, 'page_size': 25})
        assert result.total == 0

    def test_book_source_facet(self, repository):
        result = repository.search_questions({'book_sources': ['HC Verma', 'NCERT'], 'page': 1, 'page_size': 25})
        assert question_ids(result) == ['Q1', 'Q2', 'Q5', 'Q6']

    def test_facets_combine_with_and(self, repository):
        result = repository.search_questions({
            'book_sources': ['HC Verma'], 'chapters': ['Optics'], 'page': 1, 'page_size': 25,
        })
        assert question_ids(result) == ['Q2']

    def test_tags_must_all_be_present(self, repository):
        both = repository.search_questions({'tags': ['pyq', 'jee'], 'page': 1, 'page_size': 25})
        assert question_ids(both) == ['Q1']

        pyq = repository.search_questions({'tags': ['pyq'], 'page': 1, 'page_size': 25})
        assert question_ids(pyq) == ['Q1', 'Q3', 'Q5']

    def test_difficulty_filter(self, repository):
        result = repository.search_questions({'difficulty': 'Easy', 'page': 1, 'page_size': 25})
        assert question_ids(result) == ['Q1']

    def test_no_difficulty_means_all(self, repository):
        result = repository.search_questions({'difficulty': None, 'page': 1, 'page_size': 25})
        assert result.total == 6

    @pytest.mark.parametrize('sort_by, expected', [
        ('id_desc', ['Q6', 'Q5', 'Q4', 'Q3', 'Q2', 'Q1']),
        ('created_at_asc', ['Q6', 'Q5', 'Q4', 'Q3', 'Q2', 'Q1']),
        ('created_at_desc', ['Q1', 'Q2', 'Q3', 'Q4', 'Q5', 'Q6']),
        ('difficulty_asc', ['Q1', 'Q6', 'Q3', 'Q5', 'Q2', 'Q4']),
        ('difficulty_desc', ['Q2', 'Q5', 'Q3', 'Q6', 'Q1', 'Q4']),
        ('not_a_sort', ['Q1', 'Q2', 'Q3', 'Q4', 'Q5', 'Q6']),
    ])
    def test_sorting(self, repository, sort_by, expected):
        result = repository.search_questions({'sort_by': sort_by, 'page': 1, 'page_size': 25})
        assert question_ids(result) == expected

    def test_pagination(self, repository):
        result = repository.search_questions({'page': 2, 'page_size': 4})
        assert question_ids(result) == ['Q5', 'Q6']
        assert result.total == 6

    def test_page_past_the_end(self, repository):
        result = repository.search_questions({'page': 9, 'page_size': 4})
        assert result.records == []
        assert result.total == 6

    def test_total_counts_all_matches_not_page(self, repository):
        result = repository.search_questions({'tags': ['pyq'], 'page': 1, 'page_size': 1})
        assert len(result.records) == 1
        assert result.total == 3

    def test_clamp_paging(self, repository):
        assert repository.clamp_paging(0, 500) == (1, 50)
        assert repository.clamp_paging(None, None) == (1, 10)
        assert repository.clamp_paging(3, 25) == (3, 25)

    def test_record_shape(self, repository):
        first = repository.search_questions({'page': 1, 'page_size': 1}).records[0]

        assert first['created_at'].startswith('2024-01-06')
        assert first['admin_tags'] == ['pyq', 'jee']
        assert first['options'] == {'A': '\\alpha', 'B': '2 m/s'}
        assert first['question_text'] == 'A ball is thrown with speed \\frac{u}{2}'

    def test_missing_tags_become_empty_list(self, repository):
        record = repository.search_questions({'search': 'q4', 'page': 1, 'page_size': 1}).records[0]
        assert record['admin_tags'] == []
        assert record['options'] is None

    def test_malformed_options_json(self, db_manager):
        repository = QuestionRepository(db_manager)
        repository.ensure_schema()
        repository.insert_questions(pd.DataFrame([{'question_id': 'BAD', 'options': '{not json'}]))

        record = repository.search_questions({'page': 1, 'page_size': 1}).records[0]
        assert record['options'] is None

    def test_missing_table_raises(self, db_manager):
        repository = QuestionRepository(db_manager, table_name='missing')
        with pytest.raises(DatabaseError):
            repository.search_questions({'page': 1, 'page_size': 10})


class TestFilterOptions:

    def test_all_options(self, repository):
        options = repository.get_filter_options()
        assert options['book_sources'] == ['HC Verma', 'NCERT', 'RD Sharma']
        assert options['chapters'] == ['Algebra', 'Kinematics', 'Optics']
        assert options['tags'] == ['jee', 'mains', 'pyq']
        assert options['difficulties'] == list(DIFFICULTY_LEVELS)

    def test_chapters_narrow_by_book(self, repository):
        options = repository.get_filter_options(book_sources=['RD Sharma'])
        assert options['book_sources'] == ['HC Verma', 'NCERT', 'RD Sharma']
        assert options['chapters'] == ['Algebra']
        assert options['tags'] == ['pyq']

    def test_tags_narrow_by_book_and_chapter(self, repository):
        options = repository.get_filter_options(book_sources=['HC Verma'], chapters=['Optics'])
        assert options['tags'] == ['jee']

    def test_lookup_failure_yields_empty_lists(self, db_manager):
        options = QuestionRepository(db_manager, table_name='missing').get_filter_options()
        assert options['book_sources'] == []
        assert options['chapters'] == []
        assert options['tags'] == []
        assert options['difficulties'] == list(DIFFICULTY_LEVELS)


class TestSanitize:

    def test_collapses_doubled_backslashes(self):
        assert sanitize_latex_for_rendering('\\\\sqrt{2}') == '\\sqrt{2}'

    def test_single_backslashes_untouched(self):
        assert sanitize_latex_for_rendering('\\sqrt{2}') == '\\sqrt{2}'

    def test_empty_values(self):
        assert sanitize_latex_for_rendering(None) is None
        assert sanitize_latex_for_rendering('') == ''

    def test_question_fields_and_options(self):
        record = sanitize_question_for_rendering({
            'question_text': '\\\\int x dx',
            'solution_text': None,
            'options': {'A': '\\\\pi', 'B': None},
        })
        assert record['question_text'] == '\\int x dx'
        assert record['solution_text'] is None
        assert record['options'] == {'A': '\\pi', 'B': ''}


class TestDatabaseManager:

    def test_execute_query(self, db_manager):
        assert db_manager.execute_query("SELECT CAST(? AS INTEGER) + 1", [1]) == [(2,)]
        assert db_manager.execute_query_single("SELECT 42") == (42,)

    def test_errors_carry_the_query(self, db_manager):
        with pytest.raises(DatabaseError) as exc_info:
            db_manager.execute_query("SELECT * FROM nowhere")
        assert exc_info.value.context['query'] == "SELECT * FROM nowhere"

    def test_reset_reopens_on_next_use(self, tmp_path):
        manager = DatabaseManager(str(tmp_path / "bank.duckdb"))
        manager.execute_query("CREATE TABLE kept (x INTEGER)")
        manager.reset_connection()

        assert manager.execute_query("SELECT count(*) FROM kept") == [(0,)]
        manager.reset_connection()

    def test_global_manager(self):
        reset_database_manager()
        try:
            first = get_database_manager(':memory:')
            assert get_database_manager(':memory:') is first
        finally:
            reset_database_manager()
