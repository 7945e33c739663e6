"""
Tests for per-question analytics bucketing.
"""

import math

import pytest

from database.models import Student
from forms.analytics import analyze, numeric_bins
from helpers import question, section


def students_answering(question_id, values, field_id="1", extra=None):
    students = []
    for index, value in enumerate(values, start=1):
        answers = {question_id: value}
        answers.update((extra or {}).get(index, {}))
        students.append(Student(id=index, status="completed", form_data={field_id: answers}))
    return students


def only_question(result):
    assert len(result.questions) == 1
    return result.questions[0]


class TestNumericAnswers:
    def test_twenty_responses_between_five_and_ten_bins(self):
        values = [str(round(i * 100 / 19, 2)) for i in range(20)]
        fields = [section(1, question("score", label="Score"))]

        result = only_question(analyze(students_answering("score", values), fields))

        assert result.is_numeric is True
        assert 5 <= len(result.labels) <= 10
        assert len(result.data) == len(result.labels)
        assert sum(result.data) == 20
        assert result.statistics.min == 0
        assert result.statistics.max == 100
        assert result.statistics.count == 20

    def test_bin_count_is_clamped(self):
        assert len(numeric_bins([float(i) for i in range(3)])[0]) == 5
        assert len(numeric_bins([float(i) for i in range(49)])[0]) == 7
        assert len(numeric_bins([float(i) for i in range(400)])[0]) == 10

    def test_zero_range_goes_to_first_bin(self):
        labels, counts = numeric_bins([7.0, 7.0, 7.0])
        assert counts[0] == 3
        assert sum(counts) == 3

    def test_span_wider_than_float_range(self):
        fields = [section(1, question("amount", label="Amount"))]

        result = only_question(analyze(students_answering("amount", ["-1e308", "1e308", "5"]), fields))

        assert result.is_numeric is True
        assert result.data == [1, 0, 1, 0, 1]
        assert all(math.isfinite(v) for v in (result.statistics.min, result.statistics.max, result.statistics.average))
        assert result.statistics.average == pytest.approx(5 / 3)

    def test_any_text_response_switches_to_top_answers(self):
        fields = [section(1, question("city", label="City"))]
        values = ["Bangkok", "10", "Bangkok", "Chiang Mai"]

        result = only_question(analyze(students_answering("city", values), fields))

        assert result.is_numeric is False
        assert result.labels[0] == "Bangkok"
        assert result.data[0] == 2

    def test_top_ten_only(self):
        fields = [section(1, question("word", label="Word"))]
        values = [f"w{i:02d}" for i in range(15)] + ["w14"]

        result = only_question(analyze(students_answering("word", values), fields))

        assert len(result.labels) == 10
        assert result.labels[0] == "w14"
        assert result.labels[1:] == [f"w{i:02d}" for i in range(9)]


class TestChoiceAnswers:
    def test_radio_counts_with_other_substitution(self):
        fields = [section(1, question("r", "radio", label="Choice", options=["A", "B"], allow_other=True))]
        students = students_answering("r", ["A", "other", "A"], extra={2: {"r_other": "Z"}})

        result = only_question(analyze(students, fields))

        assert result.chart_type == "doughnut"
        assert result.labels == ["A", "Z"]
        assert result.data == [2, 1]
        assert result.total_responses == 3

    def test_numeric_keys_sort_numerically(self):
        fields = [section(1, question("d", "dropdown", label="Year"))]
        result = only_question(analyze(students_answering("d", ["10", "9", "2", "9"]), fields))
        assert result.labels == ["2", "9", "10"]
        assert result.data == [1, 2, 1]

    def test_checkbox_counts_elements(self):
        fields = [section(1, question("c", "checkbox", label="Interests", options=["Art", "Math"]))]
        result = only_question(analyze(students_answering("c", [["Math", "Art"], ["Math"], []]), fields))
        assert result.labels == ["Art", "Math"]
        assert result.data == [1, 2]
        assert result.total_responses == 2


class TestDateTimeAndTable:
    def test_dates_by_month(self):
        fields = [section(1, question("dob", "date", label="Birth date"))]
        result = only_question(analyze(students_answering("dob", ["2024-05-03", "2023-12-01", "2024-05-20"]), fields))
        assert result.chart_type == "line"
        assert result.labels == ["2023-12", "2024-05"]
        assert result.data == [1, 2]

    def test_times_by_hour(self):
        fields = [section(1, question("t", "time", label="Available"))]
        result = only_question(analyze(students_answering("t", ["9:30", "09:45", "14:00"]), fields))
        assert result.labels == ["09:00", "14:00"]
        assert result.data == [2, 1]

    def test_table_reports_count_only(self):
        fields = [section(1, question("grid", "table", label="Grades", table_config={"rows": 2, "columns": 2}))]
        result = only_question(analyze(students_answering("grid", [{"1_1": "A"}, {"1_1": "B"}]), fields))
        assert result.labels == ["Table Responses"]
        assert result.data == [2]
        assert result.note


class TestOverall:
    def test_name_and_file_questions_are_excluded(self):
        fields = [section(
            1,
            question("n", label="First name"),
            question("s", label="นามสกุล", order=1),
            question("f", "file_upload", label="Transcript", order=2),
            question("g", label="GPA", order=3),
        )]
        result = analyze(students_answering("g", ["3.5"]), fields)
        assert [q.question_id for q in result.questions] == ["g"]

    def test_student_totals(self):
        fields = [section(1, question("q", label="Q"))]
        students = [
            Student(id=1, status="completed", form_data={}),
            Student(id=2, status="incomplete", form_data={}),
            Student(id=3, status="incomplete", form_data={}),
        ]
        result = analyze(students, fields)
        assert (result.total_students, result.completed_students, result.incomplete_students) == (3, 1, 2)
        assert result.questions[0].total_responses == 0

    def test_no_students(self):
        result = analyze([], [section(1, question("q"))])
        assert result.total_students == 0
        assert result.questions == []
