"""
Tests for keyword search over students.
"""

from database.models import Student
from forms.search import filter_students, matches_keyword, search_form_data


class TestSearchFormData:
    def test_matches_values_at_any_depth(self):
        form_data = {"1": {"q1": "Bangkok", "grid": {"1_1": "Physics"}, "c": ["Art", {"deep": "Violin"}]}}
        assert search_form_data(form_data, "bangkok")
        assert search_form_data(form_data, "PHYS")
        assert search_form_data(form_data, "violin")
        assert not search_form_data(form_data, "chemistry")

    def test_matches_keys(self):
        assert search_form_data({"1": {"hometown": None}}, "town")

    def test_numbers_and_bools(self):
        assert search_form_data({"1": {"gpa": 3.75}}, "3.7")
        assert search_form_data({"1": {"agree": True}}, "true")
        assert not search_form_data({"1": {"x": None}}, "none")


class TestMatchesKeyword:
    def test_fullname_or_form_data(self):
        by_name = Student(id=1, fullname="Somchai Jaidee", form_data={})
        by_answer = Student(id=2, fullname=None, form_data={"1": {"school": "Jaidee Wittaya"}})
        neither = Student(id=3, fullname="Somsri", form_data={"1": {"school": "Other"}})

        assert matches_keyword(by_name, "somchai")
        assert filter_students([by_name, by_answer, neither], "JAIDEE") == [by_name, by_answer]
