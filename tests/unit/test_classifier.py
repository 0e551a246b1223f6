import pytest

from nlq_engine.application.services.classifier_service import QueryClassifier
from nlq_engine.domain.entities import Intent
from nlq_engine.domain.query_patterns import DEFAULT_KEYWORDS, KeywordConfig


@pytest.mark.parametrize(
    "text",
    [
        "How many employees do we have?",
        "Average salary by department",
        "List all departments",
        "SHOW ME ALL records ORDER BY name",
    ],
)
def test_structural_only_is_sql(text: str) -> None:
    assert QueryClassifier().classify(text) == Intent.SQL


@pytest.mark.parametrize(
    "text",
    [
        "Who has Java certification?",
        "Find CVs mentioning a programming background",
        "candidates with relevant experience",
    ],
)
def test_unstructured_only_is_document(text: str) -> None:
    assert QueryClassifier().classify(text) == Intent.DOCUMENT


def test_both_vocabularies_make_hybrid() -> None:
    classifier = QueryClassifier()

    assert classifier.classify("Employees with Python skills earning over 100k") == Intent.HYBRID
    assert classifier.classify("python python python salary") == Intent.HYBRID


def test_no_keywords_defaults_to_sql() -> None:
    classifier = QueryClassifier()

    assert classifier.classify("hello there") == Intent.SQL
    assert classifier.classify("") == Intent.SQL


def test_injected_keywords_replace_defaults() -> None:
    classifier = QueryClassifier(
        KeywordConfig(structural=frozenset({"revenue"}), unstructured=frozenset({"contract"}))
    )

    assert classifier.classify("revenue per contract") == Intent.HYBRID
    assert classifier.classify("contract terms") == Intent.DOCUMENT
    assert classifier.classify("python skills") == Intent.SQL


@pytest.mark.parametrize("keyword", sorted(DEFAULT_KEYWORDS.unstructured))
def test_each_unstructured_keyword_alone_is_document(keyword: str) -> None:
    assert QueryClassifier().classify(f"Who mentions {keyword}?") == Intent.DOCUMENT


@pytest.mark.parametrize("keyword", sorted(DEFAULT_KEYWORDS.structural))
def test_each_structural_keyword_alone_is_sql(keyword: str) -> None:
    assert QueryClassifier().classify(f"Show {keyword} now") == Intent.SQL


@pytest.mark.parametrize(
    "text",
    [
        "Find the resume of our lead architect",
        "Find resumes mentioning a programming background",
        "Who has machine learning experience?",
    ],
)
def test_keywords_inside_other_words_do_not_count(text: str) -> None:
    assert QueryClassifier().classify(text) == Intent.DOCUMENT


def test_plurals_match() -> None:
    classifier = QueryClassifier()

    assert classifier.classify("list departments") == Intent.SQL
    assert classifier.classify("list certifications") == Intent.DOCUMENT
