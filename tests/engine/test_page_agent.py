from __future__ import annotations

import asyncio

import pytest

from affiliation_crawler.engine.page_agent import (
    PageAgent,
    institution_candidates,
    last_name,
    name_matches,
)
from affiliation_crawler.messages import (
    AffiliationFound,
    ContinueSearch,
    DiagnosticNote,
    ExtractAffiliation,
    MoveToNextEntry,
    StartSearch,
)

PROFILE_URL = "https://scholar.google.com/citations?user=abc123"


def _run(config, page, instruction):
    emitted: list = []
    agent = PageAgent(page, config.site, config.pacing, emitted.append)
    asyncio.run(agent.handle(instruction))
    return emitted


def _notes(emitted) -> list[str]:
    return [message.content for message in emitted if isinstance(message, DiagnosticNote)]


def test_start_search_types_query_and_submits(sample_global_config, fake_page, fake_element) -> None:
    field = fake_element(text="stale query")
    page = fake_page(elements={'input[name="q"]': [field]})

    emitted = _run(sample_global_config, page, StartSearch("Ada Lovelace", "Notes"))

    assert field.filled == [""]
    assert field.focused
    assert field.typed == list("Ada Lovelace Notes")
    assert field.text == "Ada Lovelace Notes"
    assert field.submitted
    assert emitted == [DiagnosticNote("Submitting search form for: Ada Lovelace Notes")]


def test_start_search_without_input_fails(sample_global_config, fake_page) -> None:
    emitted = _run(sample_global_config, fake_page(), StartSearch("A", "T"))
    assert emitted == [
        DiagnosticNote("Error during search: Search input not found on page"),
        MoveToNextEntry(),
    ]


def test_start_search_without_form_fails(sample_global_config, fake_page, fake_element) -> None:
    field = fake_element(in_form=False)
    page = fake_page(elements={'input[name="q"]': [field]})

    emitted = _run(sample_global_config, page, StartSearch("A", "T"))

    assert emitted[-2:] == [
        DiagnosticNote("Error during search: Search form not found around the query input"),
        MoveToNextEntry(),
    ]


def test_continue_search_clicks_matching_author(sample_global_config, fake_page, fake_element) -> None:
    other = fake_element(text="J Smith", href="/citations?user=1")
    target = fake_element(text="A LOVELACE", href="/citations?user=2")
    page = fake_page(
        url="https://scholar.google.com/scholar?q=ada",
        elements={
            ".gs_r": [fake_element()],
            ".gs_fmaa": [fake_element(html='<div class="gs_fmaa"><a>A LOVELACE</a></div>')],
            ".gs_fmaa a": [other, target],
        },
    )

    emitted = _run(sample_global_config, page, ContinueSearch("Ada Lovelace", "Notes"))

    assert target.clicked
    assert not other.clicked
    assert emitted == [
        DiagnosticNote('<div class="gs_fmaa"><a>A LOVELACE</a></div>'),
        DiagnosticNote("Clicking author link: /citations?user=2"),
    ]


def test_continue_search_without_match_fails(sample_global_config, fake_page, fake_element) -> None:
    page = fake_page(
        elements={".gs_r": [fake_element()], ".gs_fmaa a": [fake_element(text="J Smith")]},
    )
    emitted = _run(sample_global_config, page, ContinueSearch("Ada Lovelace", "Notes"))
    assert emitted == [
        DiagnosticNote("No gs_fmaa element found"),
        DiagnosticNote("Error during continued search: Author link for Lovelace not found"),
        MoveToNextEntry(),
    ]


def test_continue_search_times_out_without_results(sample_global_config, fake_page) -> None:
    emitted = _run(sample_global_config, fake_page(), ContinueSearch("A", "T"))
    assert len(emitted) == 2
    assert emitted[0].content.startswith(
        "Error during continued search: Timeout waiting for element .gs_r"
    )
    assert emitted[1] == MoveToNextEntry()


def test_extract_affiliation_reports_marker_text(sample_global_config, fake_page, fake_element) -> None:
    page = fake_page(
        url=PROFILE_URL,
        elements={
            ".gsc_prf_il": [fake_element(text="Professor")],
            ".gsc_prf_ila": [
                fake_element(
                    text="  University of Toronto ",
                    html='<div class="gsc_prf_ila">University of Toronto</div>',
                )
            ],
        },
    )

    emitted = _run(sample_global_config, page, ExtractAffiliation("A", "T"))

    assert emitted == [
        DiagnosticNote(f"Extracting affiliation from: {PROFILE_URL}"),
        DiagnosticNote(
            "Found affiliation element:\n"
            "Text: University of Toronto\n"
            'HTML: <div class="gsc_prf_ila">University of Toronto</div>'
        ),
        AffiliationFound("University of Toronto"),
    ]


def test_extract_affiliation_lists_candidates_when_marker_missing(
    sample_global_config, fake_page, fake_element
) -> None:
    html = (
        "<html><body>"
        '<div class="gsc_prf_il">Professor, Stanford University</div>'
        "<script>var label = 'University';</script>"
        '<span class="home">Home</span>'
        "</body></html>"
    )
    page = fake_page(
        url=PROFILE_URL,
        elements={".gsc_prf_il": [fake_element(text="Professor")]},
        html=html,
    )

    emitted = _run(sample_global_config, page, ExtractAffiliation("A", "T"))
    notes = _notes(emitted)

    assert emitted[-1] == MoveToNextEntry()
    assert not any(isinstance(message, AffiliationFound) for message in emitted)
    failure = notes[-1]
    assert failure.startswith("Error extracting affiliation: Affiliation element (.gsc_prf_ila) not found.")
    assert "Possible affiliation elements found:" in failure
    assert "1. Class: gsc_prf_il, Text: Professor, Stanford University" in failure
    assert "label" not in failure


def test_extract_affiliation_without_candidates(sample_global_config, fake_page, fake_element) -> None:
    page = fake_page(
        url=PROFILE_URL,
        elements={".gsc_prf_il": [fake_element()]},
        html="<html><body><p>Nothing here</p></body></html>",
    )
    notes = _notes(_run(sample_global_config, page, ExtractAffiliation("A", "T")))
    assert notes[-1].endswith("No possible affiliation elements found.")


@pytest.mark.parametrize(
    ("candidate", "author", "expected"),
    [
        ("G Hinton", "Geoffrey Hinton", True),
        ("g hinton", "Geoffrey HINTON", True),
        ("Y LeCun", "Geoffrey Hinton", False),
        ("G Hinton", "", False),
        ("G Hinton", "   ", False),
    ],
)
def test_name_matches_last_name(candidate: str, author: str, expected: bool) -> None:
    assert name_matches(candidate, author) is expected


def test_name_matches_first_initial_when_required() -> None:
    assert name_matches("G Hinton", "Geoffrey Hinton", require_first_initial=True)
    assert not name_matches("M Hinton", "Geoffrey Hinton", require_first_initial=True)
    assert name_matches("M Hinton", "Hinton", require_first_initial=True)


def test_last_name() -> None:
    assert last_name("Ada King Lovelace") == "Lovelace"
    assert last_name("") == ""


def test_institution_candidates_limit() -> None:
    rows = "".join(f'<li class="c{i}">College {i}</li>' for i in range(8))
    found = institution_candidates(f"<html><body><ul>{rows}</ul></body></html>", ["College"])
    assert len(found) == 5
    assert found[0] == ("c0", "College 0")
