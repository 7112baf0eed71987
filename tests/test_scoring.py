"""Tests for venuecrawl.scoring and venuecrawl.links modules."""

from __future__ import annotations

from conftest import make_page

from venuecrawl.document import Link
from venuecrawl.links import find_golden_links, is_relevant_link, outbound_links
from venuecrawl.scoring import (
    HIGH_PRIORITY_SCORE,
    PRESCORE_THRESHOLD,
    TASKS,
    has_schedule_literals,
    is_hours_candidate,
    prescore_url,
    score_page,
    score_page_for_task,
    score_url,
    score_url_for_task,
)


class TestScoreUrl:
    def test_opening_hours_path_is_high_priority(self):
        assert score_url("https://venue.test/opening-hours") >= HIGH_PRIORITY_SCORE

    def test_visit_beats_plain(self):
        assert score_url("https://venue.test/visit") > score_url("https://venue.test/about")

    def test_commerce_penalty(self):
        assert score_url("https://venue.test/checkout") < 0
        assert score_url("https://venue.test/book-now") < score_url("https://venue.test/about")

    def test_depth_penalty(self):
        shallow = score_url("https://venue.test/a/b/opening-hours")
        deep = score_url("https://venue.test/a/b/c/d/opening-hours")
        assert shallow - deep == 20


class TestPrescoreUrl:
    def test_hours_pages_pass_threshold(self):
        assert prescore_url("https://venue.test/opening-times") >= PRESCORE_THRESHOLD
        assert prescore_url("https://venue.test/plan-your-visit/hours") >= PRESCORE_THRESHOLD

    def test_generic_pages_fail_threshold(self):
        assert prescore_url("https://venue.test/news/2024/some-story") < PRESCORE_THRESHOLD
        assert prescore_url("https://venue.test/tickets/checkout") < PRESCORE_THRESHOLD

    def test_name_tokens_boost(self):
        assert prescore_url("https://venue.test/skygarden", ["skygarden"]) == 60


class TestScorePage:
    def test_name_and_hours_score(self):
        page = make_page(
            "https://venue.test/visit",
            "<p>Sky Garden opening hours</p><p>Monday to Sunday 10am - 6pm</p>",
            title="Visit Sky Garden",
        )
        assert score_page(page, "Sky Garden") >= 200 + 120 + 30

    def test_checkout_language_penalised(self):
        basket = make_page("https://venue.test/basket", "<p>Your basket is empty</p>")
        plain = make_page("https://venue.test/about", "<p>Our story</p>")
        assert score_page(basket, "Sky Garden") < score_page(plain, "Sky Garden")

    def test_schedule_literals(self):
        assert has_schedule_literals("Open Tuesday 10am")
        assert not has_schedule_literals("Open Tuesday")
        assert not has_schedule_literals("10am")


class TestTasks:
    def test_four_fixed_tasks(self):
        assert set(TASKS) == {"hours", "age", "price", "description"}

    def test_hours_task_url_boost(self):
        task = TASKS["hours"]
        assert score_url_for_task("https://venue.test/opening-times", task) > score_url(
            "https://venue.test/opening-times"
        )
        assert score_url_for_task("https://venue.test/shop", task) == score_url(
            "https://venue.test/shop"
        )

    def test_hours_candidate_by_path_keyword(self):
        assert is_hours_candidate("https://venue.test/plan-your-visit")
        assert is_hours_candidate("https://venue.test/whats-on/calendar")
        assert not is_hours_candidate("https://venue.test/shop")

    def test_hours_page_boosted_by_literals(self):
        task = TASKS["hours"]
        page = make_page("https://venue.test/x", "<p>Opening hours: Monday 10am - 5pm</p>")
        assert score_page_for_task(page, task, "Sky Garden") == score_page(page, "Sky Garden") + 80 + 40


class TestLinks:
    def test_outbound_links_normalized_and_deduplicated(self):
        links = outbound_links(
            [
                Link(href="/visit/", text=" Visit "),
                Link(href="https://venue.test/visit#top", text="Visit again"),
                Link(href="mailto:hi@venue.test", text="Mail"),
            ],
            "https://venue.test/",
        )
        assert links == [Link(href="https://venue.test/visit", text="Visit")]

    def test_relevant_link(self):
        assert is_relevant_link("https://venue.test/plan-your-visit", ("visit",))
        assert not is_relevant_link("https://venue.test/shop", ("visit", "hours"))


class TestGoldenLinks:
    def test_anchor_text_inside_snippet(self):
        text = "Planning a trip? For opening hours see our visitor information here."
        links = [
            Link(href="https://venue.test/shop", text="Shop"),
            Link(href="https://venue.test/info", text="visitor information"),
        ]
        assert find_golden_links(text, links) == ["https://venue.test/info"]

    def test_hours_href_with_shared_word(self):
        text = "Check our opening times before you travel."
        links = [Link(href="https://venue.test/opening-times", text="Read more")]
        assert find_golden_links(text, links) == ["https://venue.test/opening-times"]

    def test_no_snippet_no_links(self):
        links = [Link(href="https://venue.test/opening-times", text="Opening times")]
        assert find_golden_links("Welcome to the garden.", links) == []
