"""Tests for tag annotation and content rewriting."""

import pytest

from autoattach.markup import add_status_attribute, apply_outcome
from autoattach.models import DownloadOutcome, ImageReference, OutcomeStatus


class TestAddStatusAttribute:
    def test_inserts_marker_as_first_attribute(self):
        tag = '<img alt="cat" src="http://a.example/cat.png">'
        assert add_status_attribute(tag, OutcomeStatus.FAILURE) == (
            '<img data-autoattach="download-failure" alt="cat" src="http://a.example/cat.png">'
        )

    def test_replaces_existing_marker(self):
        tag = '<img data-autoattach="download-failure" src="http://a.example/cat.png">'
        once = add_status_attribute(tag, OutcomeStatus.TIMEOUT)
        twice = add_status_attribute(once, OutcomeStatus.TIMEOUT)
        assert once == twice == '<img data-autoattach="download-timeout" src="http://a.example/cat.png">'
        assert once.count("data-autoattach") == 1

    def test_marker_in_middle_of_tag_is_removed(self):
        tag = '<IMG src="x.png" data-autoattach="insert-error" alt="">'
        assert add_status_attribute(tag, OutcomeStatus.SUCCESS) == (
            '<img data-autoattach="success" src="x.png" alt="">'
        )


class TestApplyOutcome:
    @pytest.fixture
    def reference(self):
        return ImageReference(
            full_match='<img src="http://evil.example/cat.png?a=1&amp;b=2">',
            raw_url_text="http://evil.example/cat.png?a=1&amp;b=2",
            resolved_url="http://evil.example/cat.png?a=1&b=2",
        )

    def test_success_rewrites_url_and_marks_tag(self, reference):
        content = f"<p>{reference.full_match}</p>"
        updated = apply_outcome(content, reference, DownloadOutcome.success("files/attach/1/cat.png", 10))
        assert updated == '<p><img data-autoattach="success" src="files/attach/1/cat.png"></p>'

    def test_success_escapes_filename(self, reference):
        updated = apply_outcome(reference.full_match, reference, DownloadOutcome.success('a&b".png'))
        assert 'src="a&amp;b&quot;.png"' in updated

    @pytest.mark.parametrize("status", [s for s in OutcomeStatus if s is not OutcomeStatus.SUCCESS])
    def test_failures_keep_url(self, reference, status):
        content = f"<p>before</p>{reference.full_match}<p>after</p>"
        updated = apply_outcome(content, reference, DownloadOutcome.failed(status))
        assert updated == (
            f'<p>before</p><img data-autoattach="{status.value}" '
            'src="http://evil.example/cat.png?a=1&amp;b=2"><p>after</p>'
        )

    def test_unrelated_markup_untouched(self, reference):
        other = '<a href="http://evil.example/cat.png?a=1&amp;b=2">link</a>'
        content = other + reference.full_match
        updated = apply_outcome(content, reference, DownloadOutcome.success("local.png"))
        assert updated.startswith(other)

    def test_missing_tag_leaves_content_unchanged(self, reference):
        content = "<p>nothing</p>"
        assert apply_outcome(content, reference, DownloadOutcome.failed(OutcomeStatus.FAILURE)) == content
