"""Tests for blob splitting, header extraction, body cleaning and file input."""

from pathlib import Path

import pytest
from conftest import EXAMPLE_BLOB

from resolver.core.errors import InputError
from resolver.ingest.cleaning import BodyCleaner, clean_body, normalize_whitespace
from resolver.ingest.files import FileSource
from resolver.ingest.normalizer import (
    DEFAULT_SENDER,
    ItemNormalizer,
    split_blob,
    stable_item_id,
)
from resolver.models import FetchedMessage

INGESTED_AT = "2026-01-05T10:00:00+00:00"

# ---------------------------------------------------------------------------
# split_blob
# ---------------------------------------------------------------------------


class TestSplitBlob:
    def test_empty_and_whitespace(self) -> None:
        assert split_blob("") == []
        assert split_blob("   \n\t\n ") == []

    def test_dash_separator(self) -> None:
        parts = split_blob(EXAMPLE_BLOB)
        assert len(parts) == 2
        assert parts[0].startswith("From: a@x.com")
        assert parts[1].endswith("Buy now!")

    def test_equals_separator(self) -> None:
        text = "The first message is long enough\n=====\nThe second message is long enough"
        assert split_blob(text) == [
            "The first message is long enough",
            "The second message is long enough",
        ]

    def test_from_line_separator(self) -> None:
        text = (
            "From: a@x.com\nThe export button does nothing at all.\n"
            "From: b@y.com\nCould we get a call next week about pricing?"
        )
        parts = split_blob(text)
        assert len(parts) == 2
        assert parts[0].startswith("From: a@x.com")
        assert parts[1].startswith("From: b@y.com")

    def test_short_separator_fragments_dropped(self) -> None:
        text = "A message that is clearly long enough\n---\ntoo short"
        assert split_blob(text) == ["A message that is clearly long enough"]

    def test_paragraphs(self) -> None:
        first = "The reporting page times out whenever I select more than three months. " * 2
        second = "We would like to move from the monthly plan to the annual plan next cycle. " * 2
        parts = split_blob(f"{first}\n\n{second}")
        assert parts == [first.strip(), second.strip()]

    def test_single_long_paragraph_is_not_split(self) -> None:
        text = "A single paragraph that goes on. " * 10 + "\n\nshort tail"
        assert split_blob(text) == [text.strip()]

    def test_list_markers(self) -> None:
        text = (
            "Feedback:\n"
            "* The dashboard takes far too long to load each morning\n"
            "* Please add an export to CSV for the monthly reports\n"
            "1. The mobile app logs me out every single hour"
        )
        assert split_blob(text) == [
            "The dashboard takes far too long to load each morning",
            "Please add an export to CSV for the monthly reports",
            "The mobile app logs me out every single hour",
        ]

    def test_whole_blob_fallback(self) -> None:
        assert split_blob("  Short note about pricing.  ") == ["Short note about pricing."]

    def test_windows_line_endings(self) -> None:
        text = EXAMPLE_BLOB.replace("\n", "\r\n")
        assert len(split_blob(text)) == 2


# ---------------------------------------------------------------------------
# Header extraction
# ---------------------------------------------------------------------------


class TestParseFragment:
    def test_headers_extracted_and_stripped(self) -> None:
        fragment = (
            "From: Jane <jane@x.com>\nSubject: Export broken\nDate: 2026-01-04\n"
            "To: support@example.com\n\nThe export fails.\n\n\n\nPlease help.   Thanks"
        )
        item = ItemNormalizer().parse_fragment(fragment, 1, INGESTED_AT)
        assert item is not None
        assert item.sender == "Jane <jane@x.com>"
        assert item.subject == "Export broken"
        assert item.date == "2026-01-04"
        assert item.body == "The export fails.\n\nPlease help. Thanks"
        assert item.thread_id == item.id

    def test_repeated_label_lines_kept_in_body(self) -> None:
        fragment = (
            "From: Jane <jane@x.com>\nDate: 2026-01-04\n\n"
            "The dashboard was down.\nDate: the outage began Monday"
        )
        item = ItemNormalizer().parse_fragment(fragment, 1, INGESTED_AT)
        assert item.date == "2026-01-04"
        assert item.body == "The dashboard was down.\nDate: the outage began Monday"

    def test_alternative_labels(self) -> None:
        fragment = "Name: Bob Stone\nTitle: Pricing question\nIs there a discount for charities?"
        item = ItemNormalizer().parse_fragment(fragment, 1, INGESTED_AT)
        assert item.sender == "Bob Stone"
        assert item.subject == "Pricing question"
        assert item.body == "Is there a discount for charities?"

    def test_defaults_without_headers(self) -> None:
        item = ItemNormalizer().parse_fragment("Short text", 3, INGESTED_AT)
        assert item.sender == DEFAULT_SENDER
        assert item.subject == "Feedback Item 3"
        assert item.date == INGESTED_AT

    def test_first_line_used_as_subject(self) -> None:
        item = ItemNormalizer().parse_fragment(
            "Search results are wrong\nSearching for 'invoice' returns contacts.",
            1,
            INGESTED_AT,
        )
        assert item.subject == "Search results are wrong"

    def test_header_only_fragment_dropped(self) -> None:
        fragment = "From: a@x.com\nSubject: Empty"
        assert ItemNormalizer().parse_fragment(fragment, 1, INGESTED_AT) is None


class TestNormalizeBlob:
    def test_example_scenario(self) -> None:
        items = ItemNormalizer().normalize_blob(EXAMPLE_BLOB)
        assert [(i.sender, i.subject, i.body) for i in items] == [
            ("a@x.com", "Bug", "Login fails."),
            ("b@y.com", "Newsletter", "Buy now!"),
        ]

    def test_ids_stable_across_runs(self) -> None:
        first = ItemNormalizer().normalize_blob(EXAMPLE_BLOB)
        second = ItemNormalizer().normalize_blob(EXAMPLE_BLOB)
        assert [i.id for i in first] == [i.id for i in second]
        assert all(i.id.startswith("file-") for i in first)

    def test_duplicate_fragments_collapsed(self) -> None:
        text = "The same message appears twice\n---\nThe same message appears twice"
        assert len(ItemNormalizer().normalize_blob(text)) == 1

    def test_stable_item_id_depends_on_content(self) -> None:
        assert stable_item_id("a", "b", "c") == stable_item_id("a", "b", "c")
        assert stable_item_id("a", "b", "c") != stable_item_id("a", "b", "d")


class TestNormalizeMessages:
    def test_cleans_and_drops(self) -> None:
        messages = [
            FetchedMessage(
                id="m1",
                sender="Jane <jane@x.com>",
                subject="Hello",
                date="2026-01-05T09:00:00Z",
                body="<p>Hi team,<br>the app crashes.</p>",
                thread_id="conv-1",
                is_html=True,
            ),
            FetchedMessage(id="", sender="x", subject="No id", date="", body="text"),
            FetchedMessage(id="m3", sender="y", subject="Blank", date="", body="  \n "),
            FetchedMessage(id="m1", sender="dup", subject="Dup", date="", body="again"),
        ]
        items = ItemNormalizer().normalize_messages(messages)
        assert len(items) == 1
        assert items[0].body == "Hi team,\nthe app crashes."
        assert items[0].thread_id == "conv-1"

    def test_thread_id_defaults_to_id(self) -> None:
        items = ItemNormalizer().normalize_messages(
            [FetchedMessage(id="m9", sender="", subject="", date="", body="Body text")]
        )
        assert items[0].thread_id == "m9"
        assert items[0].sender == "Unknown"
        assert items[0].subject == "(no subject)"


# ---------------------------------------------------------------------------
# Body cleaning
# ---------------------------------------------------------------------------


class TestBodyCleaner:
    def test_html_stripped(self) -> None:
        text = "<style>p {color: red}</style><p>Hello &amp; welcome<br>World</p>"
        assert clean_body(text, is_html=True) == "Hello & welcome\nWorld"

    def test_quoted_reply_removed(self) -> None:
        text = (
            "Thanks for the fix.\n\n"
            "On Mon, 5 Jan 2026, Jane <jane@x.com> wrote:\n"
            "> the old message"
        )
        assert clean_body(text) == "Thanks for the fix."

    def test_outlook_header_block_removed(self) -> None:
        text = "New question here.\n\nFrom: Bob\nSent: Monday\nSubject: Old\n\nOld body"
        assert clean_body(text) == "New question here."

    def test_signature_removed(self) -> None:
        assert clean_body("Please call me.\n--\nJohn Smith\nCEO") == "Please call me."
        assert clean_body("See attached.\n\nSent from my iPhone") == "See attached."

    def test_truncation(self) -> None:
        assert len(BodyCleaner(max_length=10).clean("a" * 50)) == 10

    def test_empty(self) -> None:
        assert clean_body(None) == ""
        assert clean_body("") == ""

    def test_normalize_whitespace(self) -> None:
        assert normalize_whitespace("a\r\nb\t\t c\n\n\n\nd  ") == "a\nb c\n\nd"


# ---------------------------------------------------------------------------
# File input
# ---------------------------------------------------------------------------


class TestFileSource:
    def test_read_items(self, tmp_path: Path) -> None:
        path = tmp_path / "feedback.txt"
        path.write_text(EXAMPLE_BLOB, encoding="utf-8")
        items = FileSource().read_items(path)
        assert len(items) == 2

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(InputError, match="not found"):
            FileSource().read_text(tmp_path / "nope.txt")

    def test_directory(self, tmp_path: Path) -> None:
        check = FileSource().validate_file(tmp_path)
        assert not check.valid
        assert "Not a regular file" in check.errors[0]

    def test_decode_error(self, tmp_path: Path) -> None:
        path = tmp_path / "latin.txt"
        path.write_bytes("Caf\xe9 feedback".encode("latin-1"))
        with pytest.raises(InputError, match="file.encoding"):
            FileSource(encoding="utf-8").read_text(path)
        assert FileSource(encoding="latin-1").read_text(path) == "Café feedback"

    def test_empty_file_warning(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.txt"
        path.write_text("")
        check = FileSource().validate_file(path)
        assert check.valid
        assert check.warnings == ["File is empty"]

    def test_read_many_continues_past_failures(self, tmp_path: Path) -> None:
        good = tmp_path / "good.txt"
        good.write_text(EXAMPLE_BLOB)
        items = FileSource().read_many([tmp_path / "missing.txt", good])
        assert len(items) == 2

    def test_read_many_all_failing(self, tmp_path: Path) -> None:
        with pytest.raises(InputError, match="No input file could be read"):
            FileSource().read_many([tmp_path / "a.txt", tmp_path / "b.txt"])

    def test_read_many_dedupes_across_files(self, tmp_path: Path) -> None:
        first = tmp_path / "one.txt"
        second = tmp_path / "two.txt"
        first.write_text(EXAMPLE_BLOB)
        second.write_text(EXAMPLE_BLOB)
        assert len(FileSource().read_many([first, second])) == 2
